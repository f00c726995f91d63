"""WebSocket wire protocol: frame envelopes and typed inbound commands.

Every frame is ``{"type": ..., "data": {...}}``. Inbound frames are turned
into one command model per event type so handlers receive validated,
typed payloads instead of raw dicts.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union, get_args
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from support_relay.domain.value_objects.enums import ConversationStatus, ParticipantKind


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: dict[str, Any] = {}


class _Command(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("content must not be empty")
    return value


# Column widths of the conversations table.
MAX_SESSION_ID_LENGTH = 128
MAX_NAME_LENGTH = 120
MAX_PHONE_LENGTH = 32
MAX_EMAIL_LENGTH = 255


class CustomerInfo(_Command):
    name: str | None = Field(None, max_length=MAX_NAME_LENGTH)
    phone: str | None = Field(None, max_length=MAX_PHONE_LENGTH)
    email: str | None = Field(None, max_length=MAX_EMAIL_LENGTH)


class Ping(_Command):
    type: Literal["ping"]


# -- customer → server --------------------------------------------------------


class CustomerMessage(_Command):
    type: Literal["message"]
    content: str
    customer_info: CustomerInfo | None = None

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        return _non_blank(value)


class CustomerTyping(_Command):
    type: Literal["typing"]
    is_typing: bool


class RateConversation(_Command):
    type: Literal["rate"]
    score: int = Field(ge=1, le=5)
    feedback: str | None = None


CustomerCommand = Annotated[
    Union[CustomerMessage, CustomerTyping, RateConversation, Ping],
    Field(discriminator="type"),
]


# -- staff → server -----------------------------------------------------------


class TakeOver(_Command):
    type: Literal["takeOver"]
    conversation_id: UUID


class StaffMessage(_Command):
    type: Literal["message"]
    conversation_id: UUID
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        return _non_blank(value)


class StaffTyping(_Command):
    type: Literal["typing"]
    conversation_id: UUID
    is_typing: bool


class Release(_Command):
    type: Literal["release"]
    conversation_id: UUID


class CloseConversation(_Command):
    type: Literal["closeConversation"]
    conversation_id: UUID
    target_status: Literal["closed", "resolved"] = ConversationStatus.RESOLVED.value


class MarkRead(_Command):
    type: Literal["markRead"]
    conversation_id: UUID


class ListConversations(_Command):
    type: Literal["listConversations"]


class GetStats(_Command):
    type: Literal["getStats"]


StaffCommand = Annotated[
    Union[
        TakeOver,
        StaffMessage,
        StaffTyping,
        Release,
        CloseConversation,
        MarkRead,
        ListConversations,
        GetStats,
        Ping,
    ],
    Field(discriminator="type"),
]


def command_classes(union: Any) -> tuple[type[_Command], ...]:
    """Member models of an annotated command union."""
    inner = get_args(union)[0]
    return get_args(inner)


def _event_names(union: Any) -> frozenset[str]:
    return frozenset(
        get_args(cls.model_fields["type"].annotation)[0] for cls in command_classes(union)
    )


CUSTOMER_EVENTS = _event_names(CustomerCommand)
STAFF_EVENTS = _event_names(StaffCommand)
STAFF_ONLY_EVENTS = STAFF_EVENTS - CUSTOMER_EVENTS

_adapters: dict[ParticipantKind, TypeAdapter[Any]] = {
    ParticipantKind.CUSTOMER: TypeAdapter(CustomerCommand),
    ParticipantKind.STAFF: TypeAdapter(StaffCommand),
}


def parse_command(kind: ParticipantKind, frame: WsInbound) -> _Command:
    """Validate a frame into the command model for ``kind``.

    Raises ``pydantic.ValidationError`` on unknown types or bad payloads.
    """
    return _adapters[kind].validate_python({**frame.data, "type": frame.type})


def outbound(event_type: str, data: dict[str, Any] | None = None) -> str:
    return WsOutbound(type=event_type, data=data or {}).model_dump_json()
