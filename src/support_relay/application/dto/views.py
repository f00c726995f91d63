"""Read models sent to clients (WebSocket payloads and REST responses)."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from support_relay.domain.entities.conversation import Conversation
from support_relay.domain.entities.message import Message


class _View(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MessageView(_View):
    id: UUID
    conversation_id: UUID
    seq: int
    sender: str
    sender_display_name: str
    content: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime


class CustomerView(_View):
    name: str
    phone: str | None
    email: str | None


class MessagePreviewView(_View):
    content: str
    sender: str
    created_at: datetime


class RatingView(_View):
    score: int
    feedback: str | None
    rated_at: datetime


class ConversationView(_View):
    id: UUID
    session_id: str
    status: str
    customer: CustomerView
    customer_user_id: str | None
    owner_staff_id: str | None
    owner_staff_name: str | None
    taken_over_at: datetime | None
    closed_at: datetime | None
    last_activity_at: datetime
    last_message: MessagePreviewView | None
    unread_for_staff: int
    message_count: int
    customer_typing: bool
    staff_typing: bool
    rating: RatingView | None
    tags: list[str]
    staff_notes: str | None
    created_at: datetime
    updated_at: datetime


class ConversationDetailView(ConversationView):
    messages: list[MessageView]


def message_view(message: Message) -> dict[str, Any]:
    return MessageView.model_validate(message).to_wire()


def conversation_view(conversation: Conversation) -> dict[str, Any]:
    return ConversationView.model_validate(conversation).to_wire()
