from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from support_relay.domain.value_objects.enums import ParticipantKind
from support_relay.infrastructure.ws.protocol import (
    CUSTOMER_EVENTS,
    MAX_NAME_LENGTH,
    MAX_PHONE_LENGTH,
    STAFF_ONLY_EVENTS,
    CloseConversation,
    CustomerMessage,
    RateConversation,
    StaffMessage,
    TakeOver,
    WsInbound,
    parse_command,
)


def _frame(type_: str, **data) -> WsInbound:
    return WsInbound(type=type_, data=data)


def test_customer_message_with_profile():
    cmd = parse_command(
        ParticipantKind.CUSTOMER,
        _frame("message", content="  hi  ", customerInfo={"name": "Lan", "phone": "090"}),
    )
    assert isinstance(cmd, CustomerMessage)
    assert cmd.content == "hi"
    assert cmd.customer_info.name == "Lan"


def test_same_event_name_resolves_per_kind():
    cid = uuid.uuid4()
    cmd = parse_command(
        ParticipantKind.STAFF, _frame("message", conversationId=str(cid), content="ok"),
    )
    assert isinstance(cmd, StaffMessage)
    assert cmd.conversation_id == cid


@pytest.mark.parametrize(
    "info",
    [
        {"name": "x" * (MAX_NAME_LENGTH + 1)},
        {"phone": "9" * (MAX_PHONE_LENGTH + 1)},
        {"email": "a" * 250 + "@x.com"},
    ],
)
def test_oversized_customer_info_rejected(info):
    with pytest.raises(ValidationError):
        parse_command(ParticipantKind.CUSTOMER, _frame("message", content="hi", customerInfo=info))


def test_customer_info_at_column_width_accepted():
    cmd = parse_command(
        ParticipantKind.CUSTOMER,
        _frame("message", content="hi", customerInfo={"name": "x" * MAX_NAME_LENGTH}),
    )
    assert len(cmd.customer_info.name) == MAX_NAME_LENGTH


def test_blank_content_rejected():
    with pytest.raises(ValidationError):
        parse_command(ParticipantKind.CUSTOMER, _frame("message", content="   "))


@pytest.mark.parametrize("score", [0, 6])
def test_rating_out_of_range(score):
    with pytest.raises(ValidationError):
        parse_command(ParticipantKind.CUSTOMER, _frame("rate", score=score))


def test_rating_in_range():
    cmd = parse_command(ParticipantKind.CUSTOMER, _frame("rate", score=5, feedback="great"))
    assert isinstance(cmd, RateConversation)


def test_takeover_requires_valid_id():
    with pytest.raises(ValidationError):
        parse_command(ParticipantKind.STAFF, _frame("takeOver", conversationId="nope"))
    cmd = parse_command(ParticipantKind.STAFF, _frame("takeOver", conversationId=str(uuid.uuid4())))
    assert isinstance(cmd, TakeOver)


def test_close_target_defaults_and_validates():
    cid = str(uuid.uuid4())
    cmd = parse_command(ParticipantKind.STAFF, _frame("closeConversation", conversationId=cid))
    assert isinstance(cmd, CloseConversation)
    assert cmd.target_status == "resolved"
    with pytest.raises(ValidationError):
        parse_command(
            ParticipantKind.STAFF,
            _frame("closeConversation", conversationId=cid, targetStatus="active"),
        )


def test_staff_only_events():
    assert "takeOver" in STAFF_ONLY_EVENTS
    assert "message" not in STAFF_ONLY_EVENTS
    assert "takeOver" not in CUSTOMER_EVENTS
