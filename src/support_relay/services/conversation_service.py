"""Conversation store transitions.

Each function runs one unit of work and commits it; callers deliver the
resulting events only after these return (persist first, then deliver).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from support_relay.application.dto.principal import Principal
from support_relay.application.exceptions import ConflictError, NotFoundError
from support_relay.application.uow import UnitOfWork
from support_relay.domain.entities.conversation import (
    DEFAULT_CUSTOMER_NAME,
    Conversation,
    CustomerProfile,
    Rating,
)
from support_relay.domain.entities.message import Message
from support_relay.domain.value_objects.enums import (
    ConversationStatus,
    ParticipantKind,
    SenderKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionState:
    conversation: Conversation
    messages: list[Message]
    created: bool


@dataclass(frozen=True, slots=True)
class CustomerTurn:
    conversation: Conversation
    message: Message
    reopened: bool


async def _require(uow: UnitOfWork, conversation_id: uuid.UUID) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def _append(
    uow: UnitOfWork,
    conversation_id: uuid.UUID,
    sender: SenderKind,
    display_name: str,
    content: str,
    now: datetime,
) -> Message:
    seq, created_at = await uow.conversations_w.record_message(
        conversation_id, sender, content, now,
    )
    message = Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        seq=seq,
        sender=sender,
        sender_display_name=display_name,
        content=content,
        is_read=sender != SenderKind.CUSTOMER,
        read_at=None,
        created_at=created_at,
    )
    return await uow.messages_w.create(message)


def _new_conversation(
    session_id: str,
    principal: Principal,
    user_agent: str | None,
    now: datetime,
) -> Conversation:
    customer_user_id = None if principal.is_anonymous else principal.subject_id
    return Conversation(
        id=uuid.uuid4(),
        session_id=session_id,
        status=ConversationStatus.ACTIVE,
        created_at=now,
        updated_at=now,
        last_activity_at=now,
        customer=CustomerProfile(name=principal.display_name or DEFAULT_CUSTOMER_NAME),
        customer_user_id=customer_user_id,
        user_agent=user_agent,
    )


async def open_session(
    session_id: str,
    principal: Principal,
    greeting: str,
    bot_name: str,
    now: datetime,
    uow: UnitOfWork,
    *,
    user_agent: str | None = None,
) -> SessionState:
    """Load the conversation for a customer session, creating it on first contact.

    A new conversation starts ``active`` with one automated greeting.
    """
    existing = await uow.conversations.get_by_session_id(session_id)
    if existing is not None:
        messages = await uow.messages.list_messages(existing.id)
        return SessionState(existing, messages, created=False)

    try:
        conversation = await uow.conversations_w.create(
            _new_conversation(session_id, principal, user_agent, now)
        )
        welcome = await _append(
            uow, conversation.id, SenderKind.AUTOMATED, bot_name, greeting, now,
        )
        await uow.commit()
    except IntegrityError:
        # Another connection created this session first.
        await uow.rollback()
        existing = await uow.conversations.get_by_session_id(session_id)
        if existing is None:
            raise
        messages = await uow.messages.list_messages(existing.id)
        return SessionState(existing, messages, created=False)

    logger.info("Created conversation %s for session %s", conversation.id, session_id)
    conversation = await _require(uow, conversation.id)
    return SessionState(conversation, [welcome], created=True)


async def receive_customer_message(
    session_id: str,
    principal: Principal,
    content: str,
    profile: CustomerProfile | None,
    now: datetime,
    uow: UnitOfWork,
) -> CustomerTurn:
    conversation = await uow.conversations.get_by_session_id(session_id)
    if conversation is None:
        conversation = await uow.conversations_w.create(
            _new_conversation(session_id, principal, None, now)
        )

    reopened = await uow.conversations_w.reopen_if_terminal(conversation.id)
    if reopened:
        logger.info("Reopened conversation %s on new customer message", conversation.id)

    merged = conversation.customer.merged(profile)
    if merged != conversation.customer:
        await uow.conversations_w.update_customer(conversation.id, merged)

    message = await _append(
        uow, conversation.id, SenderKind.CUSTOMER, merged.name, content, now,
    )
    await uow.commit()
    return CustomerTurn(await _require(uow, conversation.id), message, reopened)


async def append_automated_reply(
    conversation_id: uuid.UUID,
    expected_version: int,
    content: str,
    bot_name: str,
    now: datetime,
    uow: UnitOfWork,
) -> Message | None:
    """Append an automated reply only if nobody took ownership since it was scheduled.

    The claim and the append happen in one transaction, so a concurrent
    takeover either lands before (and the reply is suppressed) or after.
    """
    claimed = await uow.conversations_w.claim_unowned(conversation_id, expected_version)
    if not claimed:
        await uow.rollback()
        logger.debug("Automated reply suppressed for %s", conversation_id)
        return None
    message = await _append(
        uow, conversation_id, SenderKind.AUTOMATED, bot_name, content, now,
    )
    await uow.commit()
    return message


async def take_over(
    conversation_id: uuid.UUID,
    staff: Principal,
    now: datetime,
    uow: UnitOfWork,
) -> Conversation:
    await _require(uow, conversation_id)
    await uow.conversations_w.take_over(
        conversation_id, staff.subject_id, staff.display_name, now,  # type: ignore[arg-type]
    )
    await uow.commit()
    logger.info("Staff %s took over conversation %s", staff.subject_id, conversation_id)
    return await _require(uow, conversation_id)


async def release(
    conversation_id: uuid.UUID,
    uow: UnitOfWork,
) -> Conversation:
    await _require(uow, conversation_id)
    await uow.conversations_w.release(conversation_id)
    await uow.commit()
    return await _require(uow, conversation_id)


async def close(
    conversation_id: uuid.UUID,
    status: ConversationStatus,
    now: datetime,
    uow: UnitOfWork,
) -> Conversation:
    await _require(uow, conversation_id)
    await uow.conversations_w.close(conversation_id, status, now)
    await uow.commit()
    logger.info("Conversation %s closed as %s", conversation_id, status)
    return await _require(uow, conversation_id)


async def send_staff_message(
    conversation_id: uuid.UUID,
    staff: Principal,
    content: str,
    now: datetime,
    uow: UnitOfWork,
) -> tuple[Conversation, Message]:
    await _require(uow, conversation_id)
    display_name = staff.display_name or "Staff"
    message = await _append(
        uow, conversation_id, SenderKind.STAFF, display_name, content, now,
    )
    await uow.commit()
    return await _require(uow, conversation_id), message


async def mark_read(
    conversation_id: uuid.UUID,
    now: datetime,
    uow: UnitOfWork,
) -> int:
    await _require(uow, conversation_id)
    changed = await uow.messages_w.mark_customer_messages_read(conversation_id, now)
    await uow.conversations_w.reset_unread(conversation_id)
    await uow.commit()
    return changed


async def set_customer_typing(
    session_id: str,
    is_typing: bool,
    uow: UnitOfWork,
) -> Conversation | None:
    conversation = await uow.conversations.get_by_session_id(session_id)
    if conversation is None:
        return None
    await uow.conversations_w.set_typing(conversation.id, ParticipantKind.CUSTOMER, is_typing)
    await uow.commit()
    return conversation


async def set_staff_typing(
    conversation_id: uuid.UUID,
    is_typing: bool,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await _require(uow, conversation_id)
    await uow.conversations_w.set_typing(conversation_id, ParticipantKind.STAFF, is_typing)
    await uow.commit()
    return conversation


async def rate(
    session_id: str,
    score: int,
    feedback: str | None,
    now: datetime,
    uow: UnitOfWork,
) -> tuple[Conversation, Rating]:
    conversation = await uow.conversations.get_by_session_id(session_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not conversation.can_be_rated():
        raise ConflictError("Conversation already rated")
    rating = Rating(score=score, feedback=feedback, rated_at=now)
    await uow.conversations_w.set_rating(conversation.id, rating)
    await uow.commit()
    return conversation, rating
