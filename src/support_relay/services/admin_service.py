"""Staff console operations that sit outside the real-time flow."""
from __future__ import annotations

import csv
import io
import logging
import uuid
from collections.abc import Sequence
from datetime import datetime

from support_relay.application.dto.conversation import ConversationFilterDTO, ExportRangeDTO
from support_relay.application.exceptions import NotFoundError, ValidationError
from support_relay.application.uow import UnitOfWork
from support_relay.domain.entities.conversation import Conversation
from support_relay.domain.entities.message import Message
from support_relay.infrastructure.db.repositories._cursor import encode_cursor

logger = logging.getLogger(__name__)

MAX_TAGS = 20
MAX_TAG_LENGTH = 50

CSV_HEADER = (
    "id",
    "customer_name",
    "phone",
    "email",
    "message_count",
    "status",
    "rating",
    "created_at",
)


async def _require(uow: UnitOfWork, conversation_id: uuid.UUID) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def list_conversations(
    filters: ConversationFilterDTO,
    uow: UnitOfWork,
) -> tuple[list[Conversation], str | None]:
    conversations = await uow.conversations.list_for_admin(filters)
    next_cursor = None
    if len(conversations) == filters.limit:
        last = conversations[-1]
        next_cursor = encode_cursor(last.last_activity_at, last.id)
    return conversations, next_cursor


async def list_active(uow: UnitOfWork) -> list[Conversation]:
    return await uow.conversations.list_open()


async def get_conversation(
    conversation_id: uuid.UUID,
    uow: UnitOfWork,
) -> tuple[Conversation, list[Message]]:
    conversation = await _require(uow, conversation_id)
    messages = await uow.messages.list_messages(conversation_id)
    return conversation, messages


async def update_notes(
    conversation_id: uuid.UUID,
    notes: str | None,
    uow: UnitOfWork,
) -> Conversation:
    await _require(uow, conversation_id)
    await uow.conversations_w.set_notes(conversation_id, notes or None)
    await uow.commit()
    return await _require(uow, conversation_id)


def _clean_tags(tags: Sequence[str]) -> list[str]:
    cleaned: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag or tag in cleaned:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tag longer than {MAX_TAG_LENGTH} characters")
        cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags allowed")
    return cleaned


async def update_tags(
    conversation_id: uuid.UUID,
    tags: Sequence[str],
    uow: UnitOfWork,
) -> Conversation:
    cleaned = _clean_tags(tags)
    await _require(uow, conversation_id)
    await uow.conversations_w.set_tags(conversation_id, cleaned)
    await uow.commit()
    return await _require(uow, conversation_id)


async def delete_conversation(
    conversation_id: uuid.UUID,
    uow: UnitOfWork,
) -> None:
    await _require(uow, conversation_id)
    await uow.conversations_w.delete(conversation_id)
    await uow.commit()
    logger.info("Conversation %s deleted", conversation_id)


def _iso(ts: datetime | None) -> str:
    return ts.isoformat() if ts is not None else ""


async def export_csv(export_range: ExportRangeDTO, uow: UnitOfWork) -> str:
    if (
        export_range.start is not None
        and export_range.end is not None
        and export_range.start > export_range.end
    ):
        raise ValidationError("start must not be after end")

    conversations = await uow.conversations.list_created_between(
        export_range.start, export_range.end,
    )
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for c in conversations:
        writer.writerow(
            (
                str(c.id),
                c.customer.name,
                c.customer.phone or "",
                c.customer.email or "",
                c.message_count,
                c.status,
                c.rating.score if c.rating is not None else "",
                _iso(c.created_at),
            )
        )
    return buffer.getvalue()
