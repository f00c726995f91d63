"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import json
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any
from uuid import UUID

import pytest

from support_relay.application.dto.conversation import ConversationFilterDTO
from support_relay.application.dto.principal import Principal
from support_relay.application.exceptions import NotFoundError
from support_relay.domain.entities.conversation import (
    Conversation,
    CustomerProfile,
    MessagePreview,
    Rating,
    preview_of,
)
from support_relay.domain.entities.message import Message
from support_relay.domain.value_objects.enums import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    ConversationStatus,
    ParticipantKind,
    SenderKind,
)
from support_relay.infrastructure.db.repositories._cursor import decode_cursor
from support_relay.infrastructure.ws.registry import ConnectionRegistry
from support_relay.services.auto_reply_scheduler import AutoReplyScheduler
from support_relay.services.auto_responder import AutoResponder, StoreContext
from support_relay.services.chat_router import ChatEventRouter

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def customer_principal() -> Principal:
    return Principal.anonymous()


@pytest.fixture
def staff_principal() -> Principal:
    return Principal(
        kind=ParticipantKind.STAFF, subject_id="7", display_name="Lan", roles=["staff"],
    )


def make_conversation(
    *,
    conversation_id: UUID | None = None,
    session_id: str | None = None,
    status: str = ConversationStatus.ACTIVE,
    owner: str | None = None,
    created_at: datetime = T0,
    **overrides: Any,
) -> Conversation:
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        session_id=session_id or uuid.uuid4().hex,
        status=status,
        created_at=created_at,
        updated_at=created_at,
        last_activity_at=overrides.pop("last_activity_at", created_at),
        owner_staff_id=owner,
        owner_staff_name="Lan" if owner else None,
        **overrides,
    )


def make_message(
    *,
    conversation_id: UUID,
    seq: int = 1,
    sender: str = SenderKind.CUSTOMER,
    content: str = "hello",
    created_at: datetime = T0,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        seq=seq,
        sender=sender,
        sender_display_name="Guest",
        content=content,
        is_read=sender != SenderKind.CUSTOMER,
        read_at=None,
        created_at=created_at,
    )


@dataclass
class FakeStore:
    """Backing data shared by every FakeUoW a factory hands out."""

    conversations: dict[UUID, Conversation] = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)

    def add(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    def messages_for(self, conversation_id: UUID) -> list[Message]:
        return sorted(
            (m for m in self.messages if m.conversation_id == conversation_id),
            key=lambda m: m.seq,
        )


@dataclass
class FakeConversationReader:
    _store: FakeStore

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.conversations.get(conversation_id)

    async def get_by_session_id(self, session_id: str) -> Conversation | None:
        for c in self._store.conversations.values():
            if c.session_id == session_id:
                return c
        return None

    async def list_open(self) -> list[Conversation]:
        convs = [c for c in self._store.conversations.values() if c.status in OPEN_STATUSES]
        convs.sort(key=lambda c: c.last_activity_at, reverse=True)
        convs.sort(key=lambda c: c.unread_for_staff, reverse=True)
        return convs

    async def list_for_admin(self, filters: ConversationFilterDTO) -> list[Conversation]:
        convs = list(self._store.conversations.values())
        if filters.status:
            convs = [c for c in convs if c.status == filters.status]
        if filters.owned is not None:
            convs = [c for c in convs if c.is_owned == filters.owned]
        if filters.search:
            needle = filters.search.lower()
            convs = [
                c for c in convs
                if needle in c.customer.name.lower() or needle in (c.customer.phone or "")
            ]
        convs.sort(key=lambda c: str(c.id))
        convs.sort(key=lambda c: c.last_activity_at, reverse=True)
        if filters.cursor:
            ts, cid = decode_cursor(filters.cursor)
            convs = [
                c for c in convs
                if c.last_activity_at < ts or (c.last_activity_at == ts and str(c.id) > str(cid))
            ]
        return convs[: filters.limit]

    async def list_created_between(
        self, start: datetime | None, end: datetime | None,
    ) -> list[Conversation]:
        convs = [
            c for c in self._store.conversations.values()
            if (start is None or c.created_at >= start) and (end is None or c.created_at <= end)
        ]
        return sorted(convs, key=lambda c: c.created_at, reverse=True)

    async def count_by_status(self, statuses: Sequence[str]) -> int:
        return sum(1 for c in self._store.conversations.values() if c.status in statuses)

    async def count_unowned(self, statuses: Sequence[str]) -> int:
        return sum(
            1 for c in self._store.conversations.values()
            if c.status in statuses and not c.is_owned
        )

    async def count_created_since(self, since: datetime) -> int:
        return sum(1 for c in self._store.conversations.values() if c.created_at >= since)

    async def sum_unread(self, statuses: Sequence[str]) -> int:
        return sum(
            c.unread_for_staff for c in self._store.conversations.values() if c.status in statuses
        )


@dataclass
class FakeConversationWriter:
    _store: FakeStore

    def _update(self, conversation_id: UUID, **changes: Any) -> Conversation:
        current = self._store.conversations.get(conversation_id)
        if current is None:
            raise NotFoundError("Conversation not found")
        updated = dataclasses.replace(current, **changes)
        self._store.conversations[conversation_id] = updated
        return updated

    async def create(self, conversation: Conversation) -> Conversation:
        return self._store.add(conversation)

    async def reopen_if_terminal(self, conversation_id: UUID) -> bool:
        current = self._store.conversations[conversation_id]
        if current.status not in TERMINAL_STATUSES:
            return False
        self._update(
            conversation_id,
            status=ConversationStatus.ACTIVE,
            owner_staff_id=None,
            owner_staff_name=None,
            ownership_version=current.ownership_version + 1,
        )
        return True

    async def update_customer(self, conversation_id: UUID, profile: CustomerProfile) -> None:
        self._update(conversation_id, customer=profile)

    async def record_message(
        self, conversation_id: UUID, sender: str, content: str, ts: datetime,
    ) -> tuple[int, datetime]:
        current = self._store.conversations.get(conversation_id)
        if current is None:
            raise NotFoundError("Conversation not found")
        created_at = max(current.last_activity_at, ts)
        updated = self._update(
            conversation_id,
            message_count=current.message_count + 1,
            unread_for_staff=current.unread_for_staff + (1 if sender == SenderKind.CUSTOMER else 0),
            last_activity_at=created_at,
            last_message=MessagePreview(preview_of(content), sender, created_at),
        )
        return updated.message_count, created_at

    async def claim_unowned(self, conversation_id: UUID, expected_version: int) -> bool:
        current = self._store.conversations.get(conversation_id)
        return (
            current is not None
            and not current.is_owned
            and current.ownership_version == expected_version
            and current.status in OPEN_STATUSES
        )

    async def take_over(
        self, conversation_id: UUID, staff_id: str, staff_name: str | None, ts: datetime,
    ) -> None:
        current = self._store.conversations[conversation_id]
        self._update(
            conversation_id,
            status=ConversationStatus.ACTIVE,
            owner_staff_id=staff_id,
            owner_staff_name=staff_name,
            taken_over_at=ts,
            ownership_version=current.ownership_version + 1,
        )

    async def release(self, conversation_id: UUID) -> None:
        current = self._store.conversations[conversation_id]
        self._update(
            conversation_id,
            owner_staff_id=None,
            owner_staff_name=None,
            staff_typing=False,
            ownership_version=current.ownership_version + 1,
        )

    async def close(self, conversation_id: UUID, status: str, ts: datetime) -> None:
        current = self._store.conversations[conversation_id]
        self._update(
            conversation_id,
            status=status,
            owner_staff_id=None,
            owner_staff_name=None,
            closed_at=ts,
            staff_typing=False,
            ownership_version=current.ownership_version + 1,
        )

    async def reset_unread(self, conversation_id: UUID) -> None:
        self._update(conversation_id, unread_for_staff=0)

    async def set_typing(self, conversation_id: UUID, kind: str, is_typing: bool) -> None:
        if kind == ParticipantKind.STAFF:
            self._update(conversation_id, staff_typing=is_typing)
        else:
            self._update(conversation_id, customer_typing=is_typing)

    async def set_rating(self, conversation_id: UUID, rating: Rating) -> None:
        self._update(conversation_id, rating=rating)

    async def set_notes(self, conversation_id: UUID, notes: str | None) -> None:
        self._update(conversation_id, staff_notes=notes)

    async def set_tags(self, conversation_id: UUID, tags: Sequence[str]) -> None:
        self._update(conversation_id, tags=tuple(tags))

    async def delete(self, conversation_id: UUID) -> None:
        self._store.conversations.pop(conversation_id, None)
        self._store.messages = [
            m for m in self._store.messages if m.conversation_id != conversation_id
        ]


@dataclass
class FakeMessageReader:
    _store: FakeStore

    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        return self._store.messages_for(conversation_id)


@dataclass
class FakeMessageWriter:
    _store: FakeStore

    async def create(self, message: Message) -> Message:
        self._store.messages.append(message)
        return message

    async def mark_customer_messages_read(self, conversation_id: UUID, ts: datetime) -> int:
        changed = 0
        for i, m in enumerate(self._store.messages):
            if m.conversation_id == conversation_id and m.sender == SenderKind.CUSTOMER and not m.is_read:
                self._store.messages[i] = dataclasses.replace(m, is_read=True, read_at=ts)
                changed += 1
        return changed


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    store: FakeStore = field(default_factory=FakeStore)
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        self.conversations = FakeConversationReader(self.store)
        self.conversations_w = FakeConversationWriter(self.store)
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


class FakeUoWFactory:
    """Callable returning a fresh FakeUoW over one shared store."""

    def __init__(self, store: FakeStore | None = None) -> None:
        self.store = store or FakeStore()
        self.opened = 0

    def __call__(self) -> FakeUoW:
        self.opened += 1
        return FakeUoW(self.store)


class FakeConnection:
    def __init__(self, *, fail: bool = False) -> None:
        self.frames: list[dict[str, Any]] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.frames.append(json.loads(data))

    def types(self) -> list[str]:
        return [f["type"] for f in self.frames]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.frames if f["type"] == event_type]

    def clear(self) -> None:
        self.frames.clear()


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


class GatedSleep:
    """Scheduler sleep that blocks until the test opens the gate."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await self.gate.wait()

    def open(self) -> None:
        self.gate.set()


STORE = StoreContext(name="MINH ANH", hotline="0839 477 199", zalo="0944 600 344")


@pytest.fixture
def uow_factory() -> FakeUoWFactory:
    return FakeUoWFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def responder() -> AutoResponder:
    return AutoResponder(STORE)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def gated_sleep() -> GatedSleep:
    return GatedSleep()


@pytest.fixture
def chat_router(uow_factory, registry, responder, clock, gated_sleep) -> ChatEventRouter:
    return ChatEventRouter(
        registry=registry,
        uow_factory=uow_factory,
        responder=responder,
        scheduler=AutoReplyScheduler(0, 0, sleep=gated_sleep),
        clock=clock,
        bot_name="Assistant",
    )
