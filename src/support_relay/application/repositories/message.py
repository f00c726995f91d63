from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from support_relay.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        """Full history in insertion order."""
        ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_customer_messages_read(
        self, conversation_id: UUID, ts: datetime
    ) -> int:
        """Flag unread customer messages as read. Returns how many changed."""
        ...
