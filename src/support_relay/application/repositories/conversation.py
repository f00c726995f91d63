from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from support_relay.application.dto.conversation import ConversationFilterDTO
from support_relay.domain.entities.conversation import Conversation, CustomerProfile, Rating


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_by_session_id(self, session_id: str) -> Conversation | None: ...

    async def list_open(self) -> list[Conversation]:
        """Active/waiting conversations, most unread first, then most recent."""
        ...

    async def list_for_admin(
        self, filters: ConversationFilterDTO
    ) -> list[Conversation]: ...

    async def list_created_between(
        self, start: datetime | None, end: datetime | None
    ) -> list[Conversation]: ...

    async def count_by_status(self, statuses: Sequence[str]) -> int: ...

    async def count_unowned(self, statuses: Sequence[str]) -> int: ...

    async def count_created_since(self, since: datetime) -> int: ...

    async def sum_unread(self, statuses: Sequence[str]) -> int: ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation: ...

    async def reopen_if_terminal(self, conversation_id: UUID) -> bool:
        """Move a closed/resolved conversation back to active and clear its owner.

        Returns False when the conversation was not terminal.
        """
        ...

    async def update_customer(
        self, conversation_id: UUID, profile: CustomerProfile
    ) -> None: ...

    async def record_message(
        self,
        conversation_id: UUID,
        sender: str,
        content: str,
        ts: datetime,
    ) -> tuple[int, datetime]:
        """Bump message counters and the preview for a new message.

        Returns (seq, created_at) for the message about to be inserted.
        """
        ...

    async def claim_unowned(
        self, conversation_id: UUID, expected_version: int
    ) -> bool:
        """Lock the row if it is still unowned, open and at ``expected_version``."""
        ...

    async def take_over(
        self,
        conversation_id: UUID,
        staff_id: str,
        staff_name: str | None,
        ts: datetime,
    ) -> None: ...

    async def release(self, conversation_id: UUID) -> None: ...

    async def close(
        self, conversation_id: UUID, status: str, ts: datetime
    ) -> None: ...

    async def reset_unread(self, conversation_id: UUID) -> None: ...

    async def set_typing(
        self, conversation_id: UUID, kind: str, is_typing: bool
    ) -> None: ...

    async def set_rating(self, conversation_id: UUID, rating: Rating) -> None: ...

    async def set_notes(self, conversation_id: UUID, notes: str | None) -> None: ...

    async def set_tags(self, conversation_id: UUID, tags: Sequence[str]) -> None: ...

    async def delete(self, conversation_id: UUID) -> None: ...
