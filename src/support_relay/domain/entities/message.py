from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    seq: int
    sender: str
    sender_display_name: str
    content: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime
