from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from support_relay.domain.value_objects.enums import ConversationStatus


@dataclass(frozen=True, slots=True)
class ConversationFilterDTO:
    status: ConversationStatus | None = None
    owned: bool | None = None
    search: str | None = None
    cursor: str | None = None
    limit: int = 20


@dataclass(frozen=True, slots=True)
class ExportRangeDTO:
    start: datetime | None = None
    end: datetime | None = None
