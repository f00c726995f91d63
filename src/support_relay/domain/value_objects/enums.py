from __future__ import annotations

from enum import StrEnum


class ConversationStatus(StrEnum):
    ACTIVE = "active"
    WAITING = "waiting"
    CLOSED = "closed"
    RESOLVED = "resolved"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversationStatus.CLOSED, ConversationStatus.RESOLVED)


OPEN_STATUSES = (ConversationStatus.ACTIVE, ConversationStatus.WAITING)
TERMINAL_STATUSES = (ConversationStatus.CLOSED, ConversationStatus.RESOLVED)


class ParticipantKind(StrEnum):
    CUSTOMER = "customer"
    STAFF = "staff"


class SenderKind(StrEnum):
    CUSTOMER = "customer"
    STAFF = "staff"
    AUTOMATED = "automated"
