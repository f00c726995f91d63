from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from support_relay.domain.value_objects.enums import ConversationStatus

PREVIEW_LENGTH = 100
DEFAULT_CUSTOMER_NAME = "Guest"


@dataclass(frozen=True, slots=True)
class CustomerProfile:
    name: str = DEFAULT_CUSTOMER_NAME
    phone: str | None = None
    email: str | None = None

    def merged(self, other: CustomerProfile | None) -> CustomerProfile:
        """Overlay the non-empty fields of ``other`` onto this profile."""
        if other is None:
            return self
        return CustomerProfile(
            name=other.name or self.name,
            phone=other.phone or self.phone,
            email=other.email or self.email,
        )


@dataclass(frozen=True, slots=True)
class MessagePreview:
    content: str
    sender: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Rating:
    score: int
    feedback: str | None
    rated_at: datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    session_id: str
    status: str
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime
    customer: CustomerProfile = field(default_factory=CustomerProfile)
    customer_user_id: str | None = None
    owner_staff_id: str | None = None
    owner_staff_name: str | None = None
    ownership_version: int = 0
    taken_over_at: datetime | None = None
    closed_at: datetime | None = None
    last_message: MessagePreview | None = None
    unread_for_staff: int = 0
    message_count: int = 0
    customer_typing: bool = False
    staff_typing: bool = False
    rating: Rating | None = None
    tags: tuple[str, ...] = ()
    staff_notes: str | None = None
    user_agent: str | None = None

    @property
    def is_owned(self) -> bool:
        return self.owner_staff_id is not None

    @property
    def is_terminal(self) -> bool:
        return ConversationStatus(self.status).is_terminal

    @property
    def is_waiting(self) -> bool:
        """Open and nobody on staff has picked it up."""
        return not self.is_terminal and not self.is_owned

    def can_be_rated(self) -> bool:
        """One rating per closure cycle.

        A cycle ends at each close; an existing rating only blocks a new one
        if it was given after the most recent close (or no close yet).
        """
        if self.rating is None:
            return True
        if self.closed_at is None:
            return False
        return self.rating.rated_at < self.closed_at


def preview_of(content: str) -> str:
    return content[:PREVIEW_LENGTH]
