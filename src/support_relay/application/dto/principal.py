from __future__ import annotations

from dataclasses import dataclass, field

from support_relay.domain.value_objects.enums import ParticipantKind

STAFF_ROLES = frozenset({"staff", "admin"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller identity resolved from a bearer token (or anonymous)."""

    kind: ParticipantKind
    subject_id: str | None = None
    display_name: str | None = None
    roles: list[str] = field(default_factory=list)

    @property
    def is_staff(self) -> bool:
        return self.kind == ParticipantKind.STAFF and self.subject_id is not None

    @property
    def is_anonymous(self) -> bool:
        return self.subject_id is None

    @classmethod
    def anonymous(cls) -> Principal:
        return cls(kind=ParticipantKind.CUSTOMER)

    @classmethod
    def from_claims(cls, payload: dict) -> Principal:
        role = payload.get("kind", payload.get("role", "customer"))
        roles = list(payload.get("roles", []))
        is_staff = role in STAFF_ROLES or bool(STAFF_ROLES.intersection(roles))
        return cls(
            kind=ParticipantKind.STAFF if is_staff else ParticipantKind.CUSTOMER,
            subject_id=str(payload["sub"]),
            display_name=payload.get("name"),
            roles=roles,
        )
