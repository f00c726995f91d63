from __future__ import annotations

from typing import Any, Protocol

from support_relay.domain.value_objects.enums import ParticipantKind


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class Fanout(Protocol):
    """Best-effort delivery of outbound events to live participants."""

    async def send(
        self,
        kind: ParticipantKind,
        participant_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> None: ...

    async def broadcast(
        self,
        kind: ParticipantKind,
        event_type: str,
        data: dict[str, Any],
    ) -> None: ...
