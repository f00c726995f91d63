"""In-process registry of live participant connections."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from support_relay.domain.value_objects.enums import ParticipantKind
from support_relay.infrastructure.ws.protocol import outbound

logger = logging.getLogger(__name__)

AGENT_ONLINE_STATUS = "agentOnlineStatus"


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


class ConnectionRegistry:
    """Maps (participant kind, participant id) to one live connection.

    Customers are keyed by session id, staff by staff id. A newer connection
    for the same key replaces the older one. Delivery is best-effort: sending
    to an unknown key is a no-op and a connection that fails to send is
    dropped.
    """

    def __init__(self) -> None:
        self._connections: dict[ParticipantKind, dict[str, Connection]] = {
            kind: {} for kind in ParticipantKind
        }

    @property
    def staff_online(self) -> bool:
        return bool(self._connections[ParticipantKind.STAFF])

    def count(self, kind: ParticipantKind) -> int:
        return len(self._connections[kind])

    def resolve(self, kind: ParticipantKind, participant_id: str) -> Connection | None:
        return self._connections[kind].get(participant_id)

    async def register(
        self,
        kind: ParticipantKind,
        participant_id: str,
        connection: Connection,
    ) -> None:
        first_staff = kind == ParticipantKind.STAFF and not self.staff_online
        self._connections[kind][participant_id] = connection
        logger.debug(
            "Registered %s:%s (total=%d)", kind, participant_id, self.count(kind),
        )
        if first_staff:
            await self.broadcast(ParticipantKind.CUSTOMER, AGENT_ONLINE_STATUS, {"online": True})

    async def unregister(
        self,
        kind: ParticipantKind,
        participant_id: str,
        connection: Connection | None = None,
    ) -> bool:
        """Drop a mapping. With ``connection`` given, only if it is still the current one."""
        keyspace = self._connections[kind]
        current = keyspace.get(participant_id)
        if current is None or (connection is not None and current is not connection):
            return False
        del keyspace[participant_id]
        logger.debug("Unregistered %s:%s", kind, participant_id)
        if kind == ParticipantKind.STAFF and not keyspace:
            await self.broadcast(ParticipantKind.CUSTOMER, AGENT_ONLINE_STATUS, {"online": False})
        return True

    async def send(
        self,
        kind: ParticipantKind,
        participant_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> bool:
        conn = self.resolve(kind, participant_id)
        if conn is None:
            return False
        try:
            await conn.send_text(outbound(event_type, data))
        except Exception:
            logger.debug("Send to %s:%s failed, dropping", kind, participant_id, exc_info=True)
            await self.unregister(kind, participant_id, conn)
            return False
        return True

    async def broadcast(
        self,
        kind: ParticipantKind,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        raw = outbound(event_type, data)
        dead: list[tuple[str, Connection]] = []
        for participant_id, conn in list(self._connections[kind].items()):
            try:
                await conn.send_text(raw)
            except Exception:
                dead.append((participant_id, conn))
        for participant_id, conn in dead:
            await self.unregister(kind, participant_id, conn)

    def close(self) -> None:
        for keyspace in self._connections.values():
            keyspace.clear()
