"""Redis Pub/Sub fan-out so deliveries reach connections held by any process."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from support_relay.domain.value_objects.enums import ParticipantKind
from support_relay.infrastructure.bus.serializer import deserialize_event, serialize_event
from support_relay.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(payload.get("event_type", "unknown"), payload)
        await self._redis.publish(channel, raw)


class RedisFanout:
    """Implements application.ports.bus.Fanout by publishing delivery requests.

    Every process (this one included) receives them through
    ``RedisPubSubSubscriber`` and delivers to its local registry.
    """

    def __init__(self, publisher: RedisPubSubPublisher, channel: str) -> None:
        self._publisher = publisher
        self._channel = channel

    async def send(
        self,
        kind: ParticipantKind,
        participant_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        await self._publisher.publish(
            self._channel,
            {"event_type": event_type, "kind": kind, "participant_id": participant_id, "data": data},
        )

    async def broadcast(
        self,
        kind: ParticipantKind,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        await self._publisher.publish(
            self._channel,
            {"event_type": event_type, "kind": kind, "participant_id": None, "data": data},
        )


async def deliver_locally(
    registry: ConnectionRegistry,
    event_type: str,
    payload: dict[str, Any],
) -> None:
    """Apply one fan-out message to the local registry."""
    try:
        kind = ParticipantKind(payload["kind"])
    except (KeyError, ValueError):
        logger.warning("Dropping fan-out message without a valid kind: %s", event_type)
        return
    data = payload.get("data") or {}
    participant_id = payload.get("participant_id")
    if participant_id is None:
        await registry.broadcast(kind, event_type, data)
    else:
        await registry.send(kind, participant_id, event_type, data)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches events."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event_type, data = deserialize_event(message["data"])
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
