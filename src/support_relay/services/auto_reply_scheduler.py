"""Delayed, cancellable delivery of automated replies.

A scheduled job sleeps for a randomised, human-like delay and then runs
unless its token was invalidated in the meantime (staff took over). The job
itself is still expected to re-validate ownership atomically when it writes:
cancellation only short-circuits the common case.
"""
from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from uuid import UUID

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class CancellationToken:
    __slots__ = ("_cancelled", "fired")

    def __init__(self) -> None:
        self._cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AutoReplyScheduler:
    def __init__(
        self,
        min_delay: float = 0.8,
        max_delay: float = 1.5,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if not 0 <= min_delay <= max_delay:
            raise ValueError("expected 0 <= min_delay <= max_delay")
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._pending: dict[UUID, dict[asyncio.Task[None], CancellationToken]] = {}

    def next_delay(self) -> float:
        return self._rng.uniform(self._min_delay, self._max_delay)

    def pending(self, conversation_id: UUID) -> int:
        return len(self._pending.get(conversation_id, {}))

    def schedule(self, conversation_id: UUID, job: Job) -> CancellationToken:
        token = CancellationToken()
        delay = self.next_delay()
        task = asyncio.create_task(
            self._run(conversation_id, job, token, delay),
            name=f"auto-reply-{conversation_id}",
        )
        self._pending.setdefault(conversation_id, {})[task] = token
        task.add_done_callback(lambda t: self._forget(conversation_id, t))
        logger.debug("Auto-reply scheduled for %s in %.2fs", conversation_id, delay)
        return token

    def cancel(self, conversation_id: UUID) -> int:
        """Invalidate every pending reply for a conversation. Returns how many."""
        tasks = self._pending.get(conversation_id, {})
        for task, token in tasks.items():
            token.cancel()
            # Once fired, the job is mid-write and relies on its own atomic check.
            if not token.fired:
                task.cancel()
        if tasks:
            logger.debug("Cancelled %d pending auto-replies for %s", len(tasks), conversation_id)
        return len(tasks)

    async def drain(self) -> None:
        """Wait until every currently scheduled job has finished."""
        tasks = [t for jobs in self._pending.values() for t in jobs]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        for conversation_id in list(self._pending):
            self.cancel(conversation_id)
        await self.drain()

    def _forget(self, conversation_id: UUID, task: asyncio.Task[None]) -> None:
        jobs = self._pending.get(conversation_id)
        if jobs is None:
            return
        jobs.pop(task, None)
        if not jobs:
            del self._pending[conversation_id]

    async def _run(
        self,
        conversation_id: UUID,
        job: Job,
        token: CancellationToken,
        delay: float,
    ) -> None:
        await self._sleep(delay)
        if token.cancelled:
            return
        token.fired = True
        try:
            await job()
        except Exception:
            logger.exception("Auto-reply job failed for conversation %s", conversation_id)
