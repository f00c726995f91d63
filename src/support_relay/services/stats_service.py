from __future__ import annotations

from datetime import datetime

from support_relay.application.dto.stats import ChatStats
from support_relay.application.ports.clock import start_of_day
from support_relay.application.uow import UnitOfWork
from support_relay.domain.value_objects.enums import OPEN_STATUSES, ConversationStatus


async def compute_stats(
    uow: UnitOfWork,
    now: datetime,
    tz_name: str = "UTC",
) -> ChatStats:
    """Dashboard counters, always recomputed from the store.

    "Waiting" is derived: open conversations that nobody on staff owns.
    """
    reader = uow.conversations
    return ChatStats(
        active_chats=await reader.count_by_status([ConversationStatus.ACTIVE]),
        waiting_chats=await reader.count_unowned(OPEN_STATUSES),
        today_chats=await reader.count_created_since(start_of_day(now, tz_name)),
        unread_messages=await reader.sum_unread(OPEN_STATUSES),
    )
