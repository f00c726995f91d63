"""Seed development data: creates the schema and one sample conversation."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

from support_relay.application.dto.principal import Principal
from support_relay.config import settings
from support_relay.domain.entities.conversation import CustomerProfile
from support_relay.domain.value_objects.enums import ParticipantKind
from support_relay.infrastructure.db.session import create_schema
from support_relay.infrastructure.db.uow import session_uow
from support_relay.services import conversation_service
from support_relay.services.auto_responder import AutoResponder, StoreContext

logger = logging.getLogger(__name__)


async def seed() -> None:
    await create_schema()

    responder = AutoResponder(
        StoreContext(settings.STORE_NAME, settings.STORE_HOTLINE, settings.STORE_ZALO),
    )
    customer = Principal.anonymous()
    staff = Principal(kind=ParticipantKind.STAFF, subject_id="1", display_name="Minh Anh")
    session_id = f"dev-{uuid.uuid4().hex[:12]}"
    now = datetime.now(timezone.utc)

    async with session_uow() as uow:
        state = await conversation_service.open_session(
            session_id, customer, responder.greeting(), settings.AUTOMATED_SENDER_NAME, now, uow,
        )
    conv_id = state.conversation.id

    turns = [
        "Xin chào, mâm quả cưới giá bao nhiêu vậy shop?",
        "Mình muốn đặt cho ngày 20 tháng sau.",
    ]
    for i, text in enumerate(turns, start=1):
        ts = now + timedelta(seconds=10 * i)
        async with session_uow() as uow:
            turn = await conversation_service.receive_customer_message(
                session_id,
                customer,
                text,
                CustomerProfile(name="Chị Lan", phone="0901234567"),
                ts,
                uow,
            )
        async with session_uow() as uow:
            await conversation_service.append_automated_reply(
                conv_id,
                turn.conversation.ownership_version,
                responder.respond(text),
                settings.AUTOMATED_SENDER_NAME,
                ts + timedelta(seconds=1),
                uow,
            )

    async with session_uow() as uow:
        await conversation_service.take_over(conv_id, staff, now + timedelta(minutes=1), uow)
    async with session_uow() as uow:
        await conversation_service.send_staff_message(
            conv_id, staff, "Dạ em chào chị, em xin phép tư vấn mẫu mâm quả ạ.",
            now + timedelta(minutes=1, seconds=5), uow,
        )

    logger.info("Seeded conversation %s (session %s)", conv_id, session_id)


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    asyncio.run(seed())


if __name__ == "__main__":
    main()
