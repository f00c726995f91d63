from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from support_relay.application.dto.conversation import ConversationFilterDTO
from support_relay.application.exceptions import NotFoundError
from support_relay.domain.entities.conversation import (
    Conversation,
    CustomerProfile,
    Rating,
    preview_of,
)
from support_relay.domain.value_objects.enums import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    ConversationStatus,
    ParticipantKind,
    SenderKind,
)
from support_relay.infrastructure.db.mappers import conversation as mapper
from support_relay.infrastructure.db.models.conversation import ConversationModel
from support_relay.infrastructure.db.repositories._cursor import decode_cursor


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def get_by_session_id(self, session_id: str) -> Conversation | None:
        stmt = select(ConversationModel).where(ConversationModel.session_id == session_id)
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_open(self) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.status.in_(OPEN_STATUSES))
            .order_by(
                ConversationModel.unread_for_staff.desc(),
                ConversationModel.last_activity_at.desc(),
            )
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_for_admin(
        self,
        filters: ConversationFilterDTO,
    ) -> list[Conversation]:
        stmt = select(ConversationModel)
        if filters.status:
            stmt = stmt.where(ConversationModel.status == filters.status.value)
        if filters.owned is True:
            stmt = stmt.where(ConversationModel.owner_staff_id.is_not(None))
        elif filters.owned is False:
            stmt = stmt.where(ConversationModel.owner_staff_id.is_(None))
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(
                or_(
                    ConversationModel.customer_name.ilike(pattern),
                    ConversationModel.customer_phone.ilike(pattern),
                )
            )
        if filters.cursor:
            ts, cid = decode_cursor(filters.cursor)
            stmt = stmt.where(
                (ConversationModel.last_activity_at < ts)
                | (
                    (ConversationModel.last_activity_at == ts)
                    & (ConversationModel.id > cid)
                )
            )
        stmt = stmt.order_by(
            ConversationModel.last_activity_at.desc(),
            ConversationModel.id,
        ).limit(filters.limit)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_created_between(
        self,
        start: datetime | None,
        end: datetime | None,
    ) -> list[Conversation]:
        stmt = select(ConversationModel)
        if start is not None:
            stmt = stmt.where(ConversationModel.created_at >= start)
        if end is not None:
            stmt = stmt.where(ConversationModel.created_at <= end)
        stmt = stmt.order_by(ConversationModel.created_at.desc())
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_by_status(self, statuses: Sequence[str]) -> int:
        stmt = (
            select(func.count())
            .select_from(ConversationModel)
            .where(ConversationModel.status.in_(statuses))
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def count_unowned(self, statuses: Sequence[str]) -> int:
        stmt = (
            select(func.count())
            .select_from(ConversationModel)
            .where(
                ConversationModel.status.in_(statuses),
                ConversationModel.owner_staff_id.is_(None),
            )
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def count_created_since(self, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(ConversationModel)
            .where(ConversationModel.created_at >= since)
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def sum_unread(self, statuses: Sequence[str]) -> int:
        stmt = select(func.coalesce(func.sum(ConversationModel.unread_for_staff), 0)).where(
            ConversationModel.status.in_(statuses)
        )
        return int((await self._session.execute(stmt)).scalar_one())


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _update(self, conversation_id: UUID, **values) -> int:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def create(self, conversation: Conversation) -> Conversation:
        model = mapper.entity_to_model(conversation)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def reopen_if_terminal(self, conversation_id: UUID) -> bool:
        stmt = (
            update(ConversationModel)
            .where(
                ConversationModel.id == conversation_id,
                ConversationModel.status.in_(TERMINAL_STATUSES),
            )
            .values(
                status=ConversationStatus.ACTIVE,
                owner_staff_id=None,
                owner_staff_name=None,
                ownership_version=ConversationModel.ownership_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def update_customer(
        self,
        conversation_id: UUID,
        profile: CustomerProfile,
    ) -> None:
        await self._update(
            conversation_id,
            customer_name=profile.name,
            customer_phone=profile.phone,
            customer_email=profile.email,
        )

    async def record_message(
        self,
        conversation_id: UUID,
        sender: str,
        content: str,
        ts: datetime,
    ) -> tuple[int, datetime]:
        # SET expressions see the pre-update row, so both timestamps agree.
        created_at = func.greatest(ConversationModel.last_activity_at, ts)
        unread_delta = 1 if sender == SenderKind.CUSTOMER else 0
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(
                message_count=ConversationModel.message_count + 1,
                unread_for_staff=ConversationModel.unread_for_staff + unread_delta,
                last_activity_at=created_at,
                last_message_content=preview_of(content),
                last_message_sender=sender,
                last_message_at=created_at,
            )
            .returning(ConversationModel.message_count, ConversationModel.last_activity_at)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            raise NotFoundError("Conversation not found")
        return row.message_count, row.last_activity_at

    async def claim_unowned(self, conversation_id: UUID, expected_version: int) -> bool:
        stmt = (
            select(ConversationModel.id)
            .where(
                ConversationModel.id == conversation_id,
                ConversationModel.owner_staff_id.is_(None),
                ConversationModel.ownership_version == expected_version,
                ConversationModel.status.in_(OPEN_STATUSES),
            )
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def take_over(
        self,
        conversation_id: UUID,
        staff_id: str,
        staff_name: str | None,
        ts: datetime,
    ) -> None:
        await self._update(
            conversation_id,
            status=ConversationStatus.ACTIVE,
            owner_staff_id=staff_id,
            owner_staff_name=staff_name,
            taken_over_at=ts,
            ownership_version=ConversationModel.ownership_version + 1,
        )

    async def release(self, conversation_id: UUID) -> None:
        await self._update(
            conversation_id,
            owner_staff_id=None,
            owner_staff_name=None,
            staff_typing=False,
            ownership_version=ConversationModel.ownership_version + 1,
        )

    async def close(self, conversation_id: UUID, status: str, ts: datetime) -> None:
        await self._update(
            conversation_id,
            status=status,
            owner_staff_id=None,
            owner_staff_name=None,
            closed_at=ts,
            staff_typing=False,
            ownership_version=ConversationModel.ownership_version + 1,
        )

    async def reset_unread(self, conversation_id: UUID) -> None:
        await self._update(conversation_id, unread_for_staff=0)

    async def set_typing(self, conversation_id: UUID, kind: str, is_typing: bool) -> None:
        if kind == ParticipantKind.STAFF:
            await self._update(conversation_id, staff_typing=is_typing)
        else:
            await self._update(conversation_id, customer_typing=is_typing)

    async def set_rating(self, conversation_id: UUID, rating: Rating) -> None:
        await self._update(
            conversation_id,
            rating_score=rating.score,
            rating_feedback=rating.feedback,
            rated_at=rating.rated_at,
        )

    async def set_notes(self, conversation_id: UUID, notes: str | None) -> None:
        await self._update(conversation_id, staff_notes=notes)

    async def set_tags(self, conversation_id: UUID, tags: Sequence[str]) -> None:
        await self._update(conversation_id, tags=list(tags))

    async def delete(self, conversation_id: UUID) -> None:
        stmt = delete(ConversationModel).where(ConversationModel.id == conversation_id)
        await self._session.execute(stmt.execution_options(synchronize_session=False))
