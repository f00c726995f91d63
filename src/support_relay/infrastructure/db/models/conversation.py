from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from support_relay.infrastructure.db.base import Base


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    session_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    customer_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(120), nullable=False, default="Guest")
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    owner_staff_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    owner_staff_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    ownership_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taken_over_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    last_activity_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    last_message_content: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_message_sender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    unread_for_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    customer_typing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    staff_typing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    rating_score: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    rating_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    rated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)), nullable=False, default=list, server_default=text("'{}'"),
    )
    staff_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=text("now()"),
    )

    messages = relationship(
        "MessageModel",
        back_populates="conversation",
        lazy="noload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_conversations_status_last_activity", "status", last_activity_at.desc()),
        Index("ix_conversations_owner_status", "owner_staff_id", "status"),
        Index("ix_conversations_customer_phone", "customer_phone"),
        Index("ix_conversations_created_at", "created_at"),
    )
