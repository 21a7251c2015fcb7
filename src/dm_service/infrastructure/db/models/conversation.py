from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from dm_service.infrastructure.db.base import Base

ACTIVE_DIRECT_PAIR_INDEX = "uq_conversations_active_direct_pair"
ACTIVE_DIRECT_WHERE = text("is_active AND conversation_type = 'direct'")


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    participant_low: Mapped[int] = mapped_column(BigInteger, nullable=False)
    participant_high: Mapped[int] = mapped_column(BigInteger, nullable=False)
    conversation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="direct")
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_message_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    unread_counts: Mapped[dict[str, int]] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true"),
    )
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

    __table_args__ = (
        Index(
            ACTIVE_DIRECT_PAIR_INDEX,
            "participant_low",
            "participant_high",
            unique=True,
            postgresql_where=ACTIVE_DIRECT_WHERE,
        ),
        Index("ix_conversations_high_participant", "participant_high"),
        Index("ix_conversations_last_message", last_message_at.desc()),
    )
