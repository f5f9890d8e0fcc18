"""SQLAlchemy ORM models for the rows the resolvers read.

Override blobs live in JSONB columns and are validated by the resolvers
before use; the tables themselves impose no shape on them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Fixed primary key of the single admin settings row
ADMIN_SETTINGS_SINGLETON_ID = "00000000-0000-0000-0000-000000000001"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class AdminSettingsTable(TimestampMixin, Base):
    """Global admin settings (singleton row)."""

    __tablename__ = "admin_settings"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: ADMIN_SETTINGS_SINGLETON_ID
    )
    config_defaults: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class LlmConfigTable(TimestampMixin, Base):
    """Named LLM config (model + sampling parameters)."""

    __tablename__ = "llm_configs"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    vision_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    advanced_parameters: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    memory_score_threshold: Mapped[Decimal | None] = mapped_column(
        Numeric(3, 2), nullable=True
    )
    memory_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    context_window_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_messages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_images: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_free_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_llm_configs_is_free_default", "is_free_default"),)


class PersonalityTable(TimestampMixin, Base):
    __tablename__ = "personalities"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    config_defaults: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class ChannelSettingsTable(TimestampMixin, Base):
    """Per-Discord-channel settings."""

    __tablename__ = "channel_settings"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    channel_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    guild_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    activated_personality_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("personalities.id", ondelete="SET NULL"), nullable=True
    )
    config_overrides: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class UserTable(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    discord_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    config_defaults: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    default_llm_config_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("llm_configs.id", ondelete="SET NULL"), nullable=True
    )


class UserPersonalityConfigTable(TimestampMixin, Base):
    """A user's settings for one personality."""

    __tablename__ = "user_personality_configs"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    personality_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("personalities.id", ondelete="CASCADE"), nullable=False
    )
    llm_config_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("llm_configs.id", ondelete="SET NULL"), nullable=True
    )
    config_overrides: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "personality_id", name="uq_user_personality_configs"),
    )
