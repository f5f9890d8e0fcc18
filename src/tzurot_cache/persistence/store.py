"""Store boundary for the resolvers.

The resolvers depend only on the ``ConfigStore`` / ``LlmConfigStore``
protocols; each method is a single read and returns raw JSONB blobs or
plain rows, unvalidated. ``SqlConfigStore`` implements both over
SQLAlchemy, opening a separate session per read so tier fetches can run
concurrently.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, NamedTuple, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tzurot_cache.persistence.db import read_session
from tzurot_cache.persistence.tables import (
    ADMIN_SETTINGS_SINGLETON_ID,
    AdminSettingsTable,
    ChannelSettingsTable,
    LlmConfigTable,
    PersonalityTable,
    UserPersonalityConfigTable,
    UserTable,
)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class UserConfigRows(NamedTuple):
    """A user's global override blob and their blob for one personality."""

    config_defaults: Any
    personality_overrides: Any


@dataclass(frozen=True, slots=True)
class LlmConfigRow:
    """LLM config columns needed for resolution."""

    name: str
    model: str
    vision_model: str | None = None
    advanced_parameters: Any = None
    memory_score_threshold: Decimal | float | None = None
    memory_limit: int | None = None
    context_window_tokens: int | None = None
    max_messages: int | None = None
    max_age: int | None = None
    max_images: int | None = None


class UserLlmConfigRows(NamedTuple):
    """A user's global default LLM config and their per-personality choice."""

    default_config: LlmConfigRow | None
    personality_config: LlmConfigRow | None


class ConfigStore(Protocol):
    async def get_admin_config_defaults(self) -> Any: ...

    async def get_personality_config_defaults(self, personality_id: str) -> Any: ...

    async def get_channel_config_overrides(self, channel_id: str) -> Any: ...

    async def get_user_config_overrides(
        self, discord_id: str, personality_id: str | None
    ) -> UserConfigRows | None: ...


class LlmConfigStore(Protocol):
    async def get_user_llm_configs(
        self, discord_id: str, personality_id: str
    ) -> UserLlmConfigRows | None: ...

    async def get_free_default_llm_config(self) -> LlmConfigRow | None: ...


_LLM_CONFIG_COLUMNS = (
    LlmConfigTable.name,
    LlmConfigTable.model,
    LlmConfigTable.vision_model,
    LlmConfigTable.advanced_parameters,
    LlmConfigTable.memory_score_threshold,
    LlmConfigTable.memory_limit,
    LlmConfigTable.context_window_tokens,
    LlmConfigTable.max_messages,
    LlmConfigTable.max_age,
    LlmConfigTable.max_images,
)


class SqlConfigStore:
    """ConfigStore and LlmConfigStore over PostgreSQL."""

    def __init__(self, session_factory: SessionFactory = read_session) -> None:
        self._session_factory = session_factory

    async def _scalar(self, stmt: Any) -> Any:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Config cascade tiers
    # -------------------------------------------------------------------------

    async def get_admin_config_defaults(self) -> Any:
        return await self._scalar(
            select(AdminSettingsTable.config_defaults).where(
                AdminSettingsTable.id == ADMIN_SETTINGS_SINGLETON_ID
            )
        )

    async def get_personality_config_defaults(self, personality_id: str) -> Any:
        return await self._scalar(
            select(PersonalityTable.config_defaults).where(PersonalityTable.id == personality_id)
        )

    async def get_channel_config_overrides(self, channel_id: str) -> Any:
        return await self._scalar(
            select(ChannelSettingsTable.config_overrides).where(
                ChannelSettingsTable.channel_id == channel_id
            )
        )

    async def get_user_config_overrides(
        self, discord_id: str, personality_id: str | None
    ) -> UserConfigRows | None:
        """User defaults plus the user/personality overrides in one query."""
        if personality_id is None:
            stmt = select(UserTable.config_defaults).where(UserTable.discord_id == discord_id)
        else:
            stmt = (
                select(UserTable.config_defaults, UserPersonalityConfigTable.config_overrides)
                .outerjoin(
                    UserPersonalityConfigTable,
                    (UserPersonalityConfigTable.user_id == UserTable.id)
                    & (UserPersonalityConfigTable.personality_id == personality_id),
                )
                .where(UserTable.discord_id == discord_id)
            )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.first()

        if row is None:
            return None
        if personality_id is None:
            return UserConfigRows(config_defaults=row[0], personality_overrides=None)
        return UserConfigRows(config_defaults=row[0], personality_overrides=row[1])

    # -------------------------------------------------------------------------
    # LLM config
    # -------------------------------------------------------------------------

    async def get_user_llm_configs(
        self, discord_id: str, personality_id: str
    ) -> UserLlmConfigRows | None:
        """The user's default LLM config and per-personality choice in one query."""
        default_config = aliased(LlmConfigTable)
        personality_config = aliased(LlmConfigTable)

        stmt = (
            select(
                UserTable.id,
                *(getattr(default_config, c.key) for c in _LLM_CONFIG_COLUMNS),
                *(getattr(personality_config, c.key) for c in _LLM_CONFIG_COLUMNS),
            )
            .outerjoin(default_config, default_config.id == UserTable.default_llm_config_id)
            .outerjoin(
                UserPersonalityConfigTable,
                (UserPersonalityConfigTable.user_id == UserTable.id)
                & (UserPersonalityConfigTable.personality_id == personality_id),
            )
            .outerjoin(
                personality_config,
                personality_config.id == UserPersonalityConfigTable.llm_config_id,
            )
            .where(UserTable.discord_id == discord_id)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.first()

        if row is None:
            return None

        width = len(_LLM_CONFIG_COLUMNS)
        default_values = row[1 : 1 + width]
        personality_values = row[1 + width : 1 + 2 * width]
        return UserLlmConfigRows(
            default_config=_row_from_values(default_values),
            personality_config=_row_from_values(personality_values),
        )

    async def get_free_default_llm_config(self) -> LlmConfigRow | None:
        stmt = (
            select(*_LLM_CONFIG_COLUMNS)
            .where(LlmConfigTable.is_free_default.is_(True))
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.first()
        if row is None:
            return None
        return _row_from_values(row)


def _row_from_values(values: Any) -> LlmConfigRow | None:
    """Build a row from positional LLM config columns; None if the join missed."""
    fields = dict(zip((c.key for c in _LLM_CONFIG_COLUMNS), values))
    if fields["model"] is None:
        return None
    return LlmConfigRow(**fields)
