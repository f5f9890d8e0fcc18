"""Config cascade resolver.

Computes the effective config overrides for a (user, personality,
channel) combination by merging every applicable tier on top of the
hardcoded defaults:

    hardcoded -> admin -> personality -> channel -> user-default -> user-personality

Tier rows are fetched concurrently; the merge is strictly sequential in
priority order. A tier whose query fails or whose blob is invalid is
skipped, so resolution always degrades towards lower tiers instead of
raising.

Results are cached per key for a short TTL. Other processes keep this
cache fresh by publishing on the config-cascade invalidation channel
(see ``tzurot_cache.consumers``).

Example:
    resolver = ConfigCascadeResolver(SqlConfigStore())
    resolved = await resolver.resolve_overrides("278863839632818186", personality_id)
    resolved.max_messages, resolved.sources["max_messages"]
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from tzurot_cache.cache.keys import CacheKeys
from tzurot_cache.cache.ttl import Clock, TtlCache
from tzurot_cache.config import settings
from tzurot_cache.observability.logging import LogContext
from tzurot_cache.observability.metrics import (
    record_cache_hit,
    record_cache_miss,
    record_tier_failure,
)
from tzurot_cache.resolvers.overrides import (
    ConfigSource,
    ResolvedConfigOverrides,
    Tier,
    merge_config_tiers,
    parse_tier,
)

if TYPE_CHECKING:
    from tzurot_cache.persistence.store import ConfigStore, UserConfigRows

logger = logging.getLogger(__name__)

RESOLVER_NAME = "config-cascade"

T = TypeVar("T")


async def _skipped() -> None:
    return None


class ConfigCascadeResolver:
    """Resolves config overrides through the five-tier cascade."""

    def __init__(
        self,
        store: ConfigStore,
        *,
        ttl: float | None = None,
        cleanup_interval: float | None = None,
        enable_cleanup: bool = True,
        clock: Clock = time.monotonic,
    ) -> None:
        self._store = store
        self._cache: TtlCache[ResolvedConfigOverrides] = TtlCache(
            RESOLVER_NAME,
            ttl if ttl is not None else settings.config_cascade_cache_ttl,
            cleanup_interval=(
                cleanup_interval
                if cleanup_interval is not None
                else settings.cache_cleanup_interval
            ),
            enable_cleanup=enable_cleanup,
            clock=clock,
        )

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def resolve_overrides(
        self,
        user_id: str | None = None,
        personality_id: str | None = None,
        channel_id: str | None = None,
    ) -> ResolvedConfigOverrides:
        """Resolve the effective overrides.

        Args:
            user_id: Discord user ID, or None for anonymous
            personality_id: Personality UUID, or None
            channel_id: Discord channel ID, or None

        Returns:
            Fully populated config with a source label per field. Within the
            TTL, repeated calls with the same inputs return the same object.
        """
        self._cache.ensure_cleanup()

        key = CacheKeys.config_cascade(user_id, personality_id, channel_id)
        cached = self._cache.get(key)
        if cached is not None:
            record_cache_hit(RESOLVER_NAME)
            logger.debug("Config overrides resolved from cache", extra={"cache_key": key})
            return cached

        record_cache_miss(RESOLVER_NAME)
        with LogContext(user_id=user_id, personality_id=personality_id, channel_id=channel_id):
            tiers = await self._load_tiers(user_id, personality_id, channel_id)
            resolved = merge_config_tiers(tiers)
            logger.debug(
                f"Resolved config overrides from {len(tiers)} tier(s)",
                extra={"tiers": [tier.source.value for tier in tiers]},
            )

        self._cache.set(key, resolved)
        return resolved

    async def _load_tiers(
        self,
        user_id: str | None,
        personality_id: str | None,
        channel_id: str | None,
    ) -> list[Tier]:
        """Fetch all applicable tiers concurrently; return them lowest priority first."""
        store = self._store

        admin_raw, personality_raw, channel_raw, user_rows = await asyncio.gather(
            self._fetch("admin", store.get_admin_config_defaults),
            (
                self._fetch(
                    "personality",
                    lambda: store.get_personality_config_defaults(personality_id),
                )
                if personality_id
                else _skipped()
            ),
            (
                self._fetch("channel", lambda: store.get_channel_config_overrides(channel_id))
                if channel_id
                else _skipped()
            ),
            (
                self._fetch(
                    "user",
                    lambda: store.get_user_config_overrides(user_id, personality_id or None),
                )
                if user_id
                else _skipped()
            ),
        )

        rows: UserConfigRows | None = user_rows
        candidates: list[tuple[ConfigSource, Any]] = [
            (ConfigSource.ADMIN, admin_raw),
            (ConfigSource.PERSONALITY, personality_raw),
            (ConfigSource.CHANNEL, channel_raw),
            (ConfigSource.USER_DEFAULT, rows.config_defaults if rows else None),
            (ConfigSource.USER_PERSONALITY, rows.personality_overrides if rows else None),
        ]

        tiers: list[Tier] = []
        for source, raw in candidates:
            tier = parse_tier(source, raw)
            if tier is not None:
                tiers.append(tier)
            elif raw is not None:
                record_tier_failure(RESOLVER_NAME, source.value)
        return tiers

    async def _fetch(self, tier: str, query: Callable[[], Awaitable[T]]) -> T | None:
        """Run one tier query; on failure log it and contribute nothing."""
        try:
            return await query()
        except Exception:
            record_tier_failure(RESOLVER_NAME, tier)
            logger.error(
                f"Failed to load {tier} config tier, falling back to lower tiers",
                exc_info=True,
            )
            return None

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def _invalidate_matching(self, field: str, value: str) -> int:
        def matches(key: str) -> bool:
            parts = CacheKeys.parse_config_cascade(key)
            return parts is not None and getattr(parts, field) == value

        return self._cache.delete_where(matches)

    def invalidate_user_cache(self, user_id: str) -> None:
        """Drop every entry resolved for ``user_id``."""
        removed = self._invalidate_matching("user", user_id)
        logger.debug(f"Invalidated {removed} config cascade entries for user {user_id}")

    def invalidate_personality_cache(self, personality_id: str) -> None:
        """Drop every entry resolved for ``personality_id``."""
        removed = self._invalidate_matching("personality", personality_id)
        logger.debug(
            f"Invalidated {removed} config cascade entries for personality {personality_id}"
        )

    def invalidate_channel_cache(self, channel_id: str) -> None:
        """Drop every entry resolved for ``channel_id``."""
        removed = self._invalidate_matching("channel", channel_id)
        logger.debug(f"Invalidated {removed} config cascade entries for channel {channel_id}")

    def clear_cache(self) -> None:
        """Drop every entry."""
        self._cache.clear()
        logger.debug("Cleared config cascade cache")

    def cleanup_expired(self) -> int:
        """Run one expiry sweep now. Returns the number of entries removed."""
        return self._cache.sweep()

    def stop_cleanup(self) -> None:
        """Stop the background expiry sweep (call on shutdown)."""
        self._cache.stop_cleanup()
