"""Tests for the config cascade resolver."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from tzurot_cache.persistence.store import UserConfigRows
from tzurot_cache.resolvers.cascade import ConfigCascadeResolver
from tzurot_cache.resolvers.overrides import (
    CONFIG_OVERRIDE_KEYS,
    HARDCODED_CONFIG_DEFAULTS,
    ConfigSource,
)

USER = "278863839632818186"
PERSONALITY = "c296b337-4e67-5337-99a3-4ca105cbbd68"
CHANNEL = "1091134545546248282"


@pytest.fixture
def store() -> AsyncMock:
    """Store with every tier empty."""
    store = AsyncMock()
    store.get_admin_config_defaults = AsyncMock(return_value=None)
    store.get_personality_config_defaults = AsyncMock(return_value=None)
    store.get_channel_config_overrides = AsyncMock(return_value=None)
    store.get_user_config_overrides = AsyncMock(return_value=None)
    return store


@pytest.fixture
def resolver(store: AsyncMock, clock) -> ConfigCascadeResolver:
    """Resolver with a 10s TTL and no background sweep."""
    return ConfigCascadeResolver(store, ttl=10.0, enable_cleanup=False, clock=clock)


class TestResolveOverrides:
    """Tests for tier resolution."""

    async def test_hardcoded_when_store_is_empty(self, resolver) -> None:
        """With no tiers every field is the hardcoded default."""
        resolved = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)

        for key in CONFIG_OVERRIDE_KEYS:
            assert getattr(resolved, key) == HARDCODED_CONFIG_DEFAULTS[key]
            assert resolved.sources[key] is ConfigSource.HARDCODED

    async def test_tier_precedence(self, resolver, store) -> None:
        """Higher tiers override lower tiers field by field."""
        store.get_admin_config_defaults.return_value = {"maxMessages": 40, "maxImages": 4}
        store.get_personality_config_defaults.return_value = {"maxMessages": 30}
        store.get_channel_config_overrides.return_value = {"maxMessages": 20, "memoryLimit": 5}
        store.get_user_config_overrides.return_value = UserConfigRows(
            config_defaults={"maxMessages": 15, "focusModeEnabled": True},
            personality_overrides={"maxMessages": 10},
        )

        resolved = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)

        assert resolved.max_messages == 10
        assert resolved.sources["max_messages"] is ConfigSource.USER_PERSONALITY
        assert resolved.focus_mode_enabled is True
        assert resolved.sources["focus_mode_enabled"] is ConfigSource.USER_DEFAULT
        assert resolved.memory_limit == 5
        assert resolved.sources["memory_limit"] is ConfigSource.CHANNEL
        assert resolved.max_images == 4
        assert resolved.sources["max_images"] is ConfigSource.ADMIN
        assert resolved.sources["memory_score_threshold"] is ConfigSource.HARDCODED

    async def test_each_tier_beats_the_ones_below(self, resolver, store) -> None:
        """Removing the top tier exposes the next one down."""
        store.get_admin_config_defaults.return_value = {"maxMessages": 40}
        store.get_personality_config_defaults.return_value = {"maxMessages": 30}
        store.get_channel_config_overrides.return_value = {"maxMessages": 20}

        resolved = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)
        assert (resolved.max_messages, resolved.sources["max_messages"]) == (
            20,
            ConfigSource.CHANNEL,
        )

        resolved = await resolver.resolve_overrides(USER, PERSONALITY)
        assert (resolved.max_messages, resolved.sources["max_messages"]) == (
            30,
            ConfigSource.PERSONALITY,
        )

        resolved = await resolver.resolve_overrides(USER)
        assert (resolved.max_messages, resolved.sources["max_messages"]) == (
            40,
            ConfigSource.ADMIN,
        )

    async def test_anonymous_skips_user_tiers(self, resolver, store) -> None:
        """Without a user id no user query is issued."""
        await resolver.resolve_overrides(None, PERSONALITY, CHANNEL)

        store.get_user_config_overrides.assert_not_called()
        store.get_admin_config_defaults.assert_awaited_once()
        store.get_personality_config_defaults.assert_awaited_once_with(PERSONALITY)
        store.get_channel_config_overrides.assert_awaited_once_with(CHANNEL)

    async def test_missing_ids_skip_their_tiers(self, resolver, store) -> None:
        """Personality and channel tiers are only fetched when their ids are given."""
        await resolver.resolve_overrides(USER)

        store.get_personality_config_defaults.assert_not_called()
        store.get_channel_config_overrides.assert_not_called()
        store.get_user_config_overrides.assert_awaited_once_with(USER, None)

    async def test_user_tiers_fetched_in_one_query(self, resolver, store) -> None:
        """Both user tiers come from a single combined call."""
        await resolver.resolve_overrides(USER, PERSONALITY)

        store.get_user_config_overrides.assert_awaited_once_with(USER, PERSONALITY)

    async def test_tiers_fetched_concurrently(self, resolver, store) -> None:
        """All tier queries are pending at the same time."""
        in_flight = 0
        peak = 0

        async def slow(*args):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return None

        store.get_admin_config_defaults.side_effect = slow
        store.get_personality_config_defaults.side_effect = slow
        store.get_channel_config_overrides.side_effect = slow
        store.get_user_config_overrides.side_effect = slow

        await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)

        assert peak == 4


class TestTierFailures:
    """Tests for per-tier fault tolerance."""

    async def test_failing_tier_is_skipped(self, resolver, store, caplog) -> None:
        """A store error on one tier still yields a full result from the others."""
        store.get_admin_config_defaults.return_value = {"maxImages": 3}
        store.get_channel_config_overrides.side_effect = ConnectionError("db down")
        store.get_user_config_overrides.return_value = UserConfigRows(
            config_defaults={"memoryLimit": 7}, personality_overrides=None
        )

        with caplog.at_level(logging.ERROR):
            resolved = await resolver.resolve_overrides(USER, None, CHANNEL)

        assert resolved.max_images == 3
        assert resolved.memory_limit == 7
        assert resolved.sources["memory_limit"] is ConfigSource.USER_DEFAULT
        assert "Failed to load channel config tier" in caplog.text

    async def test_every_tier_failing_falls_back_to_hardcoded(self, resolver, store) -> None:
        """Total store outage degrades to hardcoded defaults without raising."""
        for method in (
            store.get_admin_config_defaults,
            store.get_personality_config_defaults,
            store.get_channel_config_overrides,
            store.get_user_config_overrides,
        ):
            method.side_effect = OSError("db down")

        resolved = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)

        assert set(resolved.sources.values()) == {ConfigSource.HARDCODED}

    async def test_invalid_tier_payload_is_skipped_whole(self, resolver, store) -> None:
        """A tier with one invalid field contributes none of its fields."""
        store.get_admin_config_defaults.return_value = {"maxMessages": 40}
        store.get_personality_config_defaults.return_value = {
            "maxMessages": 30,
            "maxImages": 999,
        }

        resolved = await resolver.resolve_overrides(USER, PERSONALITY)

        assert resolved.max_messages == 40
        assert resolved.sources["max_messages"] is ConfigSource.ADMIN
        assert resolved.sources["max_images"] is ConfigSource.HARDCODED

    async def test_unknown_key_skips_tier(self, resolver, store) -> None:
        """Unknown keys reject the tier rather than being ignored."""
        store.get_user_config_overrides.return_value = UserConfigRows(
            config_defaults={"maxMessages": 15, "legacySetting": True},
            personality_overrides={"maxImages": 2},
        )

        resolved = await resolver.resolve_overrides(USER, PERSONALITY)

        assert resolved.sources["max_messages"] is ConfigSource.HARDCODED
        assert resolved.max_images == 2
        assert resolved.sources["max_images"] is ConfigSource.USER_PERSONALITY


class TestCaching:
    """Tests for the TTL cache in front of the store."""

    async def test_cache_hit_returns_same_object(self, resolver, store) -> None:
        """Identical inputs within the TTL return the same object with one store query."""
        first = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)
        second = await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)

        assert first is second
        assert store.get_admin_config_defaults.await_count == 1

    async def test_entry_expires_after_ttl(self, resolver, store, clock) -> None:
        """After the TTL the next call recomputes from the store."""
        store.get_admin_config_defaults.return_value = {"maxMessages": 40}
        first = await resolver.resolve_overrides(USER)

        store.get_admin_config_defaults.return_value = {"maxMessages": 25}
        clock.advance(15)
        second = await resolver.resolve_overrides(USER)

        assert second is not first
        assert second.max_messages == 25
        assert store.get_admin_config_defaults.await_count == 2

    async def test_different_inputs_are_cached_separately(self, resolver, store) -> None:
        """Changing any component misses the cache."""
        await resolver.resolve_overrides(USER, PERSONALITY, CHANNEL)
        await resolver.resolve_overrides(USER, PERSONALITY, "other-channel")
        await resolver.resolve_overrides(None, PERSONALITY, CHANNEL)

        assert resolver.cache_size == 3
        assert store.get_admin_config_defaults.await_count == 3

    async def test_cleanup_expired(self, resolver, clock) -> None:
        """Expired entries are removed by a sweep."""
        await resolver.resolve_overrides(USER)
        clock.advance(11)
        await resolver.resolve_overrides("other-user")

        assert resolver.cleanup_expired() == 1
        assert resolver.cache_size == 1


class TestInvalidation:
    """Tests for targeted invalidation."""

    @pytest.fixture
    async def populated(self, resolver) -> ConfigCascadeResolver:
        """Resolver with entries across users, personalities and channels."""
        await resolver.resolve_overrides("111", "p-1", "c-1")
        await resolver.resolve_overrides("111", "p-1", "c-2")
        await resolver.resolve_overrides("1111", "p-2", "c-1")
        await resolver.resolve_overrides(None, "p-2", None)
        return resolver

    async def test_invalidate_user(self, populated, store) -> None:
        """Only entries whose user component matches are removed."""
        populated.invalidate_user_cache("111")

        assert populated.cache_size == 2
        calls = store.get_admin_config_defaults.await_count
        await populated.resolve_overrides("1111", "p-2", "c-1")
        assert store.get_admin_config_defaults.await_count == calls

    async def test_invalidate_channel(self, populated, store) -> None:
        """Invalidating a channel keeps other channels for the same user."""
        populated.invalidate_channel_cache("c-1")

        assert populated.cache_size == 2
        calls = store.get_admin_config_defaults.await_count
        await populated.resolve_overrides("111", "p-1", "c-2")
        assert store.get_admin_config_defaults.await_count == calls
        await populated.resolve_overrides("111", "p-1", "c-1")
        assert store.get_admin_config_defaults.await_count == calls + 1

    async def test_invalidate_personality(self, populated) -> None:
        """Personality invalidation matches the second segment only."""
        populated.invalidate_personality_cache("p-2")

        assert populated.cache_size == 2

    async def test_invalidate_by_sentinel_value_only_matches_position(self, populated) -> None:
        """An id equal to a sentinel in another position removes nothing extra."""
        populated.invalidate_channel_cache("none")

        assert populated.cache_size == 4

    async def test_clear_cache(self, populated) -> None:
        """Clear drops every entry."""
        populated.clear_cache()

        assert populated.cache_size == 0


class TestCleanupLifecycle:
    """Tests for the background sweep lifecycle."""

    async def test_sweep_starts_on_first_resolve(self, store) -> None:
        """The sweep starts lazily inside the event loop and stops on request."""
        resolver = ConfigCascadeResolver(store, ttl=10.0, cleanup_interval=60.0)
        try:
            await resolver.resolve_overrides(USER)
            assert resolver._cache.cleanup_running is True
        finally:
            resolver.stop_cleanup()
        assert resolver._cache.cleanup_running is False

    async def test_stop_cleanup_twice(self, store) -> None:
        """Stopping the sweep is idempotent."""
        resolver = ConfigCascadeResolver(store, ttl=10.0)
        resolver.stop_cleanup()
        resolver.stop_cleanup()
