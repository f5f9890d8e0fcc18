"""LLM config resolver.

Resolves the effective LLM config for a user talking to a personality.
First match wins:

1. the user's per-personality LLM config
2. the user's global default LLM config
3. the personality's own config (already baked into ``LoadedPersonality``)

Only levels 1 and 2 are looked up here. When an override applies, its
``model`` always wins and every other key falls back to the personality's
value where the override leaves it unset.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

from tzurot_cache.cache.keys import CacheKeys
from tzurot_cache.cache.ttl import Clock, TtlCache
from tzurot_cache.config import settings
from tzurot_cache.observability.logging import LogContext
from tzurot_cache.observability.metrics import record_cache_hit, record_cache_miss
from tzurot_cache.resolvers.llm_params import (
    AdvancedParams,
    advanced_params_to_values,
    safe_validate_advanced_params,
)

if TYPE_CHECKING:
    from tzurot_cache.persistence.store import LlmConfigRow, LlmConfigStore

logger = logging.getLogger(__name__)

RESOLVER_NAME = "llm-config"

ConfigSourceName = Literal["user-personality", "user-default", "personality"]


class ResolvedLlmConfig(AdvancedParams):
    """Model plus every tunable an LLM config can carry."""

    model: str
    vision_model: str | None = None
    memory_score_threshold: float | None = None
    memory_limit: int | None = None
    context_window_tokens: int | None = None
    max_messages: int | None = None
    max_age: int | None = None
    max_images: int | None = None


class LoadedPersonality(ResolvedLlmConfig):
    """A personality with its default LLM config already applied."""

    id: str
    name: str


# Every key an override may supply besides ``model``
LLM_CONFIG_OVERRIDE_KEYS: tuple[str, ...] = tuple(
    key for key in ResolvedLlmConfig.model_fields if key != "model"
)


@dataclass(frozen=True, slots=True)
class ConfigResolutionResult:
    config: ResolvedLlmConfig
    source: ConfigSourceName
    config_name: str | None = None


def _to_float(value: Decimal | float | None) -> float | None:
    if value is None:
        return None
    return float(value)


def llm_config_row_to_values(row: LlmConfigRow) -> dict[str, Any]:
    """Flatten a stored LLM config row into resolved-config values.

    Advanced parameters that fail validation are ignored as a whole.
    Unset values are omitted.
    """
    values: dict[str, Any] = {}

    advanced = safe_validate_advanced_params(row.advanced_parameters)
    if advanced is None:
        logger.warning(f"Ignoring invalid advanced parameters on LLM config '{row.name}'")
    else:
        values.update(advanced_params_to_values(advanced))

    columns = {
        "vision_model": row.vision_model,
        "memory_score_threshold": _to_float(row.memory_score_threshold),
        "memory_limit": row.memory_limit,
        "context_window_tokens": row.context_window_tokens,
        "max_messages": row.max_messages,
        "max_age": row.max_age,
        "max_images": row.max_images,
    }
    values.update({key: value for key, value in columns.items() if value is not None})
    return values


def extract_config(personality: LoadedPersonality) -> ResolvedLlmConfig:
    """The personality's own config, used when no override applies."""
    values: dict[str, Any] = {"model": personality.model}
    for key in LLM_CONFIG_OVERRIDE_KEYS:
        value = getattr(personality, key)
        if value is not None:
            values[key] = value
    return ResolvedLlmConfig(**values)


def merge_config(personality: LoadedPersonality, override: LlmConfigRow) -> ResolvedLlmConfig:
    """Apply an override config on top of the personality's values."""
    override_values = llm_config_row_to_values(override)
    values: dict[str, Any] = {"model": override.model}
    for key in LLM_CONFIG_OVERRIDE_KEYS:
        value = override_values.get(key)
        if value is None:
            value = getattr(personality, key)
        if value is not None:
            values[key] = value
    return ResolvedLlmConfig(**values)


class LlmConfigResolver:
    """Resolves user-specific LLM config overrides with a TTL cache."""

    def __init__(
        self,
        store: LlmConfigStore,
        *,
        ttl: float | None = None,
        cleanup_interval: float | None = None,
        enable_cleanup: bool = True,
        clock: Clock = time.monotonic,
    ) -> None:
        self._store = store
        self._cache: TtlCache[ConfigResolutionResult] = TtlCache(
            RESOLVER_NAME,
            ttl if ttl is not None else settings.llm_config_cache_ttl,
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

    async def resolve_config(
        self,
        user_id: str | None,
        personality_id: str,
        personality: LoadedPersonality,
    ) -> ConfigResolutionResult:
        """Resolve the effective LLM config for a user and personality.

        Args:
            user_id: Discord user ID, or None/empty for anonymous
            personality_id: The personality being used
            personality: The personality's already loaded default config

        Returns:
            Resolved config with the level it came from. Store errors fall
            back to the personality config and are not cached.
        """
        if not user_id:
            return ConfigResolutionResult(config=extract_config(personality), source="personality")

        self._cache.ensure_cleanup()

        key = CacheKeys.llm_config(user_id, personality_id)
        cached = self._cache.get(key)
        if cached is not None:
            record_cache_hit(RESOLVER_NAME)
            logger.debug("LLM config resolved from cache", extra={"cache_key": key})
            return cached

        record_cache_miss(RESOLVER_NAME)
        with LogContext(user_id=user_id, personality_id=personality_id):
            try:
                rows = await self._store.get_user_llm_configs(user_id, personality_id)
            except Exception:
                logger.error(
                    "Failed to resolve LLM config, using personality default", exc_info=True
                )
                return ConfigResolutionResult(
                    config=extract_config(personality), source="personality"
                )

            if rows is not None and rows.personality_config is not None:
                result = ConfigResolutionResult(
                    config=merge_config(personality, rows.personality_config),
                    source="user-personality",
                    config_name=rows.personality_config.name,
                )
            elif rows is not None and rows.default_config is not None:
                result = ConfigResolutionResult(
                    config=merge_config(personality, rows.default_config),
                    source="user-default",
                    config_name=rows.default_config.name,
                )
            else:
                result = ConfigResolutionResult(
                    config=extract_config(personality), source="personality"
                )

            if not result.config.reasoning_within_budget():
                logger.warning(
                    f"Reasoning budget of LLM config '{result.config_name}' leaves no room "
                    f"under max_tokens={result.config.max_tokens}"
                )
            logger.debug(
                f"LLM config resolved from {result.source}",
                extra={
                    "config_name": result.config_name,
                    "reasoning": result.config.has_reasoning_enabled(),
                },
            )

        self._cache.set(key, result)
        return result

    async def get_free_default_config(self) -> ResolvedLlmConfig | None:
        """The config flagged as the free default for guest users.

        Returns None if none is flagged or the lookup fails; the caller
        supplies its own fallback then.
        """
        self._cache.ensure_cleanup()

        cached = self._cache.get(CacheKeys.FREE_DEFAULT_LLM_CONFIG)
        if cached is not None:
            record_cache_hit(RESOLVER_NAME)
            return cached.config

        record_cache_miss(RESOLVER_NAME)
        try:
            row = await self._store.get_free_default_llm_config()
        except Exception:
            logger.error("Failed to get free default LLM config", exc_info=True)
            return None

        if row is None:
            logger.debug("No free default LLM config found")
            return None

        config = ResolvedLlmConfig(model=row.model, **llm_config_row_to_values(row))
        self._cache.set(
            CacheKeys.FREE_DEFAULT_LLM_CONFIG,
            ConfigResolutionResult(config=config, source="personality", config_name=row.name),
        )
        logger.info(f"Free default LLM config '{row.name}' loaded ({config.model})")
        return config

    def invalidate_user_cache(self, user_id: str) -> None:
        """Drop every entry resolved for ``user_id``."""
        removed = self._cache.delete_where(lambda key: CacheKeys.segment(key, 0) == user_id)
        logger.debug(f"Invalidated {removed} LLM config entries for user {user_id}")

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Cleared LLM config cache")

    def stop_cleanup(self) -> None:
        """Stop the background expiry sweep (call on shutdown)."""
        self._cache.stop_cleanup()
