"""Wire invalidation channels to the resolvers of this process.

Example:
    consumers = CacheConsumers(redis, cascade_resolver, llm_config_resolver)
    await consumers.start()
    ...
    await consumers.stop()
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from tzurot_cache.invalidation.events import (
    AdminInvalidation,
    AllInvalidation,
    ChannelInvalidation,
    ConfigCascadeCacheEvent,
    ConfigInvalidation,
    LlmConfigCacheEvent,
    PersonalityInvalidation,
    UserInvalidation,
)
from tzurot_cache.invalidation.services import (
    ConfigCascadeCacheInvalidationService,
    LlmConfigCacheInvalidationService,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from tzurot_cache.resolvers.cascade import ConfigCascadeResolver
    from tzurot_cache.resolvers.llm_config import LlmConfigResolver

logger = logging.getLogger(__name__)


def apply_config_cascade_event(
    resolver: ConfigCascadeResolver, event: ConfigCascadeCacheEvent
) -> None:
    """Evict the cascade entries an event makes stale."""
    if isinstance(event, (AllInvalidation, AdminInvalidation)):
        # Admin defaults feed every key
        resolver.clear_cache()
    elif isinstance(event, UserInvalidation):
        resolver.invalidate_user_cache(event.discord_id)
    elif isinstance(event, PersonalityInvalidation):
        resolver.invalidate_personality_cache(event.personality_id)
    elif isinstance(event, ChannelInvalidation):
        resolver.invalidate_channel_cache(event.channel_id)


def apply_llm_config_event(resolver: LlmConfigResolver, event: LlmConfigCacheEvent) -> None:
    """Evict the LLM config entries an event makes stale."""
    if isinstance(event, UserInvalidation):
        resolver.invalidate_user_cache(event.discord_id)
    elif isinstance(event, (AllInvalidation, ConfigInvalidation)):
        # Which users resolved to a given config isn't tracked
        resolver.clear_cache()


class CacheConsumers:
    """Keeps this process's resolver caches in sync with other processes."""

    def __init__(
        self,
        redis: Redis,
        cascade_resolver: ConfigCascadeResolver,
        llm_config_resolver: LlmConfigResolver,
    ) -> None:
        self.cascade_resolver = cascade_resolver
        self.llm_config_resolver = llm_config_resolver
        self.config_cascade_invalidation = ConfigCascadeCacheInvalidationService(redis)
        self.llm_config_invalidation = LlmConfigCacheInvalidationService(redis)

    async def start(self) -> None:
        await self.config_cascade_invalidation.subscribe(
            partial(apply_config_cascade_event, self.cascade_resolver)
        )
        try:
            await self.llm_config_invalidation.subscribe(
                partial(apply_llm_config_event, self.llm_config_resolver)
            )
        except Exception:
            await self.config_cascade_invalidation.unsubscribe()
            raise
        logger.info("Cache invalidation consumers started")

    async def stop(self) -> None:
        """Unsubscribe both channels and stop the resolver sweeps."""
        try:
            await self.config_cascade_invalidation.unsubscribe()
            await self.llm_config_invalidation.unsubscribe()
        finally:
            self.cascade_resolver.stop_cleanup()
            self.llm_config_resolver.stop_cleanup()
        logger.info("Cache invalidation consumers stopped")
