"""Concrete invalidation channels, one per cache domain.

Each service fixes its channel name and event variants and adds helpers
that build and publish the right event, so callers never assemble event
dicts by hand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tzurot_cache.invalidation.base import BaseCacheInvalidationService, EventValidator
from tzurot_cache.invalidation.events import (
    AdminInvalidation,
    AllInvalidation,
    ApiKeyCacheEvent,
    ChannelActivationCacheEvent,
    ChannelInvalidation,
    ConfigCascadeCacheEvent,
    ConfigInvalidation,
    LlmConfigCacheEvent,
    PersonaCacheEvent,
    PersonalityCacheEvent,
    PersonalityInvalidation,
    UserInvalidation,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Pub/Sub channel names
PERSONALITY_CHANNEL = "cache-invalidation:personality"
PERSONA_CHANNEL = "cache-invalidation:persona"
API_KEY_CHANNEL = "cache-invalidation:api-key"
CHANNEL_ACTIVATION_CHANNEL = "cache-invalidation:channel-activation"
CONFIG_CASCADE_CHANNEL = "cache-invalidation:config-cascade"
LLM_CONFIG_CHANNEL = "cache-invalidation:llm-config"


def _user_log_context(event: Any) -> dict[str, Any]:
    if isinstance(event, UserInvalidation):
        return {"discord_id": event.discord_id}
    return {}


class PersonalityCacheInvalidationService(BaseCacheInvalidationService[PersonalityCacheEvent]):
    """Invalidates loaded personality definitions."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        super().__init__(
            redis,
            PERSONALITY_CHANNEL,
            "PersonalityCacheInvalidationService",
            EventValidator(AllInvalidation, PersonalityInvalidation),
            **kwargs,
        )

    async def invalidate_personality(self, personality_id: str) -> int:
        return await self.publish(PersonalityInvalidation(personalityId=personality_id))

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())


class PersonaCacheInvalidationService(BaseCacheInvalidationService[PersonaCacheEvent]):
    """Invalidates resolved user personas."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        kwargs.setdefault("get_log_context", _user_log_context)
        super().__init__(
            redis,
            PERSONA_CHANNEL,
            "PersonaCacheInvalidationService",
            EventValidator(AllInvalidation, UserInvalidation),
            **kwargs,
        )

    async def invalidate_user(self, discord_id: str) -> int:
        return await self.publish(UserInvalidation(discordId=discord_id))

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())


class ApiKeyCacheInvalidationService(BaseCacheInvalidationService[ApiKeyCacheEvent]):
    """Invalidates cached BYOK API keys."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        kwargs.setdefault("get_log_context", _user_log_context)
        super().__init__(
            redis,
            API_KEY_CHANNEL,
            "ApiKeyCacheInvalidationService",
            EventValidator(AllInvalidation, UserInvalidation),
            **kwargs,
        )

    async def invalidate_user(self, discord_id: str) -> int:
        """Invalidate the cached keys of one user (after key add/remove)."""
        return await self.publish(UserInvalidation(discordId=discord_id))

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())


class ChannelActivationCacheInvalidationService(
    BaseCacheInvalidationService[ChannelActivationCacheEvent]
):
    """Invalidates which personality is activated in a channel."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        super().__init__(
            redis,
            CHANNEL_ACTIVATION_CHANNEL,
            "ChannelActivationCacheInvalidationService",
            EventValidator(AllInvalidation, ChannelInvalidation),
            **kwargs,
        )

    async def invalidate_channel(self, channel_id: str) -> int:
        return await self.publish(ChannelInvalidation(channelId=channel_id))

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())


class ConfigCascadeCacheInvalidationService(
    BaseCacheInvalidationService[ConfigCascadeCacheEvent]
):
    """Invalidates resolved config cascades.

    One variant per tier that can change: admin defaults, a personality's
    defaults, a channel's overrides, or a user's own overrides.
    """

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        kwargs.setdefault("get_log_context", _user_log_context)
        super().__init__(
            redis,
            CONFIG_CASCADE_CHANNEL,
            "ConfigCascadeCacheInvalidationService",
            EventValidator(
                AllInvalidation,
                AdminInvalidation,
                UserInvalidation,
                PersonalityInvalidation,
                ChannelInvalidation,
            ),
            **kwargs,
        )

    async def invalidate_user(self, discord_id: str) -> int:
        return await self.publish(UserInvalidation(discordId=discord_id))

    async def invalidate_personality(self, personality_id: str) -> int:
        return await self.publish(PersonalityInvalidation(personalityId=personality_id))

    async def invalidate_channel(self, channel_id: str) -> int:
        return await self.publish(ChannelInvalidation(channelId=channel_id))

    async def invalidate_admin(self) -> int:
        return await self.publish(AdminInvalidation())

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())


class LlmConfigCacheInvalidationService(BaseCacheInvalidationService[LlmConfigCacheEvent]):
    """Invalidates resolved LLM configs."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        kwargs.setdefault("get_log_context", _user_log_context)
        super().__init__(
            redis,
            LLM_CONFIG_CHANNEL,
            "LlmConfigCacheInvalidationService",
            EventValidator(AllInvalidation, UserInvalidation, ConfigInvalidation),
            **kwargs,
        )

    async def invalidate_user(self, discord_id: str) -> int:
        """Invalidate one user's resolutions (after they change their config choice)."""
        return await self.publish(UserInvalidation(discordId=discord_id))

    async def invalidate_config(self, config_id: str) -> int:
        """Invalidate everything that may have used config ``config_id``."""
        return await self.publish(ConfigInvalidation(configId=config_id))

    async def invalidate_all(self) -> int:
        return await self.publish(AllInvalidation())
