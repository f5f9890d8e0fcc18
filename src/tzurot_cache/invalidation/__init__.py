"""Cross-process cache invalidation via Redis Pub/Sub."""

from tzurot_cache.invalidation.base import (
    BaseCacheInvalidationService,
    EventValidator,
    InvalidationCallback,
    InvalidEventError,
    create_event_validator,
    create_standard_event_validator,
)
from tzurot_cache.invalidation.events import (
    AdminInvalidation,
    AllInvalidation,
    ChannelInvalidation,
    ConfigInvalidation,
    InvalidationEvent,
    PersonalityInvalidation,
    UserInvalidation,
)
from tzurot_cache.invalidation.services import (
    API_KEY_CHANNEL,
    CHANNEL_ACTIVATION_CHANNEL,
    CONFIG_CASCADE_CHANNEL,
    LLM_CONFIG_CHANNEL,
    PERSONA_CHANNEL,
    PERSONALITY_CHANNEL,
    ApiKeyCacheInvalidationService,
    ChannelActivationCacheInvalidationService,
    ConfigCascadeCacheInvalidationService,
    LlmConfigCacheInvalidationService,
    PersonaCacheInvalidationService,
    PersonalityCacheInvalidationService,
)

__all__ = [
    # Base
    "BaseCacheInvalidationService",
    "EventValidator",
    "InvalidEventError",
    "InvalidationCallback",
    "create_event_validator",
    "create_standard_event_validator",
    # Events
    "AdminInvalidation",
    "AllInvalidation",
    "ChannelInvalidation",
    "ConfigInvalidation",
    "InvalidationEvent",
    "PersonalityInvalidation",
    "UserInvalidation",
    # Services
    "API_KEY_CHANNEL",
    "CHANNEL_ACTIVATION_CHANNEL",
    "CONFIG_CASCADE_CHANNEL",
    "LLM_CONFIG_CHANNEL",
    "PERSONA_CHANNEL",
    "PERSONALITY_CHANNEL",
    "ApiKeyCacheInvalidationService",
    "ChannelActivationCacheInvalidationService",
    "ConfigCascadeCacheInvalidationService",
    "LlmConfigCacheInvalidationService",
    "PersonaCacheInvalidationService",
    "PersonalityCacheInvalidationService",
]
