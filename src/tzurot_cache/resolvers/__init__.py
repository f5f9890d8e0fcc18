"""Config resolvers with short-lived in-process caches."""

from tzurot_cache.resolvers.cascade import ConfigCascadeResolver
from tzurot_cache.resolvers.llm_config import (
    LLM_CONFIG_OVERRIDE_KEYS,
    ConfigResolutionResult,
    LlmConfigResolver,
    LoadedPersonality,
    ResolvedLlmConfig,
)
from tzurot_cache.resolvers.llm_params import AdvancedParams, ReasoningConfig
from tzurot_cache.resolvers.overrides import (
    CONFIG_OVERRIDE_KEYS,
    HARDCODED_CONFIG_DEFAULTS,
    ConfigOverrides,
    ConfigSource,
    ResolvedConfigOverrides,
)

__all__ = [
    "AdvancedParams",
    "CONFIG_OVERRIDE_KEYS",
    "ConfigCascadeResolver",
    "ConfigOverrides",
    "ConfigResolutionResult",
    "ConfigSource",
    "HARDCODED_CONFIG_DEFAULTS",
    "LLM_CONFIG_OVERRIDE_KEYS",
    "LlmConfigResolver",
    "LoadedPersonality",
    "ReasoningConfig",
    "ResolvedConfigOverrides",
    "ResolvedLlmConfig",
]
