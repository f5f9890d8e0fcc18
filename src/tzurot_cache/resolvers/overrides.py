"""Config override schema and the tier merge.

Stored override blobs (JSONB columns on admin settings, personalities,
channel settings, users and user/personality pairs) are partial
``ConfigOverrides``. A blob with any unknown key or out-of-range value is
rejected as a whole rather than field by field, so a malformed blob never
contributes half of its intended state.

Resolution order, lowest priority first:
    hardcoded -> admin -> personality -> channel -> user-default -> user-personality
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Upper bound for maxAge: 30 days
MAX_AGE_LIMIT_SECONDS = 30 * 24 * 60 * 60


class ConfigSource(str, Enum):
    """Tier that supplied a resolved value."""

    HARDCODED = "hardcoded"
    ADMIN = "admin"
    PERSONALITY = "personality"
    CHANNEL = "channel"
    USER_DEFAULT = "user-default"
    USER_PERSONALITY = "user-personality"


class ConfigOverrides(BaseModel):
    """Partial overrides as stored in a JSONB column.

    Only keys present in the blob are "defined" for the tier
    (``model_fields_set``). ``maxAge`` may be explicitly null, meaning
    "no age limit"; every other field must be a concrete value when present.
    """

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    max_messages: int | None = Field(default=None, alias="maxMessages", ge=1, le=100)
    max_age: int | None = Field(
        default=None, alias="maxAge", ge=1, le=MAX_AGE_LIMIT_SECONDS
    )
    max_images: int | None = Field(default=None, alias="maxImages", ge=0, le=20)
    memory_score_threshold: float | None = Field(
        default=None, alias="memoryScoreThreshold", ge=0, le=1
    )
    memory_limit: int | None = Field(default=None, alias="memoryLimit", ge=0, le=100)
    focus_mode_enabled: bool | None = Field(default=None, alias="focusModeEnabled")
    cross_channel_history_enabled: bool | None = Field(
        default=None, alias="crossChannelHistoryEnabled"
    )
    share_ltm_across_personalities: bool | None = Field(
        default=None, alias="shareLtmAcrossPersonalities"
    )

    @field_validator(
        "max_messages",
        "max_images",
        "memory_score_threshold",
        "memory_limit",
        "focus_mode_enabled",
        "cross_channel_history_enabled",
        "share_ltm_across_personalities",
        mode="before",
    )
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value

    def defined(self) -> dict[str, Any]:
        """Values for the fields this blob actually sets."""
        return {
            key: getattr(self, key)
            for key in CONFIG_OVERRIDE_KEYS
            if key in self.model_fields_set
        }


# Field names in declaration order, derived from the schema
CONFIG_OVERRIDE_KEYS: tuple[str, ...] = tuple(ConfigOverrides.model_fields)

HARDCODED_CONFIG_DEFAULTS: MappingProxyType[str, Any] = MappingProxyType(
    {
        "max_messages": 50,
        "max_age": None,  # no age limit
        "max_images": 10,
        "memory_score_threshold": 0.5,
        "memory_limit": 20,
        "focus_mode_enabled": False,
        "cross_channel_history_enabled": False,
        "share_ltm_across_personalities": False,
    }
)

if set(HARDCODED_CONFIG_DEFAULTS) != set(CONFIG_OVERRIDE_KEYS):
    raise RuntimeError("HARDCODED_CONFIG_DEFAULTS must cover exactly the ConfigOverrides fields")


class ResolvedConfigOverrides(BaseModel):
    """Fully populated config plus the tier each value came from."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    max_messages: int
    max_age: int | None
    max_images: int
    memory_score_threshold: float
    memory_limit: int
    focus_mode_enabled: bool
    cross_channel_history_enabled: bool
    share_ltm_across_personalities: bool
    sources: dict[str, ConfigSource]


@dataclass(frozen=True, slots=True)
class Tier:
    """One ranked source of partial overrides."""

    source: ConfigSource
    overrides: ConfigOverrides


def parse_tier(source: ConfigSource, raw: Any) -> Tier | None:
    """Validate a stored blob into a tier.

    Returns None for an empty column or an invalid blob (logged).
    """
    if raw is None:
        return None
    try:
        overrides = ConfigOverrides.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            f"Skipping invalid {source.value} config overrides: {e.error_count()} error(s)",
            extra={
                "tier": source.value,
                "errors": e.errors(include_url=False, include_input=False),
            },
        )
        return None
    return Tier(source=source, overrides=overrides)


def merge_config_tiers(tiers: list[Tier]) -> ResolvedConfigOverrides:
    """Merge tiers left to right on top of the hardcoded defaults.

    Tiers must be ordered lowest priority first. Each defined field
    overwrites both the value and its source label.
    """
    values: dict[str, Any] = dict(HARDCODED_CONFIG_DEFAULTS)
    sources: dict[str, ConfigSource] = dict.fromkeys(CONFIG_OVERRIDE_KEYS, ConfigSource.HARDCODED)

    for tier in tiers:
        for key, value in tier.overrides.defined().items():
            values[key] = value
            sources[key] = tier.source

    return ResolvedConfigOverrides(**values, sources=sources)
