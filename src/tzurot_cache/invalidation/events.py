"""Invalidation event variants.

Each cache domain accepts a closed set of variants, discriminated by
``type``. Payload fields are plain string identifiers. Unknown keys,
missing keys and non-string values are all rejected so that an old
consumer fails closed on an event shape it does not understand.

Wire keys are camelCase (``discordId``); Python attributes are
snake_case. Construct variants with the wire key, e.g.
``UserInvalidation(discordId="278863839632818186")``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class InvalidationEvent(BaseModel):
    """Base for all invalidation variants."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    type: str

    def to_wire(self) -> dict[str, str]:
        """Wire representation (camelCase keys)."""
        return self.model_dump(by_alias=True)

    def describe(self) -> str:
        """Short human-readable description for logs."""
        fields = {k: v for k, v in self.to_wire().items() if k != "type"}
        if not fields:
            return self.type
        return self.type + " " + " ".join(f"{k}={v}" for k, v in fields.items())


class AllInvalidation(InvalidationEvent):
    """Everything cached for the domain is stale."""

    type: Literal["all"] = "all"


class AdminInvalidation(InvalidationEvent):
    """The global admin defaults changed."""

    type: Literal["admin"] = "admin"


class UserInvalidation(InvalidationEvent):
    type: Literal["user"] = "user"
    discord_id: str = Field(alias="discordId")


class PersonalityInvalidation(InvalidationEvent):
    type: Literal["personality"] = "personality"
    personality_id: str = Field(alias="personalityId")


class ChannelInvalidation(InvalidationEvent):
    type: Literal["channel"] = "channel"
    channel_id: str = Field(alias="channelId")


class ConfigInvalidation(InvalidationEvent):
    """A shared LLM config row changed."""

    type: Literal["config"] = "config"
    config_id: str = Field(alias="configId")


# Domain unions (documentation and type-checking aid)
StandardInvalidationEvent = AllInvalidation | UserInvalidation
PersonalityCacheEvent = AllInvalidation | PersonalityInvalidation
PersonaCacheEvent = AllInvalidation | UserInvalidation
ApiKeyCacheEvent = AllInvalidation | UserInvalidation
ChannelActivationCacheEvent = AllInvalidation | ChannelInvalidation
ConfigCascadeCacheEvent = (
    AllInvalidation
    | AdminInvalidation
    | UserInvalidation
    | PersonalityInvalidation
    | ChannelInvalidation
)
LlmConfigCacheEvent = AllInvalidation | UserInvalidation | ConfigInvalidation
