"""Advanced LLM parameters stored on LLM config rows.

The ``advanced_parameters`` JSONB column uses the OpenRouter REST API's
snake_case names, which are also our attribute names, so validated
params merge straight into a resolved config.

All fields are optional; unknown keys are dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ReasoningConfig(BaseModel):
    """Reasoning token configuration for thinking models."""

    model_config = ConfigDict(frozen=True)

    effort: Literal["xhigh", "high", "medium", "low", "minimal", "none"] | None = None
    max_tokens: int | None = Field(default=None, ge=1024, le=32000)
    exclude: bool | None = None
    enabled: bool | None = None


class ResponseFormat(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text", "json_object"]


class AdvancedParams(BaseModel):
    """Validated ``advanced_parameters`` blob."""

    model_config = ConfigDict(frozen=True)

    # Sampling
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    top_k: int | None = Field(default=None, ge=0)
    frequency_penalty: float | None = Field(default=None, ge=-2, le=2)
    presence_penalty: float | None = Field(default=None, ge=-2, le=2)
    repetition_penalty: float | None = Field(default=None, ge=0, le=2)
    min_p: float | None = Field(default=None, ge=0, le=1)
    top_a: float | None = Field(default=None, ge=0, le=1)
    seed: int | None = None

    # Reasoning
    reasoning: ReasoningConfig | None = None

    # Output control
    max_tokens: int | None = Field(default=None, gt=0)
    stop: list[str] | None = None
    logit_bias: dict[str, float] | None = None
    response_format: ResponseFormat | None = None
    show_thinking: bool | None = None

    # OpenRouter routing
    transforms: list[str] | None = None
    route: Literal["fallback"] | None = None
    verbosity: Literal["low", "medium", "high"] | None = None

    def has_reasoning_enabled(self) -> bool:
        """True if reasoning is configured and not switched off."""
        if self.reasoning is None:
            return False
        if self.reasoning.enabled is False or self.reasoning.effort == "none":
            return False
        return self.reasoning.effort is not None or self.reasoning.max_tokens is not None

    def reasoning_within_budget(self) -> bool:
        """True unless reasoning.max_tokens leaves no room under max_tokens."""
        if self.reasoning is None or self.reasoning.max_tokens is None:
            return True
        if self.max_tokens is None:
            return True
        return self.reasoning.max_tokens < self.max_tokens


ADVANCED_PARAM_KEYS: tuple[str, ...] = tuple(AdvancedParams.model_fields)


def safe_validate_advanced_params(params: Any) -> AdvancedParams | None:
    """Validate a stored blob. None/absent is an empty config; invalid is None."""
    if params is None:
        return AdvancedParams()
    try:
        return AdvancedParams.model_validate(params)
    except ValidationError as e:
        logger.debug(f"Failed to validate advanced params: {e.error_count()} error(s)")
        return None


def advanced_params_to_values(params: AdvancedParams) -> dict[str, Any]:
    """Flatten validated params into resolved-config values (unset keys omitted)."""
    values: dict[str, Any] = {}
    for key in ADVANCED_PARAM_KEYS:
        value = getattr(params, key)
        if value is not None:
            values[key] = value
    return values
