"""Tests for the config override schema and tier merge."""

import pytest
from pydantic import ValidationError

from tzurot_cache.resolvers.overrides import (
    CONFIG_OVERRIDE_KEYS,
    HARDCODED_CONFIG_DEFAULTS,
    MAX_AGE_LIMIT_SECONDS,
    ConfigOverrides,
    ConfigSource,
    Tier,
    merge_config_tiers,
    parse_tier,
)


class TestConfigOverrides:
    """Test validation of stored override blobs."""

    def test_empty_blob_is_valid(self) -> None:
        """A tier may define nothing."""
        assert ConfigOverrides.model_validate({}).defined() == {}

    def test_defined_only_includes_present_keys(self) -> None:
        """Absent keys are not defined for the tier."""
        overrides = ConfigOverrides.model_validate({"maxMessages": 30, "focusModeEnabled": True})
        assert overrides.defined() == {"max_messages": 30, "focus_mode_enabled": True}

    def test_max_age_may_be_null(self) -> None:
        """An explicit null max age means no limit and is defined."""
        overrides = ConfigOverrides.model_validate({"maxAge": None})
        assert overrides.defined() == {"max_age": None}

    @pytest.mark.parametrize(
        "raw",
        [
            {"maxMessages": 0},
            {"maxMessages": 101},
            {"maxMessages": "50"},
            {"maxMessages": None},
            {"maxAge": 0},
            {"maxAge": MAX_AGE_LIMIT_SECONDS + 1},
            {"maxImages": 21},
            {"memoryScoreThreshold": 1.5},
            {"memoryLimit": -1},
            {"focusModeEnabled": "yes"},
            {"unknownKey": 1},
            {"max_messages": 10},
        ],
    )
    def test_rejects_invalid_blobs(self, raw: dict) -> None:
        """Out-of-range, mistyped, null or unknown keys reject the blob."""
        with pytest.raises(ValidationError):
            ConfigOverrides.model_validate(raw)

    def test_integer_threshold_accepted(self) -> None:
        """Whole-number thresholds are valid floats."""
        overrides = ConfigOverrides.model_validate({"memoryScoreThreshold": 1})
        assert overrides.memory_score_threshold == 1

    def test_defaults_cover_every_key(self) -> None:
        """Hardcoded defaults define every override field."""
        assert set(HARDCODED_CONFIG_DEFAULTS) == set(CONFIG_OVERRIDE_KEYS)
        assert HARDCODED_CONFIG_DEFAULTS["max_messages"] == 50
        assert HARDCODED_CONFIG_DEFAULTS["max_age"] is None


class TestParseTier:
    """Test conversion of raw columns into tiers."""

    def test_none_is_no_tier(self) -> None:
        """An empty column contributes nothing."""
        assert parse_tier(ConfigSource.ADMIN, None) is None

    def test_invalid_blob_is_skipped(self, caplog) -> None:
        """A blob with one bad field is skipped as a whole."""
        tier = parse_tier(ConfigSource.CHANNEL, {"maxMessages": 10, "bogus": True})
        assert tier is None
        assert "Skipping invalid channel config overrides" in caplog.text

    def test_non_object_is_skipped(self) -> None:
        """Non-object JSON values are invalid."""
        assert parse_tier(ConfigSource.ADMIN, [1, 2]) is None
        assert parse_tier(ConfigSource.ADMIN, "maxMessages") is None

    def test_valid_blob(self) -> None:
        """A valid blob becomes a tier with its source."""
        tier = parse_tier(ConfigSource.USER_DEFAULT, {"maxImages": 3})
        assert tier is not None
        assert tier.source is ConfigSource.USER_DEFAULT
        assert tier.overrides.defined() == {"max_images": 3}


class TestMergeConfigTiers:
    """Test the tier merge."""

    def tier(self, source: ConfigSource, raw: dict) -> Tier:
        return Tier(source=source, overrides=ConfigOverrides.model_validate(raw))

    def test_no_tiers_gives_hardcoded(self) -> None:
        """Without tiers every value is the hardcoded default."""
        resolved = merge_config_tiers([])
        for key in CONFIG_OVERRIDE_KEYS:
            assert getattr(resolved, key) == HARDCODED_CONFIG_DEFAULTS[key]
            assert resolved.sources[key] is ConfigSource.HARDCODED

    def test_later_tier_wins_per_field(self) -> None:
        """Each field takes the highest tier that defines it."""
        resolved = merge_config_tiers(
            [
                self.tier(ConfigSource.ADMIN, {"maxMessages": 40, "maxImages": 5}),
                self.tier(ConfigSource.PERSONALITY, {"maxMessages": 30}),
                self.tier(ConfigSource.USER_PERSONALITY, {"focusModeEnabled": True}),
            ]
        )
        assert resolved.max_messages == 30
        assert resolved.sources["max_messages"] is ConfigSource.PERSONALITY
        assert resolved.max_images == 5
        assert resolved.sources["max_images"] is ConfigSource.ADMIN
        assert resolved.focus_mode_enabled is True
        assert resolved.sources["focus_mode_enabled"] is ConfigSource.USER_PERSONALITY
        assert resolved.sources["memory_limit"] is ConfigSource.HARDCODED

    def test_explicit_null_max_age_overrides(self) -> None:
        """A higher tier can lift a lower tier's age limit."""
        resolved = merge_config_tiers(
            [
                self.tier(ConfigSource.ADMIN, {"maxAge": 3600}),
                self.tier(ConfigSource.CHANNEL, {"maxAge": None}),
            ]
        )
        assert resolved.max_age is None
        assert resolved.sources["max_age"] is ConfigSource.CHANNEL

    def test_serializes_with_camel_case(self) -> None:
        """The resolved model dumps with wire names and source labels."""
        dumped = merge_config_tiers(
            [self.tier(ConfigSource.USER_DEFAULT, {"maxMessages": 10})]
        ).model_dump(by_alias=True, mode="json")
        assert dumped["maxMessages"] == 10
        assert dumped["sources"]["max_messages"] == "user-default"
