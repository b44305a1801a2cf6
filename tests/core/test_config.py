"""
Tests for configuration management.

This module covers the validated stage models, TOML loading and the
``MARKETNORM_*`` environment overrides.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from marketnorm.core.config import (
    ConfigManager,
    DateValidationRules,
    DetectionConfig,
    MarketNormConfig,
    SpecialValueHandling,
    SplitAdjusterConfig,
    TransformationConfig,
    deep_update,
    get_default_config,
    load_config_from_env,
)
from marketnorm.core.exceptions import ConfigurationError

_ENV_KEYS = (
    "MARKETNORM_QUALITY_THRESHOLD",
    "MARKETNORM_TIMEZONE",
    "MARKETNORM_ENABLE_SPLIT_ADJUSTMENT",
    "MARKETNORM_SPLIT_THRESHOLD",
    "MARKETNORM_PRICE_CEILING",
    "MARKETNORM_DEFAULT_TIMEZONE",
    "MARKETNORM_MIN_DATA_POINTS",
    "MARKETNORM_SIGMA_THRESHOLD",
    "MARKETNORM_LOG_LEVEL",
    "MARKETNORM_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestStageModels:
    """Test the per-stage configuration models."""

    def test_transformation_defaults(self):
        config = TransformationConfig()

        assert config.enable_date_normalization is True
        assert config.quality_threshold == 0.7
        assert config.timezone == "UTC"
        assert config.dates.default_timezone == "America/New_York"
        assert config.splits.split_threshold == 1.5
        assert config.volume.special_value_handling == SpecialValueHandling.KEEP

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(ValidationError):
            TransformationConfig.model_validate({"enable_magic": True})

    def test_date_window_must_be_ordered(self):
        with pytest.raises(ValidationError):
            DateValidationRules(min_date_range=10, max_date_range=5)

    def test_canonical_ratios_are_sorted_and_checked(self):
        assert SplitAdjusterConfig(canonical_ratios=[3.0, 2.0]).canonical_ratios == [2.0, 3.0]
        with pytest.raises(ValidationError):
            SplitAdjusterConfig(canonical_ratios=[0.5])

    def test_merged_deep_updates_nested_sections(self):
        base = TransformationConfig()

        merged = base.merged({"splits": {"split_threshold": 2.0}, "quality_threshold": 0.5})

        assert merged.splits.split_threshold == 2.0
        assert merged.splits.min_confidence == 0.7
        assert merged.quality_threshold == 0.5
        assert base.splits.split_threshold == 1.5
        assert base.merged(None) is base

    def test_detection_defaults(self):
        config = DetectionConfig()

        assert config.min_data_points == 20
        assert config.enable_volatility_spike_detection is False


class TestConfigManager:
    """Test loading configuration from TOML files and the environment."""

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        manager = ConfigManager(tmp_path / "absent.toml")

        assert manager.get_config().transformation == TransformationConfig()

    def test_loads_toml_sections(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text(
            "[transformation]\n"
            "quality_threshold = 0.5\n"
            "[transformation.splits]\n"
            "split_threshold = 1.8\n"
            "[detection]\n"
            "sigma_threshold = 2.5\n"
            "[logging]\n"
            'level = "DEBUG"\n',
            encoding="utf-8",
        )

        config = ConfigManager(path).get_config()

        assert config.transformation.quality_threshold == 0.5
        assert config.transformation.splits.split_threshold == 1.8
        assert config.detection.sigma_threshold == 2.5
        assert config.logging.level == "DEBUG"

    def test_invalid_toml_falls_back_to_defaults(self, tmp_path: Path):
        path = tmp_path / "broken.toml"
        path.write_text("[transformation\nquality_threshold = ", encoding="utf-8")

        assert ConfigManager(path).get_config().transformation.quality_threshold == 0.7

    def test_invalid_values_fall_back_to_defaults(self, tmp_path: Path):
        path = tmp_path / "invalid.toml"
        path.write_text("[transformation]\nquality_threshold = 7\n", encoding="utf-8")

        assert ConfigManager(path).get_config().transformation.quality_threshold == 0.7

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "config.toml"
        path.write_text("[transformation]\nquality_threshold = 0.5\n", encoding="utf-8")
        monkeypatch.setenv("MARKETNORM_QUALITY_THRESHOLD", "0.9")
        monkeypatch.setenv("MARKETNORM_ENABLE_SPLIT_ADJUSTMENT", "no")

        config = ConfigManager(path).get_config()

        assert config.transformation.quality_threshold == 0.9
        assert config.transformation.enable_split_adjustment is False

    def test_use_env_false_ignores_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MARKETNORM_SIGMA_THRESHOLD", "4.5")

        config = ConfigManager(tmp_path / "absent.toml", use_env=False).get_config()

        assert config.detection.sigma_threshold == 3.0

    def test_update_config_validates(self, tmp_path: Path):
        manager = ConfigManager(tmp_path / "absent.toml")

        manager.update_config(detection={"min_data_points": 40})
        assert manager.get_config().detection.min_data_points == 40

        with pytest.raises(ConfigurationError):
            manager.update_config(detection={"min_data_points": 1})


class TestHelpers:
    """Test module level helpers."""

    def test_load_config_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MARKETNORM_SPLIT_THRESHOLD", "2.5")
        monkeypatch.setenv("MARKETNORM_MIN_DATA_POINTS", "30")
        monkeypatch.setenv("MARKETNORM_LOG_LEVEL", "ERROR")

        assert load_config_from_env() == {
            "transformation": {"splits": {"split_threshold": 2.5}},
            "detection": {"min_data_points": 30},
            "logging": {"level": "ERROR"},
        }

    def test_deep_update_merges_nested_dicts(self):
        target = {"a": {"b": 1, "c": 2}, "d": 3}

        assert deep_update(target, {"a": {"b": 5}, "e": 6}) == {"a": {"b": 5, "c": 2}, "d": 3, "e": 6}

    def test_round_trip_through_dict(self):
        config = get_default_config()

        restored = MarketNormConfig.from_dict(config.to_dict())

        assert restored.transformation == config.transformation
        assert restored.detection == config.detection
