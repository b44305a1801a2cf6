"""Configuration models and loaders."""

from marketnorm.core.config.models import (
    DateNormalizerConfig,
    DateValidationRules,
    DetectionConfig,
    InterpolationMethod,
    ParserConfig,
    QualityConfig,
    SpecialValueHandling,
    SplitAdjusterConfig,
    TransformationConfig,
    VolumeNormalizerConfig,
    deep_update,
)
from marketnorm.core.config.settings import (
    ConfigManager,
    LoggingSettings,
    MarketNormConfig,
    get_default_config,
    load_config_from_env,
)

__all__ = [
    "ConfigManager",
    "DateNormalizerConfig",
    "DateValidationRules",
    "DetectionConfig",
    "InterpolationMethod",
    "LoggingSettings",
    "MarketNormConfig",
    "ParserConfig",
    "QualityConfig",
    "SpecialValueHandling",
    "SplitAdjusterConfig",
    "TransformationConfig",
    "VolumeNormalizerConfig",
    "deep_update",
    "get_default_config",
    "load_config_from_env",
]
