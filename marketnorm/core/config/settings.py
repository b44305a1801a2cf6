"""配置管理模块 - 处理marketnorm的配置"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from marketnorm.core.config.models import DetectionConfig, TransformationConfig, deep_update
from marketnorm.core.exceptions import ConfigurationError
from marketnorm.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".marketnorm" / "config.toml"


@dataclass
class LoggingSettings:
    """日志配置"""

    level: str = "INFO"
    file: str | None = None


@dataclass
class MarketNormConfig:
    """marketnorm主配置"""

    transformation: TransformationConfig = field(default_factory=TransformationConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "MarketNormConfig":
        """从字典创建配置"""
        try:
            transformation = TransformationConfig.model_validate(config_dict.get("transformation", {}))
            detection = DetectionConfig.model_validate(config_dict.get("detection", {}))
            logging_settings = LoggingSettings(**config_dict.get("logging", {}))
        except (ValidationError, TypeError) as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

        return cls(transformation=transformation, detection=detection, logging=logging_settings)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "transformation": self.transformation.model_dump(mode="json"),
            "detection": self.detection.model_dump(mode="json"),
            "logging": {key: value for key, value in vars(self.logging).items() if value is not None},
        }


class ConfigManager:
    """配置管理器"""

    def __init__(self, config_path: Path | None = None, *, use_env: bool = True):
        """初始化配置管理器

        Args:
            config_path: 配置文件路径，如果为None则使用默认路径
            use_env: 是否叠加 ``MARKETNORM_*`` 环境变量
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.use_env = use_env
        self.config = self._load_config()

    def _load_config(self) -> MarketNormConfig:
        """加载配置"""
        config_dict: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                # 如果配置文件有问题，使用默认配置
                logger.warning(f"Failed to load config from {self.config_path}: {exc}")
                config_dict = {}

        if self.use_env:
            deep_update(config_dict, load_config_from_env())

        try:
            return MarketNormConfig.from_dict(config_dict)
        except ConfigurationError as exc:
            logger.warning(f"Falling back to default configuration: {exc.message}")
            return MarketNormConfig()

    def get_config(self) -> MarketNormConfig:
        """获取当前配置"""
        return self.config

    def update_config(self, **updates: Any) -> None:
        """更新配置

        Raises:
            ConfigurationError: 更新后的配置无效
        """
        config_dict = deep_update(self.config.to_dict(), updates)
        self.config = MarketNormConfig.from_dict(config_dict)


def get_default_config() -> MarketNormConfig:
    """获取默认配置"""
    return MarketNormConfig()


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config_from_env() -> dict[str, Any]:
    """从环境变量加载配置"""
    config: dict[str, Any] = {}

    # 转换配置
    transformation: dict[str, Any] = {}
    quality_threshold = os.getenv("MARKETNORM_QUALITY_THRESHOLD")
    if quality_threshold is not None:
        transformation["quality_threshold"] = float(quality_threshold)
    timezone = os.getenv("MARKETNORM_TIMEZONE")
    if timezone:
        transformation["timezone"] = timezone
    split_adjustment = os.getenv("MARKETNORM_ENABLE_SPLIT_ADJUSTMENT")
    if split_adjustment is not None:
        transformation["enable_split_adjustment"] = _env_bool(split_adjustment)
    split_threshold = os.getenv("MARKETNORM_SPLIT_THRESHOLD")
    if split_threshold is not None:
        transformation.setdefault("splits", {})["split_threshold"] = float(split_threshold)
    price_ceiling = os.getenv("MARKETNORM_PRICE_CEILING")
    if price_ceiling is not None:
        transformation.setdefault("parser", {})["price_ceiling"] = float(price_ceiling)
    default_timezone = os.getenv("MARKETNORM_DEFAULT_TIMEZONE")
    if default_timezone:
        transformation.setdefault("dates", {})["default_timezone"] = default_timezone

    if transformation:
        config["transformation"] = transformation

    # 检测配置
    detection: dict[str, Any] = {}
    min_points = os.getenv("MARKETNORM_MIN_DATA_POINTS")
    if min_points is not None:
        detection["min_data_points"] = int(min_points)
    sigma = os.getenv("MARKETNORM_SIGMA_THRESHOLD")
    if sigma is not None:
        detection["sigma_threshold"] = float(sigma)

    if detection:
        config["detection"] = detection

    # 日志配置
    logging_config: dict[str, Any] = {}
    log_level = os.getenv("MARKETNORM_LOG_LEVEL")
    if log_level is not None:
        logging_config["level"] = log_level
    log_file = os.getenv("MARKETNORM_LOG_FILE")
    if log_file is not None:
        logging_config["file"] = log_file

    if logging_config:
        config["logging"] = logging_config

    return config
