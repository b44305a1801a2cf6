"""marketnorm 核心模块 - 解析、规范化与异常检测"""

from marketnorm.core.config.models import DetectionConfig, TransformationConfig
from marketnorm.core.config.settings import ConfigManager, MarketNormConfig
from marketnorm.core.models.market import DataSource, TimeFrame
from marketnorm.core.services.outliers import OutlierDetector
from marketnorm.core.services.pipeline import TransformationPipeline

__all__ = [
    "ConfigManager",
    "DataSource",
    "DetectionConfig",
    "MarketNormConfig",
    "OutlierDetector",
    "TimeFrame",
    "TransformationConfig",
    "TransformationPipeline",
]
