"""marketnorm - 金融行情数据规范化库

把来自不同数据提供商的 OHLCV 原始负载转换为统一的标准格式，
附带日期置信度、拆股调整、成交量单位换算和数据质量评分。
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from marketnorm.core.config.models import DetectionConfig, TransformationConfig
from marketnorm.core.models.market import DataSource, TimeFrame
from marketnorm.core.models.outliers import AnalysisReport
from marketnorm.core.models.response import StandardFinancialResponse
from marketnorm.core.models.splits import SplitEvent
from marketnorm.core.services.outliers import OutlierDetector
from marketnorm.core.services.pipeline import TransformationPipeline

# 全局流水线实例, 拆股缓存在多次调用之间共享
_pipeline: TransformationPipeline | None = None


def get_pipeline() -> TransformationPipeline:
    """获取全局转换流水线实例"""
    global _pipeline
    if _pipeline is None:
        _pipeline = TransformationPipeline()
    return _pipeline


def transform(
    raw_data: Any,
    source: str | DataSource,
    symbol: str,
    timeframe: str | TimeFrame = TimeFrame.DAILY,
    config: TransformationConfig | Mapping[str, Any] | None = None,
    known_splits: Iterable[SplitEvent] | None = None,
) -> StandardFinancialResponse:
    """把提供商原始负载转换为标准响应

    Args:
        raw_data: 提供商返回的原始 JSON 负载
        source: 数据源 (alpha_vantage, yahoo_finance, iex_cloud, polygon, quandl)
        symbol: 证券代码
        timeframe: 时间框架 (1min, 5min, 15min, 30min, 1hour, daily, weekly, monthly)
        config: 部分配置 (深度合并) 或完整的 TransformationConfig
        known_splits: 已验证的外部拆股事件 (可选)

    Returns:
        StandardFinancialResponse, 失败时 success 为 False 而不是抛出异常

    Examples:
        >>> import marketnorm
        >>> response = marketnorm.transform(payload, "alpha_vantage", "AAPL", "daily")
        >>> response.metadata.quality_score
    """
    return get_pipeline().transform(raw_data, source, symbol, timeframe, config, known_splits)


def analyze_outliers(
    series: Sequence[Any],
    config: DetectionConfig | Mapping[str, Any] | None = None,
    symbol: str | None = None,
) -> AnalysisReport:
    """检测标准化序列中的异常事件

    Raises:
        InsufficientDataError: 数据点不足
        DataValidationError: 数据点格式错误
    """
    return OutlierDetector(config).analyze_outliers(series, symbol)


# 版本信息
__version__ = "0.1.0"

__all__ = [
    "AnalysisReport",
    "DataSource",
    "DetectionConfig",
    "OutlierDetector",
    "SplitEvent",
    "StandardFinancialResponse",
    "TimeFrame",
    "TransformationConfig",
    "TransformationPipeline",
    "analyze_outliers",
    "get_pipeline",
    "transform",
    "__version__",
]
