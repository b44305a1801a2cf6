"""marketnorm核心异常类."""

from typing import Any

from marketnorm.core.exceptions.codes import ErrorCode


class MarketNormError(Exception):
    """marketnorm基础异常类."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.GENERAL_ERROR.value,
        details: dict[str, Any] | None = None,
    ):
        """初始化异常.

        Args:
            message: 错误消息
            error_code: 错误代码
            details: 额外详情
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class PayloadStructureError(MarketNormError):
    """Raised when a provider payload carries no usable time-series container."""

    def __init__(
        self,
        message: str,
        source: str,
        issues: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details["source"] = source
        if issues:
            super_details["issues"] = issues
        super().__init__(message, ErrorCode.PAYLOAD_STRUCTURE_ERROR.value, super_details)
        self.source = source
        self.issues = issues or []


class UnsupportedSourceError(MarketNormError):
    """没有注册对应数据源的解析器."""

    def __init__(self, source: str, available: list[str] | None = None):
        details: dict[str, Any] = {"source": source}
        if available:
            details["available"] = available
        super().__init__(f"Unsupported data source: {source}", ErrorCode.UNSUPPORTED_SOURCE.value, details)
        self.source = source


class DataValidationError(MarketNormError):
    """数据验证异常."""

    def __init__(
        self,
        message: str,
        validation_errors: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if validation_errors:
            super_details["validation_errors"] = validation_errors
        super().__init__(message, ErrorCode.VALIDATION_ERROR.value, super_details)
        self.validation_errors = validation_errors or {}


class InsufficientDataError(MarketNormError):
    """Raised when a series is too short for statistical analysis."""

    def __init__(self, message: str, required: int, received: int):
        super().__init__(
            message,
            ErrorCode.INSUFFICIENT_DATA.value,
            {"required": required, "received": received},
        )
        self.required = required
        self.received = received


class ConfigurationError(MarketNormError):
    """配置异常."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR.value, details)


class SplitCacheError(MarketNormError):
    """缓存相关异常."""

    def __init__(self, message: str, symbol: str | None = None):
        details: dict[str, Any] = {}
        if symbol:
            details["symbol"] = symbol
        super().__init__(message, ErrorCode.SPLIT_CACHE_ERROR.value, details)
