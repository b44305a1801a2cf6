"""标准化错误消息模板."""

from datetime import UTC, datetime
from typing import Any

from marketnorm.core.exceptions.codes import ErrorCode


class ErrorMessageTemplate:
    """错误消息模板管理器."""

    _templates: dict[ErrorCode, str] = {
        ErrorCode.GENERAL_ERROR: "An unknown error occurred",
        ErrorCode.INTERNAL_ERROR: "Internal error",
        ErrorCode.CONFIGURATION_ERROR: "Configuration error: {details}",
        ErrorCode.PAYLOAD_STRUCTURE_ERROR: "Payload from {source} has no usable time series",
        ErrorCode.UNSUPPORTED_SOURCE: "Unsupported data source: {source}",
        ErrorCode.PARSING_ERROR: "Failed to parse payload: {message}",
        ErrorCode.VALIDATION_ERROR: "Data validation failed: {validation_errors}",
        ErrorCode.DATA_FORMAT_ERROR: "Data format error: {format_error}",
        ErrorCode.DATA_QUALITY_ERROR: "Data quality below threshold: {quality_score}",
        ErrorCode.INSUFFICIENT_DATA: "Insufficient data points. Need at least {required}, got {received}",
        ErrorCode.SPLIT_CACHE_ERROR: "Split cache error for {symbol}",
        ErrorCode.INPUT_READ_ERROR: "Unable to read input: {path}",
        ErrorCode.INVALID_FORMAT: "Unsupported output format: {format}",
        ErrorCode.OUTPUT_WRITE_ERROR: "Unable to write output: {path}",
    }

    @classmethod
    def get_message(cls, error_code: ErrorCode, **kwargs: Any) -> str:
        """获取标准化错误消息.

        Args:
            error_code: 错误代码
            **kwargs: 模板变量

        Returns:
            格式化后的错误消息
        """
        template = cls._templates.get(error_code, cls._templates[ErrorCode.GENERAL_ERROR])
        try:
            return template.format(**kwargs)
        except KeyError:
            # 如果缺少模板变量，返回带错误代码的通用消息
            return f"{cls._templates[ErrorCode.GENERAL_ERROR]} (error code: {error_code.value})"


def format_error_response(error_code: ErrorCode, message: str | None = None, **kwargs: Any) -> dict[str, Any]:
    """格式化错误响应.

    Args:
        error_code: 错误代码
        message: 自定义错误消息(可选)
        **kwargs: 额外的错误详情

    Returns:
        标准化的错误响应字典
    """
    if message is None:
        message = ErrorMessageTemplate.get_message(error_code, **kwargs)

    return {
        "error": {
            "code": error_code.value,
            "message": message,
            "details": kwargs,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    }


__all__ = ["ErrorMessageTemplate", "format_error_response"]
