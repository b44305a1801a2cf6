"""Standardised error codes shared across marketnorm."""

from enum import Enum


class ErrorCode(str, Enum):
    """错误代码枚举."""

    GENERAL_ERROR = "GENERAL_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # 解析相关错误
    PAYLOAD_STRUCTURE_ERROR = "PAYLOAD_STRUCTURE_ERROR"
    UNSUPPORTED_SOURCE = "UNSUPPORTED_SOURCE"
    PARSING_ERROR = "PARSING_ERROR"

    # 数据相关错误
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DATA_FORMAT_ERROR = "DATA_FORMAT_ERROR"
    DATA_QUALITY_ERROR = "DATA_QUALITY_ERROR"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"

    # 缓存相关错误
    SPLIT_CACHE_ERROR = "SPLIT_CACHE_ERROR"

    # CLI
    INPUT_READ_ERROR = "INPUT_READ_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"
    OUTPUT_WRITE_ERROR = "OUTPUT_WRITE_ERROR"


__all__ = ["ErrorCode"]
