"""Exception handling module."""

from marketnorm.core.exceptions.base import (
    ConfigurationError,
    DataValidationError,
    InsufficientDataError,
    MarketNormError,
    PayloadStructureError,
    SplitCacheError,
    UnsupportedSourceError,
)
from marketnorm.core.exceptions.codes import ErrorCode
from marketnorm.core.exceptions.messages import ErrorMessageTemplate, format_error_response

__all__ = [
    "MarketNormError",
    "PayloadStructureError",
    "UnsupportedSourceError",
    "DataValidationError",
    "InsufficientDataError",
    "ConfigurationError",
    "SplitCacheError",
    "ErrorCode",
    "ErrorMessageTemplate",
    "format_error_response",
]
