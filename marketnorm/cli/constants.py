"""Exit codes shared by CLI commands."""

SYSTEM_EXIT_CODE = 1
VALIDATION_EXIT_CODE = 2
DATA_EXIT_CODE = 3

__all__ = ["SYSTEM_EXIT_CODE", "VALIDATION_EXIT_CODE", "DATA_EXIT_CODE"]
