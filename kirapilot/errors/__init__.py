"""
KiraPilot Errors Module - Error normalization and recovery policy

Usage:
    from kirapilot.errors import ErrorHandler, ErrorKind

    handler = ErrorHandler(catalog)
    handler.update_recovery_strategy(ErrorKind.NETWORK_ERROR, max_retries=5)
    result = await handler.handle_error(ConnectionError("network unreachable"))
"""

from .models import (
    NON_RETRYABLE_KINDS,
    AlternativeToolSuggestion,
    ErrorKind,
    ErrorRecoveryContext,
    RecoveryStrategy,
    RetryMode,
    ToolExecutionError,
)
from .classifier import extract_required_permission, infer_kind, normalize_error
from .suggestions import levenshtein_distance, similarity_ratio, suggest_alternatives
from .strategies import StrategyTable, default_strategies
from .handler import ErrorHandler, get_error_handler, initialize_error_handler

__all__ = [
    "NON_RETRYABLE_KINDS",
    "AlternativeToolSuggestion",
    "ErrorKind",
    "ErrorRecoveryContext",
    "RecoveryStrategy",
    "RetryMode",
    "ToolExecutionError",
    "extract_required_permission",
    "infer_kind",
    "normalize_error",
    "levenshtein_distance",
    "similarity_ratio",
    "suggest_alternatives",
    "StrategyTable",
    "default_strategies",
    "ErrorHandler",
    "get_error_handler",
    "initialize_error_handler",
]
