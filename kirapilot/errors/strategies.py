"""
Recovery strategy table: per-kind retry/backoff policy.

The table is replaced wholesale on every update (copy-on-write) while holding
a ``threading.Lock``; readers just grab the current mapping and never block.
"""

import logging
import threading
from dataclasses import fields, replace
from typing import Any, Dict, Mapping, Optional

from .models import (
    ErrorKind,
    FallbackAction,
    RecoveryStrategy,
    ToolExecutionError,
    always_retry,
    never_retry,
)

logger = logging.getLogger(__name__)

_NON_RETRYABLE_EXECUTION_MARKERS = ("validation", "permission", "unauthorized", "forbidden")
_RETRYABLE_RESOURCE_MARKERS = ("busy", "unavailable", "overload", "circuit breaker")

STRATEGY_FIELDS = frozenset(f.name for f in fields(RecoveryStrategy))


def is_retryable_execution_error(error: ToolExecutionError, attempt: int) -> bool:
    message = error.message.lower()
    return not any(marker in message for marker in _NON_RETRYABLE_EXECUTION_MARKERS)


def is_retryable_resource_error(error: ToolExecutionError, attempt: int) -> bool:
    message = error.message.lower()
    return any(marker in message for marker in _RETRYABLE_RESOURCE_MARKERS)


def default_strategies(fallbacks: Optional[Mapping[ErrorKind, FallbackAction]] = None) -> Dict[ErrorKind, RecoveryStrategy]:
    """Build the default policy table, wiring in the given fallback actions."""
    fallbacks = fallbacks or {}
    table = {
        ErrorKind.TOOL_NOT_FOUND: RecoveryStrategy(0, 0, 1, never_retry),
        ErrorKind.PERMISSION_DENIED: RecoveryStrategy(0, 0, 1, never_retry),
        ErrorKind.VALIDATION_ERROR: RecoveryStrategy(0, 0, 1, never_retry),
        ErrorKind.EXECUTION_ERROR: RecoveryStrategy(2, 1000, 2, is_retryable_execution_error),
        ErrorKind.DATABASE_ERROR: RecoveryStrategy(3, 500, 1.5, always_retry),
        ErrorKind.NETWORK_ERROR: RecoveryStrategy(3, 2000, 2, always_retry),
        ErrorKind.TIMEOUT_ERROR: RecoveryStrategy(2, 1000, 1.5, always_retry),
        ErrorKind.RESOURCE_ERROR: RecoveryStrategy(2, 3000, 1.5, is_retryable_resource_error),
    }
    for kind, action in fallbacks.items():
        table[kind] = replace(table[kind], fallback_action=action)
    return table


class StrategyTable:
    """Thread-safe, copy-on-write mapping of ErrorKind to RecoveryStrategy."""

    def __init__(self, strategies: Mapping[ErrorKind, RecoveryStrategy]):
        self._lock = threading.Lock()
        self._strategies: Mapping[ErrorKind, RecoveryStrategy] = dict(strategies)

    def get(self, kind: Any) -> Optional[RecoveryStrategy]:
        """Strategy for ``kind``; None for an unknown kind."""
        try:
            kind = ErrorKind(kind)
        except ValueError:
            return None
        return self._strategies.get(kind)

    def update(self, kind: Any, changes: Mapping[str, Any]) -> RecoveryStrategy:
        """
        Merge ``changes`` into the strategy for ``kind``

        Raises:
            ValueError: unknown kind or unknown strategy field
        """
        kind = ErrorKind(kind)
        unknown = set(changes) - STRATEGY_FIELDS
        if unknown:
            raise ValueError(f"Unknown recovery strategy field(s): {', '.join(sorted(unknown))}")
        with self._lock:
            current = self._strategies.get(kind) or RecoveryStrategy()
            updated = replace(current, **changes)
            table = dict(self._strategies)
            table[kind] = updated
            self._strategies = table
        logger.info(f"Recovery strategy for {kind.value} updated: {', '.join(sorted(changes))}")
        return updated

    def snapshot(self) -> Dict[ErrorKind, RecoveryStrategy]:
        return dict(self._strategies)
