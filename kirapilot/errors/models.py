"""
KiraPilot Error Models - Canonical error taxonomy and recovery policy types
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from ..constants import DEFAULT_MAX_ATTEMPTS, UNKNOWN_TOOL_NAME
from ..tools.models import AlternativeToolSuggestion, PermissionLevel, ToolExecutionResult


class ErrorKind(str, Enum):
    """The eight canonical failure kinds every tool error is normalized into"""
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RESOURCE_ERROR = "RESOURCE_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"


# Kinds that are never retried, whatever the strategy table says
NON_RETRYABLE_KINDS: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.VALIDATION_ERROR,
    ErrorKind.PERMISSION_DENIED,
})


class RetryMode(str, Enum):
    """How ``handle_error`` decides retry eligibility.

    AUTO: retry only when a recovery context is supplied.
    NEVER: always produce a terminal result.
    ALLOWED: retry-eligible even without a context (treated as attempt 1).
    """
    AUTO = "auto"
    NEVER = "never"
    ALLOWED = "allowed"


class ToolExecutionError(Exception):
    """
    A classified tool failure

    Attributes:
        kind: Canonical ErrorKind
        message: Human-oriented description
        tool_name: Tool that failed ("unknown" when not known)
        cause: Underlying exception or raw error, if any
        required_permission: For PERMISSION_DENIED, the missing permission
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        tool_name: str = UNKNOWN_TOOL_NAME,
        cause: Any = None,
        required_permission: Optional[PermissionLevel] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.tool_name = tool_name or UNKNOWN_TOOL_NAME
        self.cause = cause
        self.required_permission = required_permission

    def __repr__(self) -> str:
        return f"ToolExecutionError(kind={self.kind.value}, tool_name={self.tool_name!r}, message={self.message!r})"


@dataclass(frozen=True)
class ErrorRecoveryContext:
    """State of one retry cycle for a single tool invocation.

    ``attempt`` is 1-based. A fresh context is derived for each attempt via
    :meth:`next_attempt`.
    """
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    granted_permissions: FrozenSet[PermissionLevel] = frozenset()
    attempt: int = 1
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    previous_errors: Tuple[ToolExecutionError, ...] = ()

    def next_attempt(self, error: ToolExecutionError) -> "ErrorRecoveryContext":
        return replace(
            self,
            attempt=self.attempt + 1,
            previous_errors=self.previous_errors + (error,),
        )


FallbackAction = Callable[[ToolExecutionError, Optional[ErrorRecoveryContext]], Awaitable[ToolExecutionResult]]
RetryPredicate = Callable[[ToolExecutionError, int], bool]


def always_retry(error: ToolExecutionError, attempt: int) -> bool:
    return True


def never_retry(error: ToolExecutionError, attempt: int) -> bool:
    return False


@dataclass(frozen=True)
class RecoveryStrategy:
    """
    Retry/backoff policy for one ErrorKind

    Attributes:
        max_retries: Attempts below this number may be retried
        base_retry_delay_ms: Delay before the first retry
        backoff_multiplier: Growth factor applied per attempt
        should_retry: Extra predicate ``(error, attempt) -> bool``
        fallback_action: Async callable producing a terminal result
    """
    max_retries: int = 0
    base_retry_delay_ms: int = 0
    backoff_multiplier: float = 1.0
    should_retry: RetryPredicate = never_retry
    fallback_action: Optional[FallbackAction] = None

    def retry_delay_ms(self, attempt: int) -> int:
        """``base * multiplier ** (attempt - 1)`` rounded to whole milliseconds."""
        exponent = max(attempt, 1) - 1
        return int(round(self.base_retry_delay_ms * self.backoff_multiplier ** exponent))


__all__ = [
    "AlternativeToolSuggestion",
    "ErrorKind",
    "ErrorRecoveryContext",
    "FallbackAction",
    "NON_RETRYABLE_KINDS",
    "RecoveryStrategy",
    "RetryMode",
    "RetryPredicate",
    "ToolExecutionError",
    "always_retry",
    "never_retry",
]
