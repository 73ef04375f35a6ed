"""
KiraPilot Error Handler - Recovery policy engine for tool failures

Every failure raised or returned by a tool passes through ``handle_error``,
which normalizes it, decides retry-or-terminal according to the strategy
table, and composes the user-facing message. ``handle_error`` never raises.
"""

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Sequence

from ..audit_logger import AuditLogger
from ..constants import BUILTIN_TOOL_NAMES, UNKNOWN_TOOL_NAME
from ..protocols import TranslationFunction, identity_translation
from ..tools.models import (
    PermissionLevel,
    ResultMetadata,
    ToolExecutionResult,
    sorted_permissions,
)
from . import guidance
from .classifier import normalize_error
from .models import (
    NON_RETRYABLE_KINDS,
    ErrorKind,
    ErrorRecoveryContext,
    RecoveryStrategy,
    RetryMode,
    ToolExecutionError,
)
from .strategies import StrategyTable, default_strategies
from .suggestions import suggest_alternatives

logger = logging.getLogger(__name__)


class ErrorHandler:
    """
    Normalizes tool failures and applies the recovery policy

    Args:
        catalog: ToolCatalog used for suggestions and permission lookups
            (optional; the built-in tool names are listed when absent)
        translate: Translation function applied to headings
        retry_mode: Default RetryMode for ``handle_error``
        audit: AuditLogger receiving ``recovery_decision`` events

    Example:
        handler = ErrorHandler(catalog)
        result = await handler.handle_error(exc, context)
        if result.is_retry:
            await asyncio.sleep(result.metadata.retry_after_ms / 1000)
    """

    def __init__(
        self,
        catalog: Any = None,
        translate: Optional[TranslationFunction] = None,
        retry_mode: RetryMode = RetryMode.AUTO,
        audit: Optional[AuditLogger] = None,
    ):
        self.catalog = catalog
        self.translate = translate or identity_translation
        self.retry_mode = retry_mode
        self.audit = audit or AuditLogger()
        self._strategies = StrategyTable(default_strategies({
            ErrorKind.TOOL_NOT_FOUND: self._suggest_alternative_tools,
            ErrorKind.PERMISSION_DENIED: self._provide_permission_guidance,
            ErrorKind.VALIDATION_ERROR: self._provide_validation_guidance,
            ErrorKind.DATABASE_ERROR: self._provide_database_guidance,
        }))

    # ------------------------------------------------------------------
    # Strategy table
    # ------------------------------------------------------------------

    def get_recovery_strategy(self, kind: Any) -> Optional[RecoveryStrategy]:
        """Current strategy for ``kind``; None for an unknown kind."""
        return self._strategies.get(kind)

    def update_recovery_strategy(
        self,
        kind: Any,
        changes: Optional[Mapping[str, Any]] = None,
        **fields: Any,
    ) -> RecoveryStrategy:
        """
        Merge field overrides into the strategy for ``kind``

        Accepts a mapping, keyword arguments, or both. Fields not mentioned
        keep their current values.
        """
        merged: Dict[str, Any] = dict(changes or {})
        merged.update(fields)
        return self._strategies.update(kind, merged)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def handle_error(
        self,
        raw_error: Any,
        context: Optional[ErrorRecoveryContext] = None,
        *,
        retry_mode: Optional[RetryMode] = None,
    ) -> ToolExecutionResult:
        """
        Turn a raw failure into a retry notice or a terminal result

        Args:
            raw_error: Exception, failure mapping, text or ToolExecutionError
            context: Recovery context of the current attempt, if any
            retry_mode: Overrides the handler's default RetryMode

        Returns:
            ToolExecutionResult with ``success=False``. ``is_retry`` is True
            when another attempt should be made after ``retry_after_ms``.
        """
        error: Optional[ToolExecutionError] = None
        try:
            error = normalize_error(raw_error, tool_name=context.tool_name if context else None)
            retry_context = self._retry_context(error, context, retry_mode or self.retry_mode)
            strategy = self.get_recovery_strategy(error.kind)

            if strategy is not None and retry_context is not None and self._should_retry(error, strategy, retry_context):
                return self._retry_result(error, strategy, retry_context)

            if strategy is not None and strategy.fallback_action is not None:
                try:
                    result = await strategy.fallback_action(error, context)
                    self.audit.log_recovery_decision(
                        tool_name=error.tool_name,
                        error_kind=error.kind.value,
                        decision="fallback",
                        attempt=context.attempt if context else None,
                    )
                    return result
                except Exception as fallback_error:
                    logger.warning(
                        f"Fallback for {error.kind.value} on '{error.tool_name}' failed: {fallback_error}",
                        exc_info=True,
                    )

            return self._terminal_result(error, context)
        except Exception as e:
            logger.error(f"Error handler failed while handling {type(raw_error).__name__}: {e}", exc_info=True)
            tool_name = (error.tool_name if error else None) or (context.tool_name if context else UNKNOWN_TOOL_NAME)
            message = error.message if error else "Unknown error"
            return ToolExecutionResult(
                success=False,
                error=message,
                user_message=guidance.generic_failure_message(tool_name, message),
                metadata=ResultMetadata(tool_name=tool_name, error_kind=ErrorKind.EXECUTION_ERROR.value),
            )

    # ------------------------------------------------------------------
    # Retry decision
    # ------------------------------------------------------------------

    def _retry_context(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
        mode: RetryMode,
    ) -> Optional[ErrorRecoveryContext]:
        if mode == RetryMode.NEVER:
            return None
        if context is None and mode == RetryMode.ALLOWED:
            return ErrorRecoveryContext(tool_name=error.tool_name)
        return context

    @staticmethod
    def _should_retry(
        error: ToolExecutionError,
        strategy: RecoveryStrategy,
        context: ErrorRecoveryContext,
    ) -> bool:
        if error.kind in NON_RETRYABLE_KINDS:
            return False
        if context.attempt >= context.max_attempts:
            return False
        if context.attempt >= strategy.max_retries:
            return False
        try:
            return bool(strategy.should_retry(error, context.attempt))
        except Exception as e:
            logger.warning(f"Retry predicate for {error.kind.value} raised: {e}")
            return False

    def _retry_result(
        self,
        error: ToolExecutionError,
        strategy: RecoveryStrategy,
        context: ErrorRecoveryContext,
    ) -> ToolExecutionResult:
        delay = strategy.retry_delay_ms(context.attempt)
        logger.warning(
            f"Tool '{error.tool_name}' failed with {error.kind.value} "
            f"(attempt {context.attempt}/{context.max_attempts}), retrying in {delay}ms: {error.message}"
        )
        self.audit.log_recovery_decision(
            tool_name=error.tool_name,
            error_kind=error.kind.value,
            decision="retry",
            attempt=context.attempt,
            retry_after_ms=delay,
        )
        return ToolExecutionResult(
            success=False,
            error=error.message,
            user_message=guidance.retry_message(error.tool_name, context.attempt, delay, self.translate),
            metadata=ResultMetadata(
                tool_name=error.tool_name,
                permissions_used=tuple(sorted_permissions(context.granted_permissions)),
                retry_after_ms=delay,
                attempt=context.attempt,
                max_attempts=context.max_attempts,
                error_kind=error.kind.value,
            ),
        )

    def _terminal_result(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
    ) -> ToolExecutionResult:
        self.audit.log_recovery_decision(
            tool_name=error.tool_name,
            error_kind=error.kind.value,
            decision="terminal",
            attempt=context.attempt if context else None,
        )
        return ToolExecutionResult(
            success=False,
            error=error.message,
            user_message=guidance.terminal_message(error, self.translate),
            metadata=self._metadata(error, context),
        )

    @staticmethod
    def _metadata(
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
        **extra: Any,
    ) -> ResultMetadata:
        if context is not None:
            extra.setdefault("permissions_used", tuple(sorted_permissions(context.granted_permissions)))
            extra.setdefault("attempt", context.attempt)
            extra.setdefault("max_attempts", context.max_attempts)
        return ResultMetadata(tool_name=error.tool_name, error_kind=error.kind.value, **extra)

    # ------------------------------------------------------------------
    # Fallback actions
    # ------------------------------------------------------------------

    def _available_tools(self) -> Sequence[str]:
        if self.catalog is not None:
            return tuple(self.catalog.names())
        return BUILTIN_TOOL_NAMES

    async def _suggest_alternative_tools(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
    ) -> ToolExecutionResult:
        tools = self.catalog.list() if self.catalog is not None else []
        suggestions = suggest_alternatives(error.tool_name, tools)
        available = () if suggestions else tuple(self._available_tools())
        logger.info(
            f"Unknown tool '{error.tool_name}', suggesting: "
            f"{[s.tool_name for s in suggestions] or 'full listing'}"
        )
        return ToolExecutionResult(
            success=False,
            error=f'Tool "{error.tool_name}" not found',
            user_message=guidance.tool_not_found_message(error.tool_name, suggestions, available, self.translate),
            metadata=self._metadata(error, context, suggestions=tuple(suggestions), available_tools=available),
        )

    def _required_permissions(self, error: ToolExecutionError) -> Sequence[PermissionLevel]:
        if error.required_permission is not None:
            return (error.required_permission,)
        definition = self.catalog.lookup(error.tool_name) if self.catalog is not None else None
        if definition is not None:
            return (definition.required_permission,)
        return (PermissionLevel.READ_ONLY,)

    async def _provide_permission_guidance(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
    ) -> ToolExecutionResult:
        required = tuple(self._required_permissions(error))
        return ToolExecutionResult(
            success=False,
            error=error.message,
            user_message=guidance.permission_denied_message(error.tool_name, required, self.translate),
            metadata=self._metadata(error, context, required_permissions=required),
        )

    async def _provide_validation_guidance(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
    ) -> ToolExecutionResult:
        return ToolExecutionResult(
            success=False,
            error=error.message,
            user_message=guidance.validation_message(error, self.translate),
            metadata=self._metadata(error, context),
        )

    async def _provide_database_guidance(
        self,
        error: ToolExecutionError,
        context: Optional[ErrorRecoveryContext],
    ) -> ToolExecutionResult:
        return ToolExecutionResult(
            success=False,
            error=error.message,
            user_message=guidance.database_message(error, self.translate),
            metadata=self._metadata(error, context),
        )


# ---------------------------------------------------------------------------
# Process-wide default handler
# ---------------------------------------------------------------------------

_default_handler: Optional[ErrorHandler] = None
_default_lock = threading.Lock()


def get_error_handler() -> ErrorHandler:
    """Return the shared ErrorHandler, creating one with defaults if needed."""
    global _default_handler
    with _default_lock:
        if _default_handler is None:
            _default_handler = ErrorHandler()
        return _default_handler


def initialize_error_handler(
    catalog: Any = None,
    translate: Optional[TranslationFunction] = None,
    retry_mode: RetryMode = RetryMode.AUTO,
    audit: Optional[AuditLogger] = None,
) -> ErrorHandler:
    """Replace the shared ErrorHandler and return it."""
    global _default_handler
    handler = ErrorHandler(catalog=catalog, translate=translate, retry_mode=retry_mode, audit=audit)
    with _default_lock:
        _default_handler = handler
    return handler
