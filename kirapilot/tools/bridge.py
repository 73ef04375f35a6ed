"""
KiraPilot Execution Bridge - Dispatch tool calls into the application

The bridge is the only place tool handlers are invoked. Every failure on the
way (unknown tool, missing permission, bad arguments, handler exception,
timeout, failure mapping returned by the handler) is routed to the
ErrorHandler, so callers only ever see a ToolExecutionResult.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from pydantic import ValidationError

from ..audit_logger import AuditLogger
from ..constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_TOOL_TIMEOUT_SECONDS
from ..errors.classifier import normalize_error
from ..errors.handler import ErrorHandler
from ..errors.models import ErrorKind, ErrorRecoveryContext, ToolExecutionError
from ..formatter.result_formatter import ToolResultFormatter
from .decorator import format_validation_error, validate_arguments
from .models import (
    ResultMetadata,
    ToolContext,
    ToolDefinition,
    ToolExecutionResult,
    ToolInvocationRequest,
    normalize_permissions,
    summarize_arguments,
)
from .registry import ToolCatalog

logger = logging.getLogger(__name__)

SleepFunction = Callable[[float], Awaitable[Any]]
RetryCallback = Callable[[ToolExecutionResult], Any]


class ExecutionCancelled(Exception):
    """Raised when a cancel event fires while waiting to retry a tool."""

    def __init__(self, tool_name: str, attempt: int):
        self.tool_name = tool_name
        self.attempt = attempt
        super().__init__(f"Execution of '{tool_name}' cancelled before attempt {attempt + 1}")


class ExecutionBridge:
    """
    Executes tool invocation requests against the catalog

    Args:
        catalog: ToolCatalog holding the available tools
        error_handler: ErrorHandler used for every failure
        formatter: ToolResultFormatter producing success messages
        backend: ProductivityBackend handed to handlers via ToolContext
        timeout_seconds: Default per-call timeout
        max_attempts: Default attempt budget for execute_with_recovery
        audit: AuditLogger receiving ``tool_execution`` events
        sleep: Coroutine function used for retry delays

    Usage:
        bridge = ExecutionBridge(catalog, backend=my_backend)
        result = await bridge.execute("get_tasks", {}, ["read_only"])
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        error_handler: Optional[ErrorHandler] = None,
        formatter: Optional[ToolResultFormatter] = None,
        backend: Any = None,
        timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        audit: Optional[AuditLogger] = None,
        sleep: Optional[SleepFunction] = None,
    ):
        self.catalog = catalog
        self.error_handler = error_handler or ErrorHandler(catalog)
        self.formatter = formatter or ToolResultFormatter()
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.audit = audit or AuditLogger()
        self._sleep = sleep or asyncio.sleep

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------

    async def execute_tool_call(
        self,
        request: ToolInvocationRequest,
        granted_permissions: Iterable[Any],
        context: Optional[ErrorRecoveryContext] = None,
        conversation_id: str = "",
        timeout_seconds: Optional[float] = None,
    ) -> ToolExecutionResult:
        """
        Run one attempt of a tool call

        Args:
            request: Parsed invocation request
            granted_permissions: Permissions held by the caller
            context: Recovery context when this attempt is part of a retry cycle
            conversation_id: Passed to handlers through ToolContext
            timeout_seconds: Per-call timeout; a tool's own timeout still wins

        Returns:
            ToolExecutionResult; failures are already normalized and may be
            retry notices (``result.is_retry``)
        """
        granted = normalize_permissions(granted_permissions)
        start = time.monotonic()
        raw_error: Any = None

        try:
            definition = self._resolve(request.tool_name, granted)
            arguments = self._validate(definition, request.arguments)
            output = await self._invoke(definition, arguments, ToolContext(
                backend=self.backend,
                granted_permissions=granted,
                conversation_id=conversation_id,
            ), timeout_seconds)
            if isinstance(output, Mapping) and output.get("success") is False:
                raw_error = dict(output)
            else:
                elapsed = int((time.monotonic() - start) * 1000)
                logger.info(f"Tool '{definition.name}' succeeded in {elapsed}ms")
                return ToolExecutionResult(
                    success=True,
                    data=output,
                    user_message=self.formatter.success_message(definition.name, output),
                    requires_confirmation=definition.requires_confirmation,
                    metadata=ResultMetadata(
                        tool_name=definition.name,
                        execution_time_ms=elapsed,
                        permissions_used=(definition.required_permission,),
                        attempt=context.attempt if context else None,
                        max_attempts=context.max_attempts if context else None,
                    ),
                )
        except asyncio.CancelledError:
            raise
        except ToolExecutionError as e:
            raw_error = e
        except Exception as e:
            logger.error(f"Tool '{request.tool_name}' raised: {e}", exc_info=True)
            raw_error = e

        result = await self.error_handler.handle_error(
            normalize_error(raw_error, tool_name=request.tool_name),
            context,
        )
        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Tool '{request.tool_name}' failed ({result.metadata.error_kind}) in {elapsed}ms"
            f"{' - retry scheduled' if result.is_retry else ''}"
        )
        return result.with_metadata(execution_time_ms=elapsed)

    def _resolve(self, tool_name: str, granted) -> ToolDefinition:
        definition = self.catalog.lookup(tool_name)
        if definition is None:
            raise ToolExecutionError(ErrorKind.TOOL_NOT_FOUND, f"Tool '{tool_name}' not found", tool_name=tool_name)
        check = self.catalog.check_permission(tool_name, granted)
        if not check.allowed:
            raise ToolExecutionError(
                ErrorKind.PERMISSION_DENIED,
                check.reason,
                tool_name=tool_name,
                required_permission=check.required_permission,
            )
        return definition

    @staticmethod
    def _validate(definition: ToolDefinition, arguments: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return validate_arguments(definition, arguments)
        except ValidationError as e:
            raise ToolExecutionError(
                ErrorKind.VALIDATION_ERROR,
                f"Invalid arguments for tool '{definition.name}': {format_validation_error(e)}",
                tool_name=definition.name,
                cause=e,
            ) from e

    async def _invoke(
        self,
        definition: ToolDefinition,
        arguments: Dict[str, Any],
        tool_context: ToolContext,
        timeout_seconds: Optional[float] = None,
    ) -> Any:
        timeout = definition.timeout_seconds or timeout_seconds or self.timeout_seconds

        async def _call() -> Any:
            output = definition.handler(arguments, tool_context)
            if inspect.isawaitable(output):
                output = await output
            return output

        try:
            return await asyncio.wait_for(_call(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionError(
                ErrorKind.TIMEOUT_ERROR,
                f"Tool '{definition.name}' timed out after {timeout}s",
                tool_name=definition.name,
            )

    # ------------------------------------------------------------------
    # Retry cycle
    # ------------------------------------------------------------------

    async def execute_with_recovery(
        self,
        request: ToolInvocationRequest,
        granted_permissions: Iterable[Any],
        max_attempts: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_retry: Optional[RetryCallback] = None,
        conversation_id: str = "",
        timeout_seconds: Optional[float] = None,
    ) -> ToolExecutionResult:
        """
        Run a tool call, retrying recoverable failures with backoff

        Raises:
            ExecutionCancelled: ``cancel_event`` was set while waiting to retry
        """
        granted = normalize_permissions(granted_permissions)
        context = ErrorRecoveryContext(
            tool_name=request.tool_name,
            arguments=dict(request.arguments),
            granted_permissions=granted,
            attempt=1,
            max_attempts=max_attempts or self.max_attempts,
        )
        start = time.monotonic()

        while True:
            result = await self.execute_tool_call(
                request,
                granted,
                context,
                conversation_id=conversation_id,
                timeout_seconds=timeout_seconds,
            )
            if not result.is_retry:
                break

            if on_retry is not None:
                notice = on_retry(result)
                if inspect.isawaitable(notice):
                    await notice

            delay_seconds = (result.metadata.retry_after_ms or 0) / 1000
            if await self._wait(delay_seconds, cancel_event):
                raise ExecutionCancelled(request.tool_name, context.attempt)

            error = ToolExecutionError(
                ErrorKind(result.metadata.error_kind or ErrorKind.EXECUTION_ERROR.value),
                result.error or "",
                tool_name=request.tool_name,
            )
            context = context.next_attempt(error)

        self.audit.log_tool_execution(
            tool_name=request.tool_name,
            args_summary=summarize_arguments(request.arguments),
            success=result.success,
            duration_ms=int((time.monotonic() - start) * 1000),
            attempts=context.attempt,
            error_kind=result.metadata.error_kind,
            conversation_id=conversation_id or None,
        )
        return result

    async def _wait(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for ``seconds``; True if ``cancel_event`` fired first."""
        if cancel_event is None:
            await self._sleep(seconds)
            return False
        if cancel_event.is_set():
            return True

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return cancel_event.is_set()

    async def execute(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        permissions: Iterable[Any] = (),
    ) -> ToolExecutionResult:
        """Convenience wrapper: build the request and run the retry cycle."""
        request = ToolInvocationRequest(tool_name=tool_name, arguments=dict(arguments or {}))
        return await self.execute_with_recovery(request, permissions)
