"""
Tests for the ErrorHandler

Tests cover:
- Retry modes (AUTO, NEVER, ALLOWED)
- Retry eligibility: non-retryable kinds, attempt budget, predicates
- Fallback actions and their failures
- Strategy updates
- Audit decisions and the shared handler
"""

import pytest

from kirapilot.errors import (
    ErrorHandler,
    ErrorKind,
    ErrorRecoveryContext,
    RetryMode,
    ToolExecutionError,
    get_error_handler,
    initialize_error_handler,
)
from kirapilot.errors.models import always_retry
from kirapilot.tools import PermissionLevel


def _context(tool_name="get_tasks", attempt=1, max_attempts=3):
    return ErrorRecoveryContext(
        tool_name=tool_name,
        granted_permissions=frozenset({PermissionLevel.READ_ONLY}),
        attempt=attempt,
        max_attempts=max_attempts,
    )


class _Unprintable:
    def __str__(self):
        raise RuntimeError("cannot render")


class TestRetryModes:
    """Retry eligibility per RetryMode"""

    @pytest.mark.asyncio
    async def test_auto_without_context_is_terminal(self, error_handler):
        result = await error_handler.handle_error(ConnectionError("network unreachable"))

        assert result.success is False
        assert not result.is_retry
        assert result.metadata.error_kind == ErrorKind.NETWORK_ERROR.value
        assert result.user_message.startswith("🌐 **Network Error**")

    @pytest.mark.asyncio
    async def test_auto_with_context_retries(self, error_handler):
        result = await error_handler.handle_error(ConnectionError("network unreachable"), _context())

        assert result.is_retry
        assert result.metadata.retry_after_ms == 2000
        assert result.metadata.attempt == 1
        assert result.metadata.max_attempts == 3
        assert result.metadata.permissions_used == (PermissionLevel.READ_ONLY,)
        assert result.user_message.startswith("🔄 **Retrying Get Tasks**")

    @pytest.mark.asyncio
    async def test_never(self, error_handler):
        result = await error_handler.handle_error(
            ConnectionError("network unreachable"), _context(), retry_mode=RetryMode.NEVER
        )
        assert not result.is_retry

    @pytest.mark.asyncio
    async def test_allowed_without_context(self, error_handler):
        result = await error_handler.handle_error(
            ToolExecutionError(ErrorKind.TIMEOUT_ERROR, "timed out", tool_name="stop_timer"),
            retry_mode=RetryMode.ALLOWED,
        )

        assert result.is_retry
        assert result.metadata.retry_after_ms == 1000
        assert result.tool_name == "stop_timer"

    @pytest.mark.asyncio
    async def test_default_mode_from_constructor(self, catalog):
        handler = ErrorHandler(catalog, retry_mode=RetryMode.NEVER)
        result = await handler.handle_error(ConnectionError("network unreachable"), _context())
        assert not result.is_retry


class TestRetryEligibility:
    """Budget and predicate checks"""

    @pytest.mark.asyncio
    async def test_validation_never_retried(self, error_handler):
        error_handler.update_recovery_strategy(
            ErrorKind.VALIDATION_ERROR, max_retries=5, should_retry=always_retry
        )
        result = await error_handler.handle_error(
            ToolExecutionError(ErrorKind.VALIDATION_ERROR, "title: Field required", tool_name="create_task"),
            _context("create_task"),
        )

        assert not result.is_retry
        assert "Provide a task title" in result.user_message

    @pytest.mark.asyncio
    async def test_attempt_budget_exhausted(self, error_handler):
        result = await error_handler.handle_error(ConnectionError("network unreachable"), _context(attempt=3))
        assert not result.is_retry

    @pytest.mark.asyncio
    async def test_strategy_budget_exhausted(self, error_handler):
        result = await error_handler.handle_error(
            RuntimeError("something broke"), _context(attempt=2, max_attempts=5)
        )

        assert not result.is_retry
        assert result.user_message == "❌ Get Tasks failed: something broke"

    @pytest.mark.asyncio
    async def test_predicate_refuses_forbidden(self, error_handler):
        result = await error_handler.handle_error(RuntimeError("Forbidden resource"), _context())
        assert not result.is_retry

    @pytest.mark.asyncio
    async def test_backoff_follows_attempt(self, error_handler):
        result = await error_handler.handle_error(RuntimeError("database is locked"), _context(attempt=2))

        assert result.metadata.retry_after_ms == 750
        assert "retrying in 0.75 seconds" in result.user_message

    @pytest.mark.asyncio
    async def test_updated_strategy_applies(self, error_handler):
        error_handler.update_recovery_strategy(ErrorKind.NETWORK_ERROR, {"base_retry_delay_ms": 100})
        result = await error_handler.handle_error(ConnectionError("network unreachable"), _context(attempt=2))

        assert result.metadata.retry_after_ms == 200
        assert error_handler.get_recovery_strategy("NETWORK_ERROR").base_retry_delay_ms == 100

    def test_unknown_kind_strategy(self, error_handler):
        assert error_handler.get_recovery_strategy("NOT_A_KIND") is None


class TestFallbacks:
    """Fallback actions for terminal failures"""

    @pytest.mark.asyncio
    async def test_unknown_tool_lists_catalog_without_match(self, error_handler):
        result = await error_handler.handle_error(
            ToolExecutionError(ErrorKind.TOOL_NOT_FOUND, "Tool 'fly' not found", tool_name="fly")
        )

        assert "Available tools:" in result.user_message
        assert "get_tasks" in result.metadata.available_tools
        assert result.metadata.suggestions == ()

    @pytest.mark.asyncio
    async def test_unknown_tool_without_catalog(self):
        handler = ErrorHandler()
        result = await handler.handle_error(
            ToolExecutionError(ErrorKind.TOOL_NOT_FOUND, "missing", tool_name="fly")
        )

        assert "analyze_productivity" in result.user_message

    @pytest.mark.asyncio
    async def test_permission_from_catalog(self, error_handler):
        result = await error_handler.handle_error(
            ToolExecutionError(ErrorKind.PERMISSION_DENIED, "Access denied", tool_name="start_timer")
        )

        assert result.metadata.required_permissions == (PermissionLevel.TIMER_CONTROL,)
        assert "Timer Control" in result.user_message

    @pytest.mark.asyncio
    async def test_permission_default_read_only(self):
        handler = ErrorHandler()
        result = await handler.handle_error(
            ToolExecutionError(ErrorKind.PERMISSION_DENIED, "Access denied", tool_name="mystery")
        )
        assert result.metadata.required_permissions == (PermissionLevel.READ_ONLY,)

    @pytest.mark.asyncio
    async def test_failing_fallback_degrades_to_terminal(self, error_handler):
        async def broken(error, context):
            raise RuntimeError("fallback exploded")

        error_handler.update_recovery_strategy(ErrorKind.DATABASE_ERROR, fallback_action=broken)
        result = await error_handler.handle_error(RuntimeError("database is locked"))

        assert result.success is False
        assert result.user_message.startswith("💾 **Database Error**")
        assert "couldn't access the database" in result.user_message

    @pytest.mark.asyncio
    async def test_translation_applied(self, catalog):
        handler = ErrorHandler(catalog, translate=str.upper)
        result = await handler.handle_error(ConnectionError("network unreachable"))
        assert "**NETWORK ERROR**" in result.user_message


class TestNeverRaises:
    """handle_error always returns a result"""

    @pytest.mark.asyncio
    async def test_unrenderable_error(self, error_handler):
        result = await error_handler.handle_error(_Unprintable())

        assert result.success is False
        assert result.error == "Unknown error"
        assert result.metadata.error_kind == ErrorKind.EXECUTION_ERROR.value


class TestAuditAndSharedHandler:
    """Audit events and the module-level handler"""

    @pytest.mark.asyncio
    async def test_decisions_logged(self, error_handler, caplog):
        with caplog.at_level("INFO", logger="kirapilot.audit"):
            await error_handler.handle_error(ConnectionError("network unreachable"), _context())
            await error_handler.handle_error(ConnectionError("network unreachable"))

        messages = [r.getMessage() for r in caplog.records if r.name == "kirapilot.audit"]
        assert '"decision": "retry"' in messages[0]
        assert '"retry_after_ms": 2000' in messages[0]
        assert '"decision": "terminal"' in messages[1]

    def test_initialize_replaces_shared_handler(self, catalog):
        handler = initialize_error_handler(catalog, retry_mode=RetryMode.ALLOWED)

        assert get_error_handler() is handler
        assert handler.retry_mode == RetryMode.ALLOWED
