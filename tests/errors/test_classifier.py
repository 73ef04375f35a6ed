"""
Tests for error normalization

Tests cover:
- Keyword inference and its precedence
- Exception type fallback
- Failure mappings and plain text
- Required permission extraction
"""

import asyncio

import pytest
from pydantic import BaseModel, ValidationError

from kirapilot.errors import ErrorKind, ToolExecutionError, extract_required_permission, infer_kind, normalize_error
from kirapilot.tools import PermissionLevel


class _Sample(BaseModel):
    count: int


class TestInferKind:
    """Tests for keyword inference"""

    @pytest.mark.parametrize(
        "message,kind",
        [
            ("database is locked", ErrorKind.DATABASE_ERROR),
            ("SQLITE_BUSY", ErrorKind.DATABASE_ERROR),
            ("request timed out", ErrorKind.TIMEOUT_ERROR),
            ("Network unreachable", ErrorKind.NETWORK_ERROR),
            ("connection refused", ErrorKind.NETWORK_ERROR),
            ("Insufficient rights", ErrorKind.PERMISSION_DENIED),
            ("circuit breaker open", ErrorKind.RESOURCE_ERROR),
            ("something odd happened", ErrorKind.EXECUTION_ERROR),
        ],
    )
    def test_keywords(self, message, kind):
        assert infer_kind(message) == kind

    def test_database_wins_over_timeout(self):
        assert infer_kind("database connection timeout") == ErrorKind.DATABASE_ERROR

    def test_timeout_wins_over_network(self):
        assert infer_kind("network timeout") == ErrorKind.TIMEOUT_ERROR

    def test_type_used_when_no_keyword(self):
        assert infer_kind("reset by peer", ConnectionResetError()) == ErrorKind.NETWORK_ERROR
        assert infer_kind("nope", PermissionError()) == ErrorKind.PERMISSION_DENIED


class TestNormalizeError:
    """Tests for normalize_error"""

    def test_exception_message_and_tool(self):
        error = normalize_error(RuntimeError("database is locked"), tool_name="get_tasks")

        assert error.kind == ErrorKind.DATABASE_ERROR
        assert error.message == "database is locked"
        assert error.tool_name == "get_tasks"
        assert isinstance(error.cause, RuntimeError)

    def test_empty_timeout_exception(self):
        error = normalize_error(asyncio.TimeoutError())
        assert error.kind == ErrorKind.TIMEOUT_ERROR
        assert error.tool_name == "unknown"

    def test_pydantic_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            _Sample.model_validate({"count": "many"})

        assert normalize_error(exc_info.value).kind == ErrorKind.VALIDATION_ERROR

    def test_passthrough_fills_tool_name(self):
        original = ToolExecutionError(ErrorKind.NETWORK_ERROR, "offline")
        error = normalize_error(original, tool_name="get_tasks")

        assert error is original
        assert error.tool_name == "get_tasks"

    def test_passthrough_keeps_known_tool_name(self):
        original = ToolExecutionError(ErrorKind.NETWORK_ERROR, "offline", tool_name="stop_timer")
        assert normalize_error(original, tool_name="get_tasks").tool_name == "stop_timer"

    def test_mapping_with_declared_kind(self):
        error = normalize_error({"success": False, "error": "bad id", "kind": "VALIDATION_ERROR"}, "update_task")

        assert error.kind == ErrorKind.VALIDATION_ERROR
        assert error.message == "bad id"
        assert error.tool_name == "update_task"

    def test_mapping_with_unknown_kind_is_inferred(self):
        error = normalize_error({"error": "network down", "kind": "WEIRD"})
        assert error.kind == ErrorKind.NETWORK_ERROR

    def test_mapping_with_required_permission(self):
        error = normalize_error({"error": "permission denied", "required_permission": "timer_control"})

        assert error.kind == ErrorKind.PERMISSION_DENIED
        assert error.required_permission == PermissionLevel.TIMER_CONTROL

    def test_plain_text(self):
        error = normalize_error("it broke")
        assert error.kind == ErrorKind.EXECUTION_ERROR
        assert error.cause is None

    def test_none(self):
        assert normalize_error(None).message == "Unknown error"


class TestRequiredPermission:
    """Tests for extract_required_permission"""

    def test_suffix_form(self):
        message = "Insufficient permissions for tool 'create_task': modify_tasks required"
        assert extract_required_permission(message) == PermissionLevel.MODIFY_TASKS

    def test_prefix_form(self):
        assert extract_required_permission("required permission: full_access") == PermissionLevel.FULL_ACCESS

    def test_no_permission_named(self):
        assert extract_required_permission("title required") is None
        assert extract_required_permission("") is None

    def test_normalized_permission_error(self):
        error = normalize_error(PermissionError("timer_control required"), tool_name="start_timer")

        assert error.kind == ErrorKind.PERMISSION_DENIED
        assert error.required_permission == PermissionLevel.TIMER_CONTROL
