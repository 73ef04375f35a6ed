"""
KiraPilot Tools Module - Permissioned tool catalog and built-in tools

Usage:
    from kirapilot.tools import ToolCatalog, register_builtin_tools

    catalog = ToolCatalog()
    register_builtin_tools(catalog)
    catalog.check_permission("create_task", {"modify_tasks"})

The execution bridge lives in ``kirapilot.tools.bridge`` and is re-exported
from the top-level package.
"""

from .models import (
    PERMISSION_LABELS,
    AlternativeToolSuggestion,
    PermissionCheck,
    PermissionLevel,
    ResultMetadata,
    ToolContext,
    ToolDefinition,
    ToolExecutionResult,
    ToolInvocationRequest,
    normalize_permissions,
    tool_display_name,
)
from .registry import DuplicateToolError, ToolCatalog
from .decorator import format_validation_error, tool, validate_arguments
from .builtin import BUILTIN_TOOLS, register_builtin_tools

__all__ = [
    "PERMISSION_LABELS",
    "AlternativeToolSuggestion",
    "PermissionCheck",
    "PermissionLevel",
    "ResultMetadata",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolInvocationRequest",
    "normalize_permissions",
    "tool_display_name",
    "DuplicateToolError",
    "ToolCatalog",
    "format_validation_error",
    "tool",
    "validate_arguments",
    "BUILTIN_TOOLS",
    "register_builtin_tools",
]
