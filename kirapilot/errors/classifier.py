"""
Error normalization: map any raised or returned failure to a ToolExecutionError.

``normalize_error`` is the single place where keyword inference happens. The
keyword order matters: a message mentioning both a lock and a timeout is a
database error.
"""

import asyncio
import re
from typing import Any, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..constants import UNKNOWN_TOOL_NAME
from ..tools.models import PermissionLevel
from .models import ErrorKind, ToolExecutionError

# (kind, keywords) checked in order against the lower-cased message
KEYWORD_RULES: Tuple[Tuple[ErrorKind, Tuple[str, ...]], ...] = (
    (ErrorKind.DATABASE_ERROR, ("database", "sqlite", "locked")),
    (ErrorKind.TIMEOUT_ERROR, ("timeout", "timed out")),
    (ErrorKind.NETWORK_ERROR, ("network", "connection")),
    (ErrorKind.PERMISSION_DENIED, ("permission", "insufficient")),
    (ErrorKind.RESOURCE_ERROR, ("circuit breaker",)),
)

# Exception types consulted only when no keyword matched
TYPE_RULES: Tuple[Tuple[Tuple[type, ...], ErrorKind], ...] = (
    ((TimeoutError, asyncio.TimeoutError), ErrorKind.TIMEOUT_ERROR),
    ((ConnectionError,), ErrorKind.NETWORK_ERROR),
    ((PermissionError,), ErrorKind.PERMISSION_DENIED),
    ((ValidationError,), ErrorKind.VALIDATION_ERROR),
)

_REQUIRED_PERMISSION_PATTERNS = (
    re.compile(r"(\w+)\s+required", re.IGNORECASE),
    re.compile(r"required(?:\s+permission)?\s*[:=]\s*(\w+)", re.IGNORECASE),
)


def extract_required_permission(message: str) -> Optional[PermissionLevel]:
    """Find the permission named in ``"<permission> required"`` style text."""
    for pattern in _REQUIRED_PERMISSION_PATTERNS:
        for match in pattern.finditer(message or ""):
            level = PermissionLevel.parse(match.group(1))
            if level is not None:
                return level
    return None


def infer_kind(message: str, exc: Optional[BaseException] = None) -> ErrorKind:
    """Classify a failure by message keywords, then by exception type."""
    lowered = (message or "").lower()
    for kind, keywords in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return kind
    if exc is not None:
        for types, kind in TYPE_RULES:
            if isinstance(exc, types):
                return kind
    return ErrorKind.EXECUTION_ERROR


def _message_of(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


def _from_mapping(raw: Mapping[str, Any], tool_name: Optional[str]) -> ToolExecutionError:
    message = str(raw.get("error") or raw.get("message") or "Tool reported a failure")
    name = tool_name or raw.get("tool_name") or UNKNOWN_TOOL_NAME
    declared = raw.get("kind") or raw.get("error_kind")
    try:
        kind = ErrorKind(declared) if declared else infer_kind(message)
    except ValueError:
        kind = infer_kind(message)
    required = None
    if kind == ErrorKind.PERMISSION_DENIED:
        required = PermissionLevel.parse(raw.get("required_permission")) or extract_required_permission(message)
    return ToolExecutionError(kind, message, tool_name=name, cause=dict(raw), required_permission=required)


def normalize_error(raw: Any, tool_name: Optional[str] = None) -> ToolExecutionError:
    """
    Convert an arbitrary failure into a ToolExecutionError

    Args:
        raw: A ToolExecutionError (passed through), any exception, a failure
            mapping such as ``{"success": False, "error": "..."}``, or text
        tool_name: Tool the failure belongs to; defaults to "unknown"

    Returns:
        The classified error
    """
    if isinstance(raw, ToolExecutionError):
        if tool_name and raw.tool_name == UNKNOWN_TOOL_NAME:
            raw.tool_name = tool_name
        return raw

    if isinstance(raw, Mapping):
        return _from_mapping(raw, tool_name)

    name = tool_name or UNKNOWN_TOOL_NAME
    if isinstance(raw, BaseException):
        message = _message_of(raw)
        kind = infer_kind(message, raw)
        cause: Any = raw
    else:
        message = str(raw) if raw is not None else "Unknown error"
        kind = infer_kind(message)
        cause = None

    required = extract_required_permission(message) if kind == ErrorKind.PERMISSION_DENIED else None
    return ToolExecutionError(kind, message, tool_name=name, cause=cause, required_permission=required)
