"""
User-facing text for tool failures.

Each ErrorKind has an icon and a title. Remediation text is built from the
tool name and the error message; everything here is pure string assembly so
the handler can compose messages without side effects.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence

from ..constants import IDENTIFIER_TOOLS, LISTING_TOOL, PRIORITY_LABELS, TASK_CREATION_TOOLS
from ..protocols import TranslationFunction, identity_translation
from ..tools.models import AlternativeToolSuggestion, PermissionLevel, tool_display_name
from .models import ErrorKind, ToolExecutionError

ICONS: Dict[ErrorKind, str] = {
    ErrorKind.TOOL_NOT_FOUND: "❌",
    ErrorKind.PERMISSION_DENIED: "🔒",
    ErrorKind.VALIDATION_ERROR: "⚠️",
    ErrorKind.DATABASE_ERROR: "💾",
    ErrorKind.NETWORK_ERROR: "🌐",
    ErrorKind.TIMEOUT_ERROR: "⏱️",
    ErrorKind.RESOURCE_ERROR: "⚡",
    ErrorKind.EXECUTION_ERROR: "❌",
}

TITLES: Dict[ErrorKind, str] = {
    ErrorKind.TOOL_NOT_FOUND: "Tool Not Found",
    ErrorKind.PERMISSION_DENIED: "Permission Denied",
    ErrorKind.VALIDATION_ERROR: "Invalid Input",
    ErrorKind.DATABASE_ERROR: "Database Error",
    ErrorKind.NETWORK_ERROR: "Network Error",
    ErrorKind.TIMEOUT_ERROR: "Timeout",
    ErrorKind.RESOURCE_ERROR: "Resource Error",
    ErrorKind.EXECUTION_ERROR: "Tool Failed",
}

RETRY_ICON = "🔄"
HINT_ICON = "💡"

_IDENTIFIER_PATTERN = re.compile(r"\b(task_?id|session_?id|id)\b")
_DATE_PATTERN = re.compile(r"(?<![a-z])(?:start_|end_|due_)?dates?\b|(?<![a-z])datetime")


def heading(kind: ErrorKind, translate: TranslationFunction = identity_translation) -> str:
    return f"{ICONS[kind]} **{translate(TITLES[kind])}**"


def bullets(lines: Iterable[str]) -> str:
    return "\n".join(f"• {line}" for line in lines)


def permission_labels(permissions: Iterable[PermissionLevel]) -> str:
    return ", ".join(level.label for level in permissions) or "Unknown Permission"


# ── Validation remediation ──


def validation_guidance(tool_name: str, message: str) -> List[str]:
    """Remediation lines keyed by tool and message keyword."""
    lowered = (message or "").lower()

    if tool_name in TASK_CREATION_TOOLS and "title" in lowered:
        return [
            'Provide a task title (e.g., "Review project proposal")',
            "Make sure the title is not empty",
        ]
    if "priority" in lowered:
        codes = ", ".join(f"{code} ({label})" for code, label in sorted(PRIORITY_LABELS.items()))
        return [f"Use priority values: {codes}"]
    if tool_name in IDENTIFIER_TOOLS and _IDENTIFIER_PATTERN.search(lowered):
        return [
            "Provide a valid task ID",
            f"You can get task IDs using the {LISTING_TOOL} tool",
        ]
    if _DATE_PATTERN.search(lowered):
        return [
            "Use ISO date format (YYYY-MM-DD)",
            'Example: "2024-01-15"',
        ]
    if "required" in lowered or "missing" in lowered:
        return [
            "Check that all required parameters are provided",
            "Make sure parameter names are spelled correctly",
        ]
    return [
        "Check the parameter format and try again",
        "Refer to the tool documentation for correct usage",
    ]


# ── Terminal messages per kind ──


def tool_not_found_message(
    tool_name: str,
    suggestions: Sequence[AlternativeToolSuggestion],
    available_tools: Sequence[str],
    translate: TranslationFunction = identity_translation,
) -> str:
    parts = [
        heading(ErrorKind.TOOL_NOT_FOUND, translate),
        f'The tool "{tool_name}" doesn\'t exist. Check the spelling or use one of the available tools.',
    ]
    if suggestions:
        lines = [f"{HINT_ICON} **{translate('Did you mean one of these?')}**"]
        for index, suggestion in enumerate(suggestions, start=1):
            lines.append(f"{index}. **{suggestion.tool_name}** - {suggestion.description}")
        parts.append("\n".join(lines))
    elif available_tools:
        parts.append(f"{HINT_ICON} **{translate('Available tools:')}** {', '.join(available_tools)}")
    return "\n\n".join(parts)


def permission_denied_message(
    tool_name: str,
    required: Sequence[PermissionLevel],
    translate: TranslationFunction = identity_translation,
) -> str:
    return "\n\n".join([
        heading(ErrorKind.PERMISSION_DENIED, translate),
        f'The tool "{tool_display_name(tool_name)}" requires additional permissions.',
        f"**{translate('Required permissions:')}** {permission_labels(required)}",
        "Please check your settings or contact an administrator to grant the necessary permissions.",
    ])


def validation_message(
    error: ToolExecutionError,
    translate: TranslationFunction = identity_translation,
) -> str:
    return "\n\n".join([
        heading(ErrorKind.VALIDATION_ERROR, translate),
        f"{tool_display_name(error.tool_name)}: {error.message}",
        f"**{translate('How to fix:')}**\n{bullets(validation_guidance(error.tool_name, error.message))}",
    ])


def database_message(
    error: ToolExecutionError,
    translate: TranslationFunction = identity_translation,
) -> str:
    return "\n\n".join([
        heading(ErrorKind.DATABASE_ERROR, translate),
        "There was a problem accessing the database. This might be temporary.",
        f"**{translate('What you can try:')}**\n" + bullets([
            "Wait a moment and try again",
            "Check if the application has sufficient disk space",
            "Restart the application if the problem persists",
        ]),
    ])


_DEFAULT_BODIES: Dict[ErrorKind, str] = {
    ErrorKind.DATABASE_ERROR: "{tool} couldn't access the database. Please try again.",
    ErrorKind.NETWORK_ERROR: "{tool} couldn't connect. Check your internet connection.",
    ErrorKind.TIMEOUT_ERROR: "{tool} took too long to respond. Please try again.",
    ErrorKind.RESOURCE_ERROR: "{tool} couldn't access required resources. Please try again later.",
}


def terminal_message(
    error: ToolExecutionError,
    translate: TranslationFunction = identity_translation,
) -> str:
    """Default message used when no fallback produced one."""
    display = tool_display_name(error.tool_name)
    if error.kind == ErrorKind.TOOL_NOT_FOUND:
        body = f'The tool "{error.tool_name}" doesn\'t exist. Check the spelling or use one of the available tools.'
    elif error.kind == ErrorKind.PERMISSION_DENIED:
        required = [error.required_permission] if error.required_permission else []
        body = f"{display} requires additional permissions: {permission_labels(required)}"
    elif error.kind == ErrorKind.VALIDATION_ERROR:
        body = f"{display}: {error.message}"
    elif error.kind in _DEFAULT_BODIES:
        body = _DEFAULT_BODIES[error.kind].format(tool=display)
    else:
        return generic_failure_message(error.tool_name, error.message)
    return f"{heading(error.kind, translate)}\n\n{body}"


def generic_failure_message(tool_name: Optional[str], message: str) -> str:
    return f"{ICONS[ErrorKind.EXECUTION_ERROR]} {tool_display_name(tool_name or '')} failed: {message}"


def format_delay(delay_ms: int) -> str:
    seconds = delay_ms / 1000
    if seconds == int(seconds):
        count = int(seconds)
        return f"{count} second{'' if count == 1 else 's'}"
    return f"{seconds:g} seconds"


def retry_message(
    tool_name: str,
    attempt: int,
    delay_ms: int,
    translate: TranslationFunction = identity_translation,
) -> str:
    return (
        f"{RETRY_ICON} **{translate('Retrying')} {tool_display_name(tool_name)}**\n\n"
        f"Attempt {attempt}, retrying in {format_delay(delay_ms)}..."
    )
