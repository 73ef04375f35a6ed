"""
KiraPilot Tool Models - Data structures for permissioned tool calling
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel


class PermissionLevel(str, Enum):
    """Capability tiers a caller must hold to invoke a tool"""
    READ_ONLY = "read_only"
    MODIFY_TASKS = "modify_tasks"
    TIMER_CONTROL = "timer_control"
    FULL_ACCESS = "full_access"

    @classmethod
    def parse(cls, value: Any) -> Optional["PermissionLevel"]:
        """Resolve a permission from its value or member name, None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        return None

    @property
    def label(self) -> str:
        return PERMISSION_LABELS[self]


PERMISSION_LABELS: Dict[PermissionLevel, str] = {
    PermissionLevel.READ_ONLY: "Read Only",
    PermissionLevel.MODIFY_TASKS: "Task Modification",
    PermissionLevel.TIMER_CONTROL: "Timer Control",
    PermissionLevel.FULL_ACCESS: "Full Access",
}


def normalize_permissions(permissions: Optional[Iterable[Any]]) -> FrozenSet[PermissionLevel]:
    """Turn a caller-supplied permission collection into a frozenset of levels.

    Unknown entries are dropped.
    """
    if not permissions:
        return frozenset()
    levels = (PermissionLevel.parse(p) for p in permissions)
    return frozenset(level for level in levels if level is not None)


@dataclass
class ToolContext:
    """Context passed to tool handlers.

    Attributes:
        backend: ProductivityBackend the built-in tools delegate to.
        granted_permissions: Permissions held by the caller for this conversation.
        conversation_id: Optional identifier of the conversation.
        metadata: Free-form values for application-specific handlers.
    """

    backend: Any = None
    granted_permissions: FrozenSet[PermissionLevel] = frozenset()
    conversation_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolDefinition:
    """A named, permissioned capability the agent may invoke.

    Attributes:
        name: Unique snake_case identifier used in action directives.
        description: What the tool does (shown to the model).
        required_permission: Permission level needed to run the tool.
        handler: Async (or sync) callable ``(args: dict, context: ToolContext) -> Any``.
        argument_model: Pydantic model describing the argument contract.
        requires_confirmation: If True, the result is flagged for user confirmation.
        category: Grouping used in prompt guidance.
        keywords: Extra words that should match this tool in suggestions.
        timeout_seconds: Per-tool override of the bridge timeout.
    """

    name: str
    description: str
    required_permission: PermissionLevel
    handler: Callable[..., Any]
    argument_model: Optional[Type[BaseModel]] = None
    requires_confirmation: bool = False
    category: str = "general"
    keywords: Tuple[str, ...] = ()
    timeout_seconds: Optional[float] = None

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON Schema for the tool arguments."""
        if self.argument_model is None:
            return {"type": "object", "properties": {}}
        schema = self.argument_model.model_json_schema()
        schema.pop("title", None)
        return schema

    @property
    def display_name(self) -> str:
        return tool_display_name(self.name)

    def to_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI function-calling tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def usage_example(self) -> str:
        """One-line ``Action:`` example listing the argument names."""
        properties = self.parameters.get("properties", {})
        if not properties:
            return f"Action: {self.name}: {{}}"
        args = ", ".join(f'"{name}": ...' for name in properties)
        return f"Action: {self.name}: {{{args}}}"


def tool_display_name(tool_name: str) -> str:
    """Title-Case display name for a tool (``create_task`` -> ``Create Task``)."""
    if not tool_name:
        return "Unknown Tool"
    return " ".join(part.capitalize() for part in tool_name.split("_") if part)


@dataclass(frozen=True)
class ToolInvocationRequest:
    """A single tool call produced by parsing one action directive."""
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""

    def signature(self) -> str:
        """Stable key used to detect the same action being repeated."""
        return f"{self.tool_name}:{json.dumps(self.arguments, sort_keys=True, default=str)}"


@dataclass(frozen=True)
class AlternativeToolSuggestion:
    """A catalog tool proposed in place of an unknown tool name."""
    tool_name: str
    confidence: float
    description: str = ""
    required_permission: Optional[PermissionLevel] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "confidence": self.confidence,
            "description": self.description,
            "required_permission": self.required_permission.value if self.required_permission else None,
        }


@dataclass(frozen=True)
class ResultMetadata:
    """Bookkeeping attached to every execution result."""
    tool_name: str
    execution_time_ms: int = 0
    permissions_used: Tuple[PermissionLevel, ...] = ()
    retry_after_ms: Optional[int] = None
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    suggestions: Tuple[AlternativeToolSuggestion, ...] = ()
    required_permissions: Tuple[PermissionLevel, ...] = ()
    available_tools: Tuple[str, ...] = ()
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "tool_name": self.tool_name,
            "execution_time_ms": self.execution_time_ms,
            "permissions_used": [p.value for p in self.permissions_used],
        }
        if self.retry_after_ms is not None:
            data["retry_after_ms"] = self.retry_after_ms
        if self.attempt is not None:
            data["attempt"] = self.attempt
        if self.max_attempts is not None:
            data["max_attempts"] = self.max_attempts
        if self.suggestions:
            data["suggestions"] = [s.to_dict() for s in self.suggestions]
        if self.required_permissions:
            data["required_permissions"] = [p.value for p in self.required_permissions]
        if self.available_tools:
            data["available_tools"] = list(self.available_tools)
        if self.error_kind:
            data["error_kind"] = self.error_kind
        return data


@dataclass(frozen=True)
class ToolExecutionResult:
    """
    Result of one tool invocation attempt

    Attributes:
        success: Whether the tool completed
        user_message: Human-readable message for the user
        data: Structured data returned by the handler
        error: Raw error text when the call failed
        requires_confirmation: Whether the user should confirm the outcome
        metadata: Timing, permissions and recovery bookkeeping
    """
    success: bool
    user_message: str
    metadata: ResultMetadata
    data: Any = None
    error: Optional[str] = None
    requires_confirmation: bool = False

    @property
    def is_retry(self) -> bool:
        """True when the error handler scheduled another attempt."""
        return self.metadata.retry_after_ms is not None

    @property
    def tool_name(self) -> str:
        return self.metadata.tool_name

    def with_metadata(self, **changes: Any) -> "ToolExecutionResult":
        return replace(self, metadata=replace(self.metadata, **changes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "user_message": self.user_message,
            "requires_confirmation": self.requires_confirmation,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class PermissionCheck:
    """Outcome of a catalog permission check."""
    allowed: bool
    reason: str = ""
    required_permission: Optional[PermissionLevel] = None

    def __bool__(self) -> bool:
        return self.allowed


def summarize_arguments(arguments: Dict[str, Any], max_chars: int = 120) -> Dict[str, Any]:
    """Truncated argument snapshot for logs."""
    summary: Dict[str, Any] = {}
    for key, value in arguments.items():
        text = value if isinstance(value, (int, float, bool)) or value is None else str(value)
        if isinstance(text, str) and len(text) > max_chars:
            text = text[:max_chars] + "..."
        summary[key] = text
    return summary


def sorted_permissions(permissions: Iterable[PermissionLevel]) -> List[PermissionLevel]:
    order = list(PermissionLevel)
    return sorted(set(permissions), key=order.index)
