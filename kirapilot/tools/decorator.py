"""
@tool decorator - build ToolDefinition instances from typed functions.

Inspects the function signature and type hints to build a pydantic argument
model, then wraps the function into the handler signature expected by the
execution bridge (``async def handler(args: dict, context: ToolContext)``).

Usage::

    from typing import Annotated, Optional
    from pydantic import Field
    from kirapilot.tools import tool, PermissionLevel, ToolContext

    @tool(permission=PermissionLevel.MODIFY_TASKS, keywords=("add", "new"))
    async def create_task(
        title: Annotated[str, "Task title", Field(min_length=1)],
        priority: Annotated[int, "0=Low, 1=Medium, 2=High, 3=Urgent", Field(ge=0, le=3)] = 1,
        due_date: Annotated[Optional[str], "Due date (YYYY-MM-DD)"] = None,
        *,
        context: ToolContext,
    ) -> dict:
        \"\"\"Create a new task.\"\"\"
        ...

    # create_task is now a ToolDefinition
    # create_task.argument_model validates {"title": ..., "priority": ...}
"""

from __future__ import annotations

import inspect
import re
import types
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from .models import PermissionLevel, ToolContext, ToolDefinition

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_NoneType = type(None)


def _is_optional(annotation: Any) -> bool:
    """Return True if *annotation* is ``Optional[X]``, ``Union[X, None]`` or ``X | None``."""
    if get_origin(annotation) in (Union, types.UnionType):
        return _NoneType in get_args(annotation)
    return False


def _split_annotated(annotation: Any) -> Tuple[Any, Optional[str], List[Any]]:
    """Split ``Annotated[T, "desc", Field(...)]`` into ``(T, "desc", [Field(...)])``."""
    if get_origin(annotation) is not Annotated:
        return annotation, None, []
    base, *extras = get_args(annotation)
    description = next((e for e in extras if isinstance(e, str)), None)
    metadata = [e for e in extras if not isinstance(e, str)]
    return base, description, metadata


def _model_name(tool_name: str) -> str:
    return "".join(part.capitalize() for part in tool_name.split("_") if part) + "Arguments"


def _build_argument_model(func: Callable, tool_name: str) -> Type[BaseModel]:
    """Build a pydantic model describing *func*'s arguments."""
    sig = inspect.signature(func)
    try:
        hints = get_type_hints(func, include_extras=True)
    except Exception:
        hints = {}

    fields: Dict[str, Any] = {}
    for name, param in sig.parameters.items():
        # Skip injected context
        if name == "context":
            continue
        if param.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            continue

        annotation = hints.get(name, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = str

        base, description, metadata = _split_annotated(annotation)
        if description:
            metadata.append(Field(description=description))
        field_type = Annotated[(base, *metadata)] if metadata else base

        if param.default is not inspect.Parameter.empty:
            default = param.default
        elif _is_optional(base):
            default = None
        else:
            default = ...
        fields[name] = (field_type, default)

    return create_model(
        _model_name(tool_name),
        __config__=ConfigDict(extra="ignore"),
        **fields,
    )


def _build_handler(func: Callable) -> Callable:
    """Create a handler wrapper with the bridge-expected signature.

    Returns an ``async def handler(args: dict, context: ToolContext)`` that
    unpacks *args* into keyword arguments for *func*. Sync functions are
    called directly.
    """
    sig = inspect.signature(func)
    accepts_context = "context" in sig.parameters
    names = [
        name for name, param in sig.parameters.items()
        if name != "context"
        and param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]

    async def handler(args: Dict[str, Any], context: ToolContext) -> Any:
        kwargs = {name: args[name] for name in names if name in args}
        if accepts_context:
            kwargs["context"] = context
        result = func(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    handler.__name__ = getattr(func, "__name__", "handler")
    handler.__doc__ = func.__doc__
    return handler


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into ``field: message; ...`` text."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def validate_arguments(definition: ToolDefinition, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and coerce *arguments* against the tool's argument model.

    Raises pydantic.ValidationError when the contract is violated.
    """
    if definition.argument_model is None:
        return dict(arguments)
    model = definition.argument_model.model_validate(arguments)
    return model.model_dump()


# ---------------------------------------------------------------------------
# Public decorator
# ---------------------------------------------------------------------------

_SNAKE_CASE = re.compile(r"^[a-z][a-z0-9_]*$")


def tool(
    func: Optional[Callable] = None,
    *,
    permission: PermissionLevel = PermissionLevel.READ_ONLY,
    requires_confirmation: bool = False,
    category: str = "general",
    keywords: Iterable[str] = (),
    name: Optional[str] = None,
    description: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> Any:
    """Decorator that converts a typed function into a :class:`ToolDefinition`.

    Supports both bare ``@tool`` and parameterised ``@tool(permission=...)``
    usage. The decorated name is replaced by a ``ToolDefinition`` instance.
    """

    def _make_tool(fn: Callable) -> ToolDefinition:
        tool_name = name or fn.__name__
        if not _SNAKE_CASE.match(tool_name):
            raise ValueError(f"Tool name '{tool_name}' must be snake_case")
        # First line of docstring as description
        doc = inspect.getdoc(fn) or ""
        summary = description or (doc.split("\n")[0].strip() if doc else tool_name)

        return ToolDefinition(
            name=tool_name,
            description=summary,
            required_permission=permission,
            handler=_build_handler(fn),
            argument_model=_build_argument_model(fn, tool_name),
            requires_confirmation=requires_confirmation,
            category=category,
            keywords=tuple(keywords),
            timeout_seconds=timeout_seconds,
        )

    if func is not None:
        # Called as @tool (no parentheses)
        return _make_tool(func)

    # Called as @tool(...), return the actual decorator
    return _make_tool
