"""
Built-in productivity tools.

Each tool is a thin adapter over the ProductivityBackend carried by the
ToolContext: arguments are validated by the generated pydantic model before
the handler runs, and backend exceptions propagate to the execution bridge
for classification.
"""

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import Field, StringConstraints

from ..constants import (
    TOOL_ANALYZE_PRODUCTIVITY,
    TOOL_CREATE_TASK,
    TOOL_GET_TASK_DETAILS,
    TOOL_GET_TASKS,
    TOOL_GET_TIME_DATA,
    TOOL_START_TIMER,
    TOOL_STOP_TIMER,
    TOOL_UPDATE_TASK,
)
from .decorator import tool
from .models import PermissionLevel, ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
NonEmptyText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
IsoDate = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\d{4}-\d{2}-\d{2}$")]
Priority = Annotated[int, Field(ge=0, le=3)]


def _backend(context: ToolContext) -> Any:
    if context.backend is None:
        raise RuntimeError("No productivity backend is configured for tool execution")
    return context.backend


# ── Tasks ──


@tool(
    name=TOOL_GET_TASKS,
    permission=PermissionLevel.READ_ONLY,
    category="tasks",
    keywords=("list", "show", "find", "search", "tasks"),
)
async def get_tasks(
    status: Annotated[Optional[TaskStatus], "Filter by status"] = None,
    priority: Annotated[Optional[Priority], "Filter by priority (0-3)"] = None,
    search: Annotated[Optional[str], "Text to search in titles and descriptions"] = None,
    limit: Annotated[Optional[int], "Maximum number of tasks to return", Field(ge=1)] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """List tasks, optionally filtered by status, priority or search text."""
    filters = {
        key: value
        for key, value in (("status", status), ("priority", priority), ("search", search))
        if value is not None
    }
    tasks = await _backend(context).list_tasks(filters or None)
    if limit is not None:
        tasks = tasks[:limit]
    return {"tasks": tasks, "count": len(tasks)}


@tool(
    name=TOOL_GET_TASK_DETAILS,
    permission=PermissionLevel.READ_ONLY,
    category="tasks",
    keywords=("details", "view", "inspect"),
)
async def get_task_details(
    task_id: Annotated[NonEmptyText, "ID of the task"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Show full details of a single task."""
    task = await _backend(context).get_task(task_id)
    if task is None:
        return {"success": False, "error": f"No task found with task_id '{task_id}'", "kind": "VALIDATION_ERROR"}
    return {"task": task}


@tool(
    name=TOOL_CREATE_TASK,
    permission=PermissionLevel.MODIFY_TASKS,
    category="tasks",
    keywords=("create", "add", "new", "make"),
)
async def create_task(
    title: Annotated[NonEmptyText, "Task title"],
    description: Annotated[str, "Longer description"] = "",
    priority: Annotated[Priority, "0=Low, 1=Medium, 2=High, 3=Urgent"] = 1,
    due_date: Annotated[Optional[IsoDate], "Due date (YYYY-MM-DD)"] = None,
    time_estimate: Annotated[Optional[int], "Estimated minutes", Field(ge=0)] = None,
    tags: Annotated[Optional[List[str]], "Tags to attach"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Create a new task with a title, priority and optional due date."""
    data: Dict[str, Any] = {
        "title": title,
        "description": description,
        "priority": priority,
        "status": "pending",
    }
    if due_date is not None:
        data["due_date"] = due_date
    if time_estimate is not None:
        data["time_estimate"] = time_estimate
    if tags:
        data["tags"] = tags
    task = await _backend(context).create_task(data)
    logger.info(f"Task created: {task.get('id')}")
    return {"task": task}


@tool(
    name=TOOL_UPDATE_TASK,
    permission=PermissionLevel.MODIFY_TASKS,
    category="tasks",
    keywords=("edit", "modify", "change", "complete", "rename"),
)
async def update_task(
    task_id: Annotated[NonEmptyText, "ID of the task to change"],
    title: Annotated[Optional[NonEmptyText], "New title"] = None,
    description: Annotated[Optional[str], "New description"] = None,
    priority: Annotated[Optional[Priority], "New priority (0-3)"] = None,
    status: Annotated[Optional[TaskStatus], "New status"] = None,
    due_date: Annotated[Optional[IsoDate], "New due date (YYYY-MM-DD)"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Update fields of an existing task."""
    updates = {
        key: value
        for key, value in (
            ("title", title),
            ("description", description),
            ("priority", priority),
            ("status", status),
            ("due_date", due_date),
        )
        if value is not None
    }
    if not updates:
        return {"success": False, "error": "No fields to update were provided", "kind": "VALIDATION_ERROR"}
    task = await _backend(context).update_task(task_id, updates)
    return {"task": task}


# ── Time tracking ──


@tool(
    name=TOOL_START_TIMER,
    permission=PermissionLevel.TIMER_CONTROL,
    category="timer",
    keywords=("start", "begin", "track", "timer"),
)
async def start_timer(
    task_id: Annotated[NonEmptyText, "ID of the task to time"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Start a time tracking session for a task."""
    session = await _backend(context).start_timer(task_id)
    return {"session": session}


@tool(
    name=TOOL_STOP_TIMER,
    permission=PermissionLevel.TIMER_CONTROL,
    category="timer",
    keywords=("stop", "end", "finish", "timer"),
)
async def stop_timer(
    session_id: Annotated[Optional[str], "Session to stop (defaults to the running one)"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Stop the running time tracking session."""
    session = await _backend(context).stop_timer(session_id)
    return {"session": session}


@tool(
    name=TOOL_GET_TIME_DATA,
    permission=PermissionLevel.READ_ONLY,
    category="reports",
    keywords=("time", "stats", "report", "hours", "sessions"),
)
async def get_time_data(
    start_date: Annotated[IsoDate, "First day of the range (YYYY-MM-DD)"],
    end_date: Annotated[IsoDate, "Last day of the range (YYYY-MM-DD)"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Summarize tracked time between two dates."""
    from dateutil import parser
    if parser.isoparse(start_date) > parser.isoparse(end_date):
        return {
            "success": False,
            "error": f"start_date {start_date} is after end_date {end_date}",
            "kind": "VALIDATION_ERROR",
        }
    time_data = await _backend(context).get_time_data(start_date, end_date)
    return {"time_data": time_data}


@tool(
    name=TOOL_ANALYZE_PRODUCTIVITY,
    permission=PermissionLevel.READ_ONLY,
    category="reports",
    keywords=("analyze", "analysis", "insights", "productivity"),
)
async def analyze_productivity(
    period_days: Annotated[int, "Number of days to analyze", Field(ge=1, le=365)] = 7,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Analyze productivity patterns and give recommendations."""
    analysis = await _backend(context).analyze_productivity(period_days)
    return {"analysis": analysis}


BUILTIN_TOOLS: List[ToolDefinition] = [
    get_tasks,
    get_task_details,
    create_task,
    update_task,
    start_timer,
    stop_timer,
    get_time_data,
    analyze_productivity,
]


def register_builtin_tools(catalog) -> None:
    """Register every built-in tool into ``catalog``."""
    for definition in BUILTIN_TOOLS:
        catalog.register(definition)
