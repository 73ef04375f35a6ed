"""
Shared constants for the KiraPilot agent engine.

Centralizes tool names, display labels and loop defaults that are needed by
the catalog, the error handler and the reasoning loop.
"""

from typing import Dict, FrozenSet, Tuple

# ── Built-in tool names ──

TOOL_GET_TASKS = "get_tasks"
TOOL_GET_TASK_DETAILS = "get_task_details"
TOOL_CREATE_TASK = "create_task"
TOOL_UPDATE_TASK = "update_task"
TOOL_START_TIMER = "start_timer"
TOOL_STOP_TIMER = "stop_timer"
TOOL_GET_TIME_DATA = "get_time_data"
TOOL_ANALYZE_PRODUCTIVITY = "analyze_productivity"

BUILTIN_TOOL_NAMES: Tuple[str, ...] = (
    TOOL_GET_TASKS,
    TOOL_GET_TASK_DETAILS,
    TOOL_CREATE_TASK,
    TOOL_UPDATE_TASK,
    TOOL_START_TIMER,
    TOOL_STOP_TIMER,
    TOOL_GET_TIME_DATA,
    TOOL_ANALYZE_PRODUCTIVITY,
)

# Tools whose validation failures get task-creation guidance
TASK_CREATION_TOOLS: FrozenSet[str] = frozenset({TOOL_CREATE_TASK})

# Tools that act on an existing record and need its identifier
IDENTIFIER_TOOLS: FrozenSet[str] = frozenset({
    TOOL_UPDATE_TASK,
    TOOL_GET_TASK_DETAILS,
    TOOL_START_TIMER,
})

# The tool to call when an identifier is missing
LISTING_TOOL = TOOL_GET_TASKS

# ── Task priorities ──

PRIORITY_LABELS: Dict[int, str] = {
    0: "Low",
    1: "Medium",
    2: "High",
    3: "Urgent",
}

# ── Action grammar markers ──

ACTION_MARKER = "Action:"
ANSWER_MARKER = "Answer:"
THOUGHT_MARKER = "Thought:"
OBSERVATION_MARKER = "Observation:"
WITH_ARGS_MARKER = " with args:"

# Key used when action arguments cannot be parsed as a JSON object
RAW_INPUT_ARGUMENT = "input"

UNKNOWN_TOOL_NAME = "unknown"

# ── Loop defaults ──

DEFAULT_MAX_ITERATIONS = 8
DEFAULT_TOOL_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_REPEATED_FAILURES = 3
