"""
KiraPilot Result Formatter - Human-readable and model-facing tool output

The formatter turns a ToolExecutionResult into:
- the message shown to the user (per-tool success templates, failure passthrough)
- the observation fed back into the reasoning transcript
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..constants import (
    PRIORITY_LABELS,
    TOOL_ANALYZE_PRODUCTIVITY,
    TOOL_CREATE_TASK,
    TOOL_GET_TASK_DETAILS,
    TOOL_GET_TASKS,
    TOOL_GET_TIME_DATA,
    TOOL_START_TIMER,
    TOOL_STOP_TIMER,
    TOOL_UPDATE_TASK,
)
from ..tools.models import ToolExecutionResult, tool_display_name

logger = logging.getLogger(__name__)

PRIORITY_EMOJI: Dict[int, str] = {0: "🟢", 1: "🟡", 2: "🟠", 3: "🔴"}
STATUS_EMOJI: Dict[str, str] = {
    "pending": "⏳",
    "in_progress": "🔄",
    "completed": "✅",
    "cancelled": "❌",
}


@dataclass
class FormattingOptions:
    """Formatter options.

    Attributes:
        use_emojis: Prefix priorities and statuses with emoji.
        max_preview_items: Items listed before "...and N more".
        show_execution_time: Append an execution-time footer to messages.
        max_observation_chars: Hard limit for observations fed to the model.
        date_format: strftime format for due dates.
    """
    use_emojis: bool = True
    max_preview_items: int = 3
    show_execution_time: bool = False
    max_observation_chars: int = 4000
    date_format: str = "%b %d, %Y"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class ToolResultFormatter:
    """Formats tool results for users and for the reasoning transcript."""

    def __init__(self, options: Optional[FormattingOptions] = None):
        self.options = options or FormattingOptions()
        self._templates: Dict[str, Callable[[Dict[str, Any]], str]] = {
            TOOL_GET_TASKS: self._format_task_list,
            TOOL_GET_TASK_DETAILS: self._format_task_details,
            TOOL_CREATE_TASK: self._format_task_created,
            TOOL_UPDATE_TASK: self._format_task_updated,
            TOOL_START_TIMER: self._format_timer_started,
            TOOL_STOP_TIMER: self._format_timer_stopped,
            TOOL_GET_TIME_DATA: self._format_time_data,
            TOOL_ANALYZE_PRODUCTIVITY: self._format_productivity,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def success_message(self, tool_name: str, data: Any) -> str:
        """User message for a successful call of ``tool_name``."""
        template = self._templates.get(tool_name)
        if template is not None and isinstance(data, dict):
            try:
                return template(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Template for '{tool_name}' could not render result: {e}")
        return f"✅ {tool_display_name(tool_name)} completed successfully"

    def format_result(self, result: ToolExecutionResult) -> str:
        """Final human-readable message for a result."""
        message = result.user_message
        if not message:
            message = (
                self.success_message(result.tool_name, result.data)
                if result.success
                else f"❌ {tool_display_name(result.tool_name)} failed: {result.error or 'Unknown error'}"
            )
        if self.options.show_execution_time and result.metadata.execution_time_ms:
            message += f"\n\n_Executed in {result.metadata.execution_time_ms}ms_"
        return message

    def format_observation(self, result: ToolExecutionResult) -> str:
        """Observation text for the model: compact JSON on success, guidance on failure."""
        if result.success:
            try:
                text = json.dumps(result.data, ensure_ascii=False, default=str, separators=(",", ":"))
            except (TypeError, ValueError):
                text = str(result.data)
        else:
            text = result.user_message or f"Error: {result.error}"
        return self.truncate(text)

    def truncate(self, text: str) -> str:
        limit = self.options.max_observation_chars
        if limit <= 0 or len(text) <= limit:
            return text
        return text[:limit] + f"... [truncated {len(text) - limit} chars]"

    def update_options(self, **changes: Any) -> None:
        for key, value in changes.items():
            if not hasattr(self.options, key):
                raise ValueError(f"Unknown formatting option: {key}")
            setattr(self.options, key, value)

    # ------------------------------------------------------------------
    # Field helpers
    # ------------------------------------------------------------------

    def format_priority(self, priority: Any) -> str:
        try:
            code = int(priority)
        except (TypeError, ValueError):
            code = 1
        label = PRIORITY_LABELS.get(code, PRIORITY_LABELS[1])
        if self.options.use_emojis:
            return f"{PRIORITY_EMOJI.get(code, PRIORITY_EMOJI[1])} {label}"
        return label

    def format_status(self, status: Any) -> str:
        raw = str(status or "pending")
        label = raw.replace("_", " ").title()
        if self.options.use_emojis:
            return f"{STATUS_EMOJI.get(raw, STATUS_EMOJI['pending'])} {label}"
        return label

    def format_date(self, value: Any) -> str:
        """Render a due date; unparseable values are returned as-is."""
        if not value:
            return ""
        from dateutil import parser
        try:
            return parser.parse(str(value)).strftime(self.options.date_format)
        except (ValueError, OverflowError):
            return str(value)

    # ------------------------------------------------------------------
    # Per-tool templates
    # ------------------------------------------------------------------

    def _task_line(self, index: int, task: Dict[str, Any]) -> List[str]:
        lines = [
            f"{index}. **{task.get('title', 'Untitled')}** "
            f"({self.format_priority(task.get('priority'))}, {self.format_status(task.get('status'))})"
        ]
        if task.get("due_date"):
            lines.append(f"   📅 Due: {self.format_date(task['due_date'])}")
        if task.get("time_estimate"):
            lines.append(f"   ⏱️ Estimated: {task['time_estimate']} minutes")
        return lines

    def _format_task_list(self, data: Dict[str, Any]) -> str:
        tasks = data.get("tasks") or []
        if not tasks:
            return "📝 No tasks found matching your criteria"
        count = len(tasks)
        limit = self.options.max_preview_items
        lines = [f"📝 Found {_plural(count, 'task')}:", ""]
        for index, task in enumerate(tasks[:limit], start=1):
            lines.extend(self._task_line(index, task))
        if count > limit:
            lines.append("")
            lines.append(f"...and {count - limit} more task{'' if count - limit == 1 else 's'}")
        return "\n".join(lines)

    def _format_task_details(self, data: Dict[str, Any]) -> str:
        task = data["task"]
        lines = self._task_line(1, task)
        lines[0] = lines[0][3:]
        if task.get("description"):
            lines.append(f"   {task['description']}")
        return "📝 " + "\n".join(lines)

    def _format_task_created(self, data: Dict[str, Any]) -> str:
        task = data["task"]
        return f"✅ Created task: **{task['title']}** ({self.format_priority(task.get('priority'))} priority)"

    def _format_task_updated(self, data: Dict[str, Any]) -> str:
        return f"✅ Updated task: **{data['task']['title']}**"

    def _format_timer_started(self, data: Dict[str, Any]) -> str:
        return "⏱️ Timer started! Now tracking time for your task."

    def _format_timer_stopped(self, data: Dict[str, Any]) -> str:
        session = data["session"]
        minutes = round(float(session.get("duration", 0)) / 60000)
        return f"⏹️ Timer stopped! You worked for {_plural(minutes, 'minute')}."

    def _format_time_data(self, data: Dict[str, Any]) -> str:
        time_data = data["time_data"]
        total_hours = round(float(time_data.get("total_time", 0)) / 3_600_000, 1)
        average_minutes = round(float(time_data.get("average_session", 0)) / 60000)
        return (
            "📊 Time Summary:\n"
            f"• Sessions: {time_data.get('total_sessions', 0)}\n"
            f"• Total time: {total_hours} hours\n"
            f"• Average session: {average_minutes} minutes"
        )

    def _format_productivity(self, data: Dict[str, Any]) -> str:
        analysis = data["analysis"]
        insights = analysis.get("insights", {})
        lines = ["📈 Productivity Analysis:", "", "🎯 **Key Insights:**"]
        window = insights.get("most_productive_time")
        if window:
            lines.append(f"• Most productive: {window.get('start')}-{window.get('end')}")
        if "completion_rate" in insights:
            lines.append(f"• Completion rate: {round(float(insights['completion_rate']) * 100)}%")
        if "focus_efficiency" in insights:
            lines.append(f"• Focus efficiency: {round(float(insights['focus_efficiency']) * 100)}%")
        recommendations = analysis.get("recommendations") or []
        if recommendations:
            lines.append("")
            lines.append("💡 **Recommendations:**")
            for index, recommendation in enumerate(recommendations[: self.options.max_preview_items], start=1):
                lines.append(f"{index}. {recommendation}")
        return "\n".join(lines)
