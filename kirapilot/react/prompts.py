"""Built-in prompts for the KiraPilot reasoning loop.

Modular prompt system: each section is a function that returns a string.
Sections are composed in build_prompt() from the request and the transcript.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from ..tools.models import ToolDefinition
from .config import LoopStep


# ---------------------------------------------------------------------------
# Section renderers: each returns a prompt fragment or empty string
# ---------------------------------------------------------------------------

def render_preamble(user_message: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return (
        f'You are Kira, a helpful task management assistant. The user has asked: "{user_message}"\n\n'
        f"Current Context:\n"
        f"- Date: {now.strftime('%Y-%m-%d')} ({now.strftime('%A')})\n"
        f"- Time: {now.strftime('%H:%M')}"
    )


def render_protocol() -> str:
    return """
# Response Format

Work step by step:

1. Think about what the user needs: `Thought: <your reasoning>`
2. If you need a tool, write exactly one line: `Action: tool_name: {"arg": "value"}`
3. When you can answer, write: `Answer: <your response to the user>`

After each action you will receive an `Observation:` with the tool result.
Use only the tools listed below. Arguments must be a JSON object.
""".strip()


def render_tools(tools: Iterable[ToolDefinition]) -> str:
    """Render the tool listing the caller is allowed to use."""
    lines: List[str] = []
    for definition in tools:
        lines.append(f"- {definition.name}: {definition.description}")
        lines.append(f"  {definition.usage_example()}")
    if not lines:
        return "# Available Tools\n\nNo tools are available. Answer directly."
    return "# Available Tools\n\n" + "\n".join(lines)


def render_transcript(steps: Iterable[LoopStep]) -> str:
    rendered = [step.render() for step in steps]
    if not rendered:
        return ""
    return "# Progress So Far\n\n" + "\n".join(rendered)


def render_format_reminder() -> str:
    return (
        "Your last reply did not follow the format. Reply with either "
        "`Action: tool_name: {...}` or `Answer: <response>`."
    )


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

def build_prompt(
    user_message: str,
    tools: Iterable[ToolDefinition] = (),
    steps: Iterable[LoopStep] = (),
    include_tool_guidance: bool = True,
    now: Optional[datetime] = None,
) -> str:
    """Compose the full prompt for one model call."""
    sections = [render_preamble(user_message, now), render_protocol()]
    if include_tool_guidance:
        sections.append(render_tools(tools))
    transcript = render_transcript(steps)
    if transcript:
        sections.append(transcript)
    sections.append("What is your next step?")
    return "\n\n".join(sections)
