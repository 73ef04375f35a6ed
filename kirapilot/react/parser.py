"""
Action grammar parser for model completions.

Accepted directives::

    Thought: <free text>
    Action: <tool_name>: <json_object>
    Action: <tool_name> with args: <json_object>
    Action: <tool_name>
    Answer: <free text>

``parse_model_output`` never raises: it returns one of ActionDirective,
FinalAnswer or Malformed.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..constants import (
    ACTION_MARKER,
    ANSWER_MARKER,
    OBSERVATION_MARKER,
    RAW_INPUT_ARGUMENT,
    THOUGHT_MARKER,
    WITH_ARGS_MARKER,
)
from ..tools.models import ToolInvocationRequest

logger = logging.getLogger(__name__)

_TOOL_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MARKERS = (ACTION_MARKER, ANSWER_MARKER, THOUGHT_MARKER, OBSERVATION_MARKER)
_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class ActionDirective:
    """The model asked for a tool call."""
    request: ToolInvocationRequest
    thought: Optional[str] = None

    @property
    def tool_name(self) -> str:
        return self.request.tool_name

    @property
    def arguments(self) -> Dict[str, Any]:
        return self.request.arguments


@dataclass(frozen=True)
class FinalAnswer:
    """The model produced its answer for the user."""
    text: str
    thought: Optional[str] = None


@dataclass(frozen=True)
class Malformed:
    """The completion matched no directive (or an invalid one).

    ``plain_text`` is True when the completion is non-empty free text with
    neither an ``Action:`` nor an ``Answer:`` marker.
    """
    text: str
    reason: str
    thought: Optional[str] = None
    plain_text: bool = False


ParseResult = Union[ActionDirective, FinalAnswer, Malformed]


def _is_marker_line(line: str) -> bool:
    stripped = line.strip()
    return any(stripped.startswith(marker) for marker in _MARKERS)


def _block_after(lines: List[str], index: int, marker: str) -> str:
    """Text after ``marker`` on ``lines[index]`` plus continuation lines up to the next marker."""
    parts = [lines[index].strip()[len(marker):].strip()]
    for line in lines[index + 1:]:
        if _is_marker_line(line):
            break
        parts.append(line.rstrip())
    return "\n".join(parts).strip()


def _find(lines: List[str], marker: str) -> Optional[int]:
    for index, line in enumerate(lines):
        if line.strip().startswith(marker):
            return index
    return None


def split_action(action_part: str) -> Tuple[str, str]:
    """Split ``<name> with args: <json>`` / ``<name>: <json>`` / ``<name>``."""
    with_args = action_part.find(WITH_ARGS_MARKER)
    colon = action_part.find(":")
    # Whichever delimiter comes first ends the tool name
    if with_args != -1 and with_args < colon:
        name, args = action_part[:with_args], action_part[with_args + len(WITH_ARGS_MARKER):]
        return name.strip(), args.strip()
    if colon != -1:
        name, args = action_part[:colon], action_part[colon + 1:]
        return name.strip(), args.strip()
    return action_part.strip(), ""


def parse_arguments(args_text: str, continuation: str = "") -> Dict[str, Any]:
    """
    Parse the argument part of an action directive

    Empty text and ``{}`` give ``{}``. A JSON object may continue onto the
    following lines. Anything that is not a JSON object degrades to
    ``{"input": "<args_text>"}``.
    """
    if not args_text and not continuation.lstrip().startswith("{"):
        return {}
    if args_text == "{}":
        return {}

    candidate = f"{args_text}\n{continuation}" if continuation else args_text
    candidate = candidate.strip()
    try:
        value, _ = _decoder.raw_decode(candidate)
    except json.JSONDecodeError:
        value = None
    if isinstance(value, dict):
        return value
    if not args_text:
        return {}
    return {RAW_INPUT_ARGUMENT: args_text}


def parse_model_output(text: Any) -> ParseResult:
    """
    Parse one model completion into a directive

    Args:
        text: Completion text (non-string values are converted with ``str``)

    Returns:
        ActionDirective for the first ``Action:`` line, FinalAnswer when an
        ``Answer:`` is present without any action, Malformed otherwise
    """
    raw = text if isinstance(text, str) else ("" if text is None else str(text))
    lines = raw.splitlines()

    thought_index = _find(lines, THOUGHT_MARKER)
    thought = _block_after(lines, thought_index, THOUGHT_MARKER) if thought_index is not None else None

    action_index = _find(lines, ACTION_MARKER)
    if action_index is not None:
        action_line = lines[action_index].strip()
        action_part = action_line[len(ACTION_MARKER):].strip()
        name, args_text = split_action(action_part)
        if not name or not _TOOL_NAME.match(name):
            logger.debug(f"Rejected action directive with invalid tool name: {action_line!r}")
            return Malformed(text=raw, reason=f"invalid tool name in '{action_line}'", thought=thought)

        continuation = "\n".join(lines[action_index + 1:])
        arguments = parse_arguments(args_text, continuation)
        logger.debug(f"Parsed action '{name}' with {len(arguments)} argument(s)")
        return ActionDirective(
            request=ToolInvocationRequest(tool_name=name, arguments=arguments, raw_text=action_line),
            thought=thought,
        )

    answer_index = _find(lines, ANSWER_MARKER)
    if answer_index is not None:
        answer = lines[answer_index].strip()[len(ANSWER_MARKER):].strip()
        rest = "\n".join(lines[answer_index + 1:]).rstrip()
        full = f"{answer}\n{rest}".strip() if rest else answer
        return FinalAnswer(text=full, thought=thought)

    stripped = raw.strip()
    if not stripped:
        return Malformed(text=raw, reason="empty completion", thought=thought)
    if thought is not None:
        return Malformed(text=stripped, reason="Thought: without Action: or Answer:", thought=thought)
    return Malformed(text=stripped, reason="no Action: or Answer: directive", thought=thought, plain_text=True)
