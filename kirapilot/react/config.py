"""Reasoning loop configuration, state and result dataclasses.

Centralizes all tunable parameters for the Thought/Action/Observation loop,
along with structured types for tracking steps, tool calls, and loop results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_REPEATED_FAILURES,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
)
from ..tools.models import ToolExecutionResult


class LoopState(str, Enum):
    """Reasoning loop states. DONE and ABORTED are terminal."""
    THINKING = "thinking"
    PARSING = "parsing"
    ACTING = "acting"
    OBSERVING = "observing"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.DONE, LoopState.ABORTED)


class StepKind(str, Enum):
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    ANSWER = "answer"
    ERROR = "error"


@dataclass
class ReactLoopConfig:
    """All reasoning loop configuration centralized in one place."""

    # Loop control
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    """Maximum model calls per run; exceeding it aborts the loop."""
    max_repeated_failures: int = DEFAULT_MAX_REPEATED_FAILURES
    """The same failing action this many times in a row aborts the loop."""
    plain_text_is_answer: bool = True
    """Treat a completion with no directive as the final answer."""

    # Tool execution
    tool_timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS
    """Default per-call timeout; a tool definition may override it."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    """Attempt budget per tool call (first try included)."""

    # Transcript
    max_observation_chars: int = 4000
    """Single observation hard character limit."""
    include_tool_guidance: bool = True
    """List the caller's available tools in the prompt."""


@dataclass
class LoopStep:
    """One entry of the reasoning transcript."""

    kind: StepKind
    content: str
    tool_name: Optional[str] = None

    def render(self) -> str:
        labels = {
            StepKind.THOUGHT: "Thought",
            StepKind.ACTION: "Action",
            StepKind.OBSERVATION: "Observation",
            StepKind.ANSWER: "Answer",
            StepKind.ERROR: "Error",
        }
        return f"{labels[self.kind]}: {self.content}"


@dataclass
class ToolCallRecord:
    """Per-call telemetry for a single tool invocation."""

    name: str
    """Tool name."""
    args_summary: Dict[str, Any]
    """Truncated argument snapshot for observability."""
    duration_ms: int = 0
    """Wall-clock execution time in milliseconds, retries included."""
    success: bool = True
    """Whether the call finally succeeded."""
    attempts: int = 1
    """Attempts made, retries included."""
    error_kind: Optional[str] = None
    """ErrorKind value of the terminal failure, if any."""


@dataclass
class TurnOutcome:
    """Result of processing one model completion."""

    state: LoopState
    action: Any = None
    """The ActionDirective that was executed, if any."""
    observation: Optional[str] = None
    """Observation text appended to the transcript."""
    result: Optional[ToolExecutionResult] = None
    done: bool = False
    final_message: Optional[str] = None


@dataclass
class LoopResult:
    """Structured result returned by the reasoning loop."""

    state: LoopState
    """DONE or ABORTED."""
    final_message: str = ""
    """Answer for the user (or the abort explanation)."""
    steps: List[LoopStep] = field(default_factory=list)
    """Ordered transcript of the run."""
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    """Ordered list of every tool call made during the loop."""
    iterations: int = 0
    """Model calls made."""
    duration_ms: int = 0
    """Total wall-clock duration in milliseconds."""
    abort_reason: Optional[str] = None
    """Why the loop was aborted, if it was."""

    @property
    def succeeded(self) -> bool:
        return self.state == LoopState.DONE
