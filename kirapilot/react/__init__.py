"""
KiraPilot ReAct Module - Bounded reasoning loop over the tool bridge

Usage:
    from kirapilot.react import ReasoningLoop, ReactLoopConfig

    loop = ReasoningLoop(model, bridge, {"read_only"}, ReactLoopConfig(max_iterations=5))
    result = await loop.run("Show me my tasks")
"""

from .config import (
    LoopResult,
    LoopState,
    LoopStep,
    ReactLoopConfig,
    StepKind,
    ToolCallRecord,
    TurnOutcome,
)
from .parser import ActionDirective, FinalAnswer, Malformed, ParseResult, parse_model_output
from .prompts import build_prompt
from .loop import ReasoningLoop

__all__ = [
    "LoopResult",
    "LoopState",
    "LoopStep",
    "ReactLoopConfig",
    "StepKind",
    "ToolCallRecord",
    "TurnOutcome",
    "ActionDirective",
    "FinalAnswer",
    "Malformed",
    "ParseResult",
    "parse_model_output",
    "build_prompt",
    "ReasoningLoop",
]
