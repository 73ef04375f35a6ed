"""
KiraPilot Reasoning Loop - Thought -> Action -> Observation -> Answer

Drives a language model through a bounded loop. Each model completion is
parsed into a directive; actions are dispatched through the execution
bridge (which owns retries), and observations are fed back into the next
prompt until the model answers or the loop aborts.

State machine:
    THINKING -> PARSING -> ACTING -> OBSERVING -> THINKING
    terminal: DONE | ABORTED
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Iterable, List, Optional

from ..audit_logger import AuditLogger
from ..formatter.result_formatter import FormattingOptions, ToolResultFormatter
from ..protocols import LanguageModelProtocol
from ..tools.bridge import ExecutionBridge, ExecutionCancelled
from ..tools.models import ToolExecutionResult, normalize_permissions, summarize_arguments
from .config import (
    LoopResult,
    LoopState,
    LoopStep,
    ReactLoopConfig,
    StepKind,
    ToolCallRecord,
    TurnOutcome,
)
from .parser import ActionDirective, FinalAnswer, Malformed, parse_model_output
from .prompts import build_prompt, render_format_reminder

logger = logging.getLogger(__name__)

ABORT_CANCELLED = "cancelled"
ABORT_ITERATION_LIMIT = "iteration_limit"
ABORT_REPEATED_FAILURES = "repeated_failures"
ABORT_MODEL_ERROR = "model_error"


class ReasoningLoop:
    """
    Bounded reasoning loop over a language model and the tool bridge

    Args:
        model: LanguageModelProtocol implementation
        bridge: ExecutionBridge used for every action
        granted_permissions: Permissions held by the caller for this conversation
        config: ReactLoopConfig (defaults used when omitted)
        formatter: ToolResultFormatter producing observations
        audit: AuditLogger receiving the ``loop_finished`` event
        conversation_id: Passed through to tool handlers and audit entries
        on_retry: Callback receiving each "retrying" notice

    Example:
        loop = ReasoningLoop(model, bridge, {PermissionLevel.READ_ONLY})
        result = await loop.run("What's on my list today?")
        print(result.final_message)
    """

    def __init__(
        self,
        model: LanguageModelProtocol,
        bridge: ExecutionBridge,
        granted_permissions: Iterable[Any] = (),
        config: Optional[ReactLoopConfig] = None,
        formatter: Optional[ToolResultFormatter] = None,
        audit: Optional[AuditLogger] = None,
        conversation_id: str = "",
        on_retry: Optional[Callable[[ToolExecutionResult], Any]] = None,
    ):
        if model is None:
            raise ValueError("model is required")
        self.model = model
        self.bridge = bridge
        self.granted_permissions = normalize_permissions(granted_permissions)
        self.config = config or ReactLoopConfig()
        self.formatter = formatter or ToolResultFormatter(
            FormattingOptions(max_observation_chars=self.config.max_observation_chars)
        )
        self.audit = audit or AuditLogger()
        self.conversation_id = conversation_id
        self.on_retry = on_retry

        self.state = LoopState.THINKING
        self.steps: List[LoopStep] = []
        self.tool_calls: List[ToolCallRecord] = []
        self.abort_reason: Optional[str] = None
        self.final_message: Optional[str] = None
        self._cancel_event = asyncio.Event()
        self._last_failure_signature: Optional[str] = None
        self._repeated_failures = 0

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation; honoured before the next THINKING or ACTING step.

        A pending request is consumed when the current (or next) run ends,
        so the same loop can be run again afterwards.
        """
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def reset(self) -> None:
        self.state = LoopState.THINKING
        self.steps = []
        self.tool_calls = []
        self.abort_reason = None
        self.final_message = None
        self._last_failure_signature = None
        self._repeated_failures = 0

    def _abort(self, reason: str, message: str) -> TurnOutcome:
        self.state = LoopState.ABORTED
        self.abort_reason = reason
        self.final_message = message
        self.steps.append(LoopStep(StepKind.ERROR, message))
        logger.warning(f"Reasoning loop aborted ({reason}): {message}")
        return TurnOutcome(state=self.state, done=True, final_message=message)

    def _finish(self, message: str) -> TurnOutcome:
        self.state = LoopState.DONE
        self.final_message = message
        self.steps.append(LoopStep(StepKind.ANSWER, message))
        return TurnOutcome(state=self.state, done=True, final_message=message)

    # ------------------------------------------------------------------
    # One turn
    # ------------------------------------------------------------------

    async def process_turn(self, model_output: Any) -> TurnOutcome:
        """
        Handle one model completion: PARSING -> ACTING -> OBSERVING

        Returns:
            TurnOutcome; ``done`` is True when the loop reached DONE or ABORTED
        """
        self.state = LoopState.PARSING
        parsed = parse_model_output(model_output)
        if parsed.thought:
            self.steps.append(LoopStep(StepKind.THOUGHT, parsed.thought))

        if isinstance(parsed, FinalAnswer):
            logger.debug("Model produced a final answer")
            return self._finish(parsed.text)

        if isinstance(parsed, Malformed):
            if parsed.plain_text and self.config.plain_text_is_answer:
                logger.debug("Treating plain-text completion as the final answer")
                return self._finish(parsed.text)
            logger.debug(f"Malformed completion: {parsed.reason}")
            reminder = render_format_reminder()
            self.steps.append(LoopStep(StepKind.ERROR, f"{parsed.reason}. {reminder}"))
            self.state = LoopState.THINKING
            return TurnOutcome(state=self.state, observation=reminder)

        return await self._act(parsed)

    async def _act(self, directive: ActionDirective) -> TurnOutcome:
        if self.cancelled:
            return self._abort(ABORT_CANCELLED, "Request cancelled.")

        self.state = LoopState.ACTING
        request = directive.request
        self.steps.append(LoopStep(
            StepKind.ACTION,
            request.raw_text[len("Action:"):].strip() if request.raw_text else request.tool_name,
            tool_name=request.tool_name,
        ))

        start = time.monotonic()
        try:
            result = await self.bridge.execute_with_recovery(
                request,
                self.granted_permissions,
                max_attempts=self.config.max_attempts,
                cancel_event=self._cancel_event,
                on_retry=self._handle_retry,
                conversation_id=self.conversation_id,
                timeout_seconds=self.config.tool_timeout_seconds,
            )
        except ExecutionCancelled:
            return self._abort(ABORT_CANCELLED, "Request cancelled.")
        duration = int((time.monotonic() - start) * 1000)

        self.tool_calls.append(ToolCallRecord(
            name=request.tool_name,
            args_summary=summarize_arguments(request.arguments),
            duration_ms=duration,
            success=result.success,
            attempts=result.metadata.attempt or 1,
            error_kind=result.metadata.error_kind,
        ))

        self.state = LoopState.OBSERVING
        observation = self.formatter.format_observation(result)
        self.steps.append(LoopStep(StepKind.OBSERVATION, observation, tool_name=request.tool_name))
        logger.info(
            f"[ReAct] tool={request.tool_name} success={result.success} "
            f"duration={duration}ms attempts={result.metadata.attempt or 1}"
        )

        if result.success:
            self._last_failure_signature = None
            self._repeated_failures = 0
        else:
            signature = request.signature()
            if signature == self._last_failure_signature:
                self._repeated_failures += 1
            else:
                self._last_failure_signature = signature
                self._repeated_failures = 1
            if self._repeated_failures >= self.config.max_repeated_failures:
                outcome = self._abort(
                    ABORT_REPEATED_FAILURES,
                    f"{result.user_message}\n\nStopped after the same action failed "
                    f"{self._repeated_failures} times in a row.",
                )
                outcome.action = directive
                outcome.observation = observation
                outcome.result = result
                return outcome

        self.state = LoopState.THINKING
        return TurnOutcome(
            state=self.state,
            action=directive,
            observation=observation,
            result=result,
        )

    async def _handle_retry(self, notice: ToolExecutionResult) -> None:
        logger.warning(
            f"[ReAct] retrying {notice.tool_name} "
            f"(attempt {notice.metadata.attempt}/{notice.metadata.max_attempts}) "
            f"in {notice.metadata.retry_after_ms}ms"
        )
        if self.on_retry is not None:
            outcome = self.on_retry(notice)
            if inspect.isawaitable(outcome):
                await outcome

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(self, user_message: str) -> LoopResult:
        """
        Drive THINKING cycles until the model answers or the loop aborts

        Task cancellation marks the loop ABORTED and propagates.
        """
        self.reset()
        start = time.monotonic()
        iterations = 0

        try:
            while not self.state.is_terminal:
                if self.cancelled:
                    self._abort(ABORT_CANCELLED, "Request cancelled.")
                    break
                if iterations >= self.config.max_iterations:
                    self._abort(
                        ABORT_ITERATION_LIMIT,
                        f"I couldn't complete this request within {self.config.max_iterations} steps.",
                    )
                    break

                self.state = LoopState.THINKING
                prompt = build_prompt(
                    user_message,
                    tools=self.bridge.catalog.tools_for(self.granted_permissions),
                    steps=self.steps,
                    include_tool_guidance=self.config.include_tool_guidance,
                )
                iterations += 1
                try:
                    completion = await self.model.generate(prompt)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Model call failed on iteration {iterations}: {e}", exc_info=True)
                    self._abort(ABORT_MODEL_ERROR, f"I couldn't reach the language model: {e}")
                    break

                text = completion if isinstance(completion, str) else getattr(completion, "content", completion)
                await self.process_turn(text)
        except asyncio.CancelledError:
            self.state = LoopState.ABORTED
            self.abort_reason = ABORT_CANCELLED
            logger.warning("Reasoning loop task cancelled")
            self._log_finished(iterations, start)
            self._cancel_event.clear()
            raise

        result = LoopResult(
            state=self.state,
            final_message=self.final_message or "",
            steps=list(self.steps),
            tool_calls=list(self.tool_calls),
            iterations=iterations,
            duration_ms=int((time.monotonic() - start) * 1000),
            abort_reason=self.abort_reason,
        )
        logger.info(
            f"[ReAct] finished state={result.state.value} iterations={iterations} "
            f"tool_calls={len(result.tool_calls)} duration={result.duration_ms}ms"
        )
        self._log_finished(iterations, start)
        self._cancel_event.clear()
        return result

    def _log_finished(self, iterations: int, start: float) -> None:
        self.audit.log_loop_finished(
            state=self.state.value,
            iterations=iterations,
            tool_calls=[call.name for call in self.tool_calls],
            duration_ms=int((time.monotonic() - start) * 1000),
            abort_reason=self.abort_reason,
            conversation_id=self.conversation_id or None,
        )
