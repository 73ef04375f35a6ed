"""
Tests for the ReasoningLoop

Tests cover:
- Action -> Observation -> Answer runs
- Malformed completions and the plain-text option
- Abort paths: repeated failures, iteration limit, model errors, cancellation
- Prompt contents and audit summary
"""

import asyncio
from types import SimpleNamespace

import pytest

from kirapilot.react import LoopState, ReactLoopConfig, ReasoningLoop, StepKind
from kirapilot.tools import PermissionLevel, ToolCatalog, ToolContext, tool
from kirapilot.tools.bridge import ExecutionBridge


@tool
async def wait_for_sync(*, context: ToolContext) -> dict:
    """Waits on a sync that never finishes."""
    await asyncio.sleep(5)
    return {}


class _FailingModel:
    async def generate(self, prompt):
        raise RuntimeError("provider unavailable")


class _HangingModel:
    def __init__(self):
        self.started = asyncio.Event()

    async def generate(self, prompt):
        self.started.set()
        await asyncio.sleep(10)
        return "Answer: too late"


class TestHappyPath:
    """Runs that end with an answer"""

    @pytest.mark.asyncio
    async def test_action_then_answer(self, bridge, backend, make_model):
        model = make_model([
            'Thought: I should list the tasks\nAction: get_tasks: {"status": "pending"}',
            "Answer: You have one pending task: Review project proposal.",
        ])
        loop = ReasoningLoop(model, bridge, {PermissionLevel.READ_ONLY})

        result = await loop.run("What's pending?")

        assert result.succeeded
        assert result.state == LoopState.DONE
        assert result.final_message == "You have one pending task: Review project proposal."
        assert result.iterations == 2
        assert [c.name for c in result.tool_calls] == ["get_tasks"]
        assert result.tool_calls[0].success is True
        assert result.tool_calls[0].attempts == 1
        assert [s.kind for s in result.steps] == [
            StepKind.THOUGHT,
            StepKind.ACTION,
            StepKind.OBSERVATION,
            StepKind.ANSWER,
        ]
        assert backend.calls == ["list_tasks"]

    @pytest.mark.asyncio
    async def test_observation_fed_into_next_prompt(self, bridge, make_model):
        model = make_model(['Action: get_task_details: {"task_id": "t1"}'])
        loop = ReasoningLoop(model, bridge, ["read_only"])

        await loop.run("Tell me about t1")

        assert "# Progress So Far" not in model.prompts[0]
        assert "# Progress So Far" in model.prompts[1]
        assert "Observation: " in model.prompts[1]
        assert "Review project proposal" in model.prompts[1]

    @pytest.mark.asyncio
    async def test_prompt_lists_only_permitted_tools(self, bridge, make_model):
        model = make_model(["Answer: hi"])
        await ReasoningLoop(model, bridge, ["read_only"]).run("hello")

        assert "- get_tasks:" in model.prompts[0]
        assert "- create_task:" not in model.prompts[0]
        assert 'The user has asked: "hello"' in model.prompts[0]

    @pytest.mark.asyncio
    async def test_retry_counted_in_tool_call(self, bridge, backend, make_model):
        backend.fail("list_tasks", ConnectionError("network unreachable"))
        notices = []
        loop = ReasoningLoop(
            make_model(["Action: get_tasks"]), bridge, ["read_only"], on_retry=notices.append
        )

        result = await loop.run("List tasks")

        assert result.succeeded
        assert result.tool_calls[0].attempts == 2
        assert len(notices) == 1

    @pytest.mark.asyncio
    async def test_completion_object_with_content(self, bridge, make_model):
        model = make_model([SimpleNamespace(content="Answer: from an object")])
        result = await ReasoningLoop(model, bridge, ["read_only"]).run("hi")

        assert result.final_message == "from an object"


class TestMalformed:
    """Completions without a valid directive"""

    @pytest.mark.asyncio
    async def test_plain_text_is_answer_by_default(self, bridge, make_model):
        model = make_model(["You have two tasks today."])
        result = await ReasoningLoop(model, bridge, ["read_only"]).run("hi")

        assert result.succeeded
        assert result.final_message == "You have two tasks today."
        assert result.iterations == 1

    @pytest.mark.asyncio
    async def test_plain_text_rejected_when_disabled(self, bridge, make_model):
        model = make_model(["You have two tasks today."])
        config = ReactLoopConfig(plain_text_is_answer=False)
        result = await ReasoningLoop(model, bridge, ["read_only"], config=config).run("hi")

        assert result.final_message == "Done."
        assert result.iterations == 2
        assert StepKind.ERROR in [s.kind for s in result.steps]
        assert "did not follow the format" in model.prompts[1]

    @pytest.mark.asyncio
    async def test_thought_only_is_not_an_answer(self, bridge, make_model):
        model = make_model(["Thought: still thinking"])
        result = await ReasoningLoop(model, bridge, ["read_only"]).run("hi")

        assert result.iterations == 2
        assert result.final_message == "Done."

    @pytest.mark.asyncio
    async def test_unknown_tool_observed(self, bridge, make_model):
        model = make_model(["Action: create_tsk: {}"])
        result = await ReasoningLoop(model, bridge, ["full_access"]).run("add a task")

        assert result.succeeded
        assert result.tool_calls[0].error_kind == "TOOL_NOT_FOUND"
        assert "Did you mean one of these?" in model.prompts[1]


class TestAborts:
    """Abort paths"""

    @pytest.mark.asyncio
    async def test_repeated_failures(self, bridge, make_model):
        action = 'Action: get_task_details: {"task_id": "zzz"}'
        model = make_model([action] * 5)
        result = await ReasoningLoop(model, bridge, ["read_only"]).run("details of zzz")

        assert result.state == LoopState.ABORTED
        assert result.abort_reason == "repeated_failures"
        assert result.iterations == 3
        assert "failed 3 times in a row" in result.final_message

    @pytest.mark.asyncio
    async def test_different_failures_do_not_accumulate(self, bridge, make_model):
        model = make_model([
            'Action: get_task_details: {"task_id": "a"}',
            'Action: get_task_details: {"task_id": "b"}',
            'Action: get_task_details: {"task_id": "c"}',
            "Answer: none of those exist",
        ])
        result = await ReasoningLoop(model, bridge, ["read_only"]).run("details")

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_iteration_limit(self, bridge, make_model):
        model = make_model([], fallback="Action: get_tasks")
        config = ReactLoopConfig(max_iterations=2)
        result = await ReasoningLoop(model, bridge, ["read_only"], config=config).run("loop forever")

        assert result.state == LoopState.ABORTED
        assert result.abort_reason == "iteration_limit"
        assert result.iterations == 2
        assert len(result.tool_calls) == 2

    @pytest.mark.asyncio
    async def test_model_error(self, bridge):
        result = await ReasoningLoop(_FailingModel(), bridge, ["read_only"]).run("hi")

        assert result.state == LoopState.ABORTED
        assert result.abort_reason == "model_error"
        assert "provider unavailable" in result.final_message

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, bridge, make_model):
        model = make_model(["Answer: hi"])
        loop = ReasoningLoop(model, bridge, ["read_only"])
        loop.cancel()

        result = await loop.run("hi")

        assert result.abort_reason == "cancelled"
        assert result.iterations == 0
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_loop_reusable_after_cancel(self, bridge, make_model):
        model = make_model(["Answer: hi", "Answer: hello again"])
        loop = ReasoningLoop(model, bridge, ["read_only"])
        loop.cancel()
        assert (await loop.run("hi")).abort_reason == "cancelled"

        result = await loop.run("hi")

        assert result.state == LoopState.DONE
        assert result.final_message == "hi"
        assert loop.cancelled is False

    @pytest.mark.asyncio
    async def test_cancel_during_retry(self, bridge, backend, make_model):
        backend.fail("list_tasks", ConnectionError("network unreachable"))
        loop = ReasoningLoop(make_model(["Action: get_tasks"]), bridge, ["read_only"])
        loop.on_retry = lambda notice: loop.cancel()

        result = await loop.run("List tasks")

        assert result.state == LoopState.ABORTED
        assert result.abort_reason == "cancelled"
        assert backend.calls == ["list_tasks"]

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, bridge):
        model = _HangingModel()
        loop = ReasoningLoop(model, bridge, ["read_only"])
        task = asyncio.ensure_future(loop.run("hi"))
        await model.started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert loop.state == LoopState.ABORTED
        assert loop.abort_reason == "cancelled"

    def test_model_required(self, bridge):
        with pytest.raises(ValueError):
            ReasoningLoop(None, bridge)


class TestAudit:
    """Loop summary audit entry"""

    @pytest.mark.asyncio
    async def test_loop_finished_logged(self, bridge, make_model, caplog):
        model = make_model(["Action: get_tasks", "Answer: ok"])
        loop = ReasoningLoop(model, bridge, ["read_only"], conversation_id="conv-7")

        with caplog.at_level("INFO", logger="kirapilot.audit"):
            await loop.run("hi")

        finished = [r.getMessage() for r in caplog.records if '"loop_finished"' in r.getMessage()]
        assert len(finished) == 1
        assert '"state": "done"' in finished[0]
        assert '"tool_calls": ["get_tasks"]' in finished[0]
        assert '"conversation_id": "conv-7"' in finished[0]


class TestToolTimeout:
    """Per-call timeout taken from the loop configuration"""

    @pytest.mark.asyncio
    async def test_configured_timeout_reaches_tools(self, backend, no_sleep, make_model):
        bridge = ExecutionBridge(ToolCatalog([wait_for_sync]), backend=backend, sleep=no_sleep)
        config = ReactLoopConfig(tool_timeout_seconds=0.05, max_attempts=1)
        model = make_model(["Action: wait_for_sync", "Answer: The sync is stuck."])

        result = await ReasoningLoop(model, bridge, ["read_only"], config=config).run("Sync now")

        call = result.tool_calls[0]
        assert call.success is False
        assert call.error_kind == "TIMEOUT_ERROR"
        assert call.duration_ms < 5000
        assert result.final_message == "The sync is stuck."
