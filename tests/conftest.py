"""Shared fixtures: an in-memory productivity backend and a scripted model."""

import copy
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from kirapilot.errors import ErrorHandler
from kirapilot.tools import ToolCatalog, register_builtin_tools
from kirapilot.tools.bridge import ExecutionBridge


SAMPLE_TASKS: Dict[str, Dict[str, Any]] = {
    "t1": {
        "id": "t1",
        "title": "Review project proposal",
        "description": "Read and comment",
        "priority": 2,
        "status": "pending",
        "due_date": "2024-01-15",
    },
    "t2": {
        "id": "t2",
        "title": "Write weekly report",
        "description": "",
        "priority": 1,
        "status": "in_progress",
    },
}


class FakeBackend:
    """In-memory ProductivityBackend.

    ``failures`` maps a method name to a list of exceptions raised (in order)
    before the method starts succeeding.
    """

    def __init__(self):
        self.tasks: Dict[str, Dict[str, Any]] = copy.deepcopy(SAMPLE_TASKS)
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, List[BaseException]] = {}
        self._next_id = 100

    def fail(self, method: str, *errors: BaseException) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        queue = self.failures.get(method)
        if queue:
            raise queue.pop(0)

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    async def list_tasks(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        self._enter("list_tasks")
        tasks = list(self.tasks.values())
        for key, value in (filters or {}).items():
            if key == "search":
                tasks = [t for t in tasks if value.lower() in t["title"].lower()]
            else:
                tasks = [t for t in tasks if t.get(key) == value]
        return tasks

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get_task")
        return self.tasks.get(task_id)

    async def create_task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("create_task")
        task = dict(data, id=self._new_id("t"))
        self.tasks[task["id"]] = task
        return task

    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("update_task")
        self.tasks[task_id].update(updates)
        return self.tasks[task_id]

    async def start_timer(self, task_id: str) -> Dict[str, Any]:
        self._enter("start_timer")
        session = {"id": self._new_id("s"), "task_id": task_id, "running": True}
        self.sessions[session["id"]] = session
        return session

    async def stop_timer(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        self._enter("stop_timer")
        session = {"id": session_id or "s1", "running": False, "duration": 25 * 60 * 1000}
        return session

    async def get_time_data(self, start_date: str, end_date: str) -> Dict[str, Any]:
        self._enter("get_time_data")
        return {"total_sessions": 4, "total_time": 3 * 3_600_000, "average_session": 45 * 60_000}

    async def analyze_productivity(self, period_days: int = 7) -> Dict[str, Any]:
        self._enter("analyze_productivity")
        return {
            "insights": {
                "most_productive_time": {"start": "09:00", "end": "11:00"},
                "completion_rate": 0.75,
                "focus_efficiency": 0.6,
            },
            "recommendations": ["Batch small tasks", "Protect your morning focus block"],
        }


class ScriptedModel:
    """Language model returning canned completions in order.

    Once the script is exhausted it keeps returning ``fallback``.
    """

    def __init__(self, outputs: List[Any], fallback: str = "Answer: Done."):
        self.outputs = list(outputs)
        self.fallback = fallback
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> Any:
        self.prompts.append(prompt)
        if self.outputs:
            return self.outputs.pop(0)
        return self.fallback


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def catalog():
    catalog = ToolCatalog()
    register_builtin_tools(catalog)
    return catalog


@pytest.fixture
def error_handler(catalog):
    return ErrorHandler(catalog)


@pytest.fixture
def no_sleep():
    """Replacement for asyncio.sleep so retry delays never wait."""
    return AsyncMock(return_value=None)


@pytest.fixture
def bridge(catalog, error_handler, backend, no_sleep):
    return ExecutionBridge(catalog, error_handler=error_handler, backend=backend, sleep=no_sleep)


@pytest.fixture
def make_model():
    """Factory for ScriptedModel instances."""
    return ScriptedModel
