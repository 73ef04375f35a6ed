"""
KiraPilot Protocols - Abstract interfaces for dependency injection

These protocols define the contracts that the host application fulfills.
The engine never talks to a model provider or a database directly: it calls
whatever implementations are handed to it.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable


TranslationFunction = Callable[[str], str]


def identity_translation(key: str) -> str:
    """Default translation: return the text unchanged."""
    return key


@runtime_checkable
class LanguageModelProtocol(Protocol):
    """
    Abstract interface for the language model capability

    Implement this protocol to plug in any provider (local model, hosted API).
    The engine only needs free text back; the completion is expected to
    contain a ``Thought:``/``Action:``/``Answer:`` directive.

    Example:
        class MyModel:
            async def generate(self, prompt: str) -> str:
                response = await client.responses.create(model="...", input=prompt)
                return response.output_text
    """

    async def generate(self, prompt: str) -> Any:
        """
        Produce a completion for a prompt

        Args:
            prompt: Full prompt text including the reasoning transcript

        Returns:
            The completion text, or an object exposing it as ``.content``
        """
        ...


@runtime_checkable
class ProductivityBackend(Protocol):
    """
    Abstract interface for the task/timer data layer

    The built-in tools delegate to this backend. Each call is expected to be
    individually atomic; failures are raised as exceptions and classified by
    the error handler.
    """

    async def list_tasks(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """List tasks, optionally filtered (status, priority, search)"""
        ...

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Get a single task by id"""
        ...

    async def create_task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a task and return it"""
        ...

    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply updates to a task and return it"""
        ...

    async def start_timer(self, task_id: str) -> Dict[str, Any]:
        """Start a time tracking session and return it"""
        ...

    async def stop_timer(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Stop the running (or given) session and return it"""
        ...

    async def get_time_data(self, start_date: str, end_date: str) -> Dict[str, Any]:
        """Aggregate time tracking data for a date range"""
        ...

    async def analyze_productivity(self, period_days: int = 7) -> Dict[str, Any]:
        """Compute productivity insights and recommendations"""
        ...
