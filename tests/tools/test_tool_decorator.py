"""
Tests for the @tool decorator

Tests cover:
- Bare and parameterised usage
- Argument model generation from Annotated hints
- Context injection and sync functions
- validate_arguments / format_validation_error
"""

from typing import Annotated, Optional

import pytest
from pydantic import Field, ValidationError

from kirapilot.tools import (
    PermissionLevel,
    ToolContext,
    ToolDefinition,
    format_validation_error,
    tool,
    validate_arguments,
)


@tool
async def add_note(
    text: Annotated[str, "Note text", Field(min_length=1)],
    pinned: Annotated[bool, "Pin the note"] = False,
    color: Annotated[Optional[str], "Optional color"] = None,
    *,
    context: ToolContext,
) -> dict:
    """Add a note.

    Longer explanation that should not end up in the description.
    """
    return {"text": text, "pinned": pinned, "color": color, "conversation": context.conversation_id}


@tool(
    name="rate_task",
    permission=PermissionLevel.MODIFY_TASKS,
    requires_confirmation=True,
    category="tasks",
    keywords=("score", "stars"),
)
def rate(stars: Annotated[int, "Stars", Field(ge=1, le=5)]) -> int:
    """Rate a task from one to five stars."""
    return stars * 2


class TestDefinition:
    """Tests for the generated ToolDefinition"""

    def test_bare_decorator(self):
        assert isinstance(add_note, ToolDefinition)
        assert add_note.name == "add_note"
        assert add_note.description == "Add a note."
        assert add_note.required_permission == PermissionLevel.READ_ONLY
        assert add_note.requires_confirmation is False

    def test_parameterised_decorator(self):
        assert rate.name == "rate_task"
        assert rate.required_permission == PermissionLevel.MODIFY_TASKS
        assert rate.requires_confirmation is True
        assert rate.category == "tasks"
        assert rate.keywords == ("score", "stars")

    def test_schema_properties(self):
        params = add_note.parameters

        assert params["type"] == "object"
        assert set(params["properties"]) == {"text", "pinned", "color"}
        assert params["required"] == ["text"]
        assert params["properties"]["text"]["description"] == "Note text"
        assert "context" not in params["properties"]

    def test_pep604_optional_not_required(self):
        @tool
        def tag_task(task_id: str, label: str | None) -> dict:
            """Tag a task."""
            return {"task_id": task_id, "label": label}

        assert tag_task.parameters["required"] == ["task_id"]
        assert validate_arguments(tag_task, {"task_id": "t1"}) == {"task_id": "t1", "label": None}

    def test_to_schema(self):
        schema = rate.to_schema()

        assert schema["type"] == "function"
        assert schema["function"]["name"] == "rate_task"
        assert "stars" in schema["function"]["parameters"]["properties"]

    def test_display_name_and_usage(self):
        assert add_note.display_name == "Add Note"
        assert add_note.usage_example().startswith("Action: add_note: {")

    def test_non_snake_case_name_rejected(self):
        with pytest.raises(ValueError):
            @tool(name="AddNote")
            async def whatever() -> None:
                """Nothing."""


class TestHandler:
    """Tests for the wrapped handler"""

    @pytest.mark.asyncio
    async def test_async_handler_receives_context(self):
        context = ToolContext(conversation_id="conv-9")
        result = await add_note.handler({"text": "hello"}, context)

        assert result == {"text": "hello", "pinned": False, "color": None, "conversation": "conv-9"}

    @pytest.mark.asyncio
    async def test_sync_handler_without_context(self):
        assert await rate.handler({"stars": 3}, ToolContext()) == 6

    @pytest.mark.asyncio
    async def test_unknown_arguments_ignored(self):
        result = await add_note.handler({"text": "x", "extra": 1}, ToolContext())
        assert result["text"] == "x"


class TestValidation:
    """Tests for argument validation"""

    def test_defaults_filled_in(self):
        assert validate_arguments(add_note, {"text": "x"}) == {"text": "x", "pinned": False, "color": None}

    def test_coercion(self):
        assert validate_arguments(rate, {"stars": "4"}) == {"stars": 4}

    def test_constraint_violation(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_arguments(rate, {"stars": 9})

        message = format_validation_error(exc_info.value)
        assert message.startswith("stars: ")
        assert "less than or equal to 5" in message

    def test_missing_required_field(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_arguments(add_note, {})
        assert "text: Field required" in format_validation_error(exc_info.value)
