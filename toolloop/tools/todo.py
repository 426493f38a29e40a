"""Task list tools."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Type

from pydantic import BaseModel, Field

from ._base import PortTool
from .result_schema import ToolResult, make_tool_error, make_tool_success


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def icon(self) -> str:
        return _STATUS_ICONS[self]


_STATUS_ICONS = {
    TodoStatus.PENDING: "⬜",
    TodoStatus.IN_PROGRESS: "🔄",
    TodoStatus.COMPLETED: "✅",
}


class TodoItem(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: str = ""
    status: TodoStatus = TodoStatus.PENDING

    @property
    def short_id(self) -> str:
        return self.id[:8]


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

class CreateTodoInput(BaseModel):
    title: str = Field(description="Short title of the task.")
    description: str | None = Field(default=None, description="Optional details.")


class UpdateTodoInput(BaseModel):
    todo_id: str = Field(description="Todo id, or a unique prefix of it.")
    status: str = Field(description="pending, in_progress or completed.")


class ListTodosInput(BaseModel):
    pass


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class CreateTodoTool(PortTool):
    name: str = "create_todo"
    description: str = "Add an item to the task list. Use it to plan multi-step work."
    args_schema: Type[BaseModel] = CreateTodoInput
    todos: Any = None
    observer: Any = None

    def _run(self, title: str, description: str | None = None) -> ToolResult:
        item = TodoItem(title=title, description=description or "")
        self.todos.add(item)
        if self.observer is not None:
            self.observer.on_todo_created(item)
        return make_tool_success(
            kind=self.name,
            output=f"Todo created: [{item.short_id}] {item.title}",
            data={"id": item.id},
        )


class UpdateTodoTool(PortTool):
    name: str = "update_todo"
    description: str = "Change the status of a task list item."
    args_schema: Type[BaseModel] = UpdateTodoInput
    todos: Any = None
    observer: Any = None

    def _run(self, todo_id: str, status: str) -> ToolResult:
        try:
            new_status = TodoStatus(status.strip().lower())
        except ValueError:
            return make_tool_error(
                kind=self.name,
                error="Invalid status. Use: pending, in_progress, or completed",
            )

        matches = [item for item in self.todos.list_all() if item.id.startswith(todo_id)]
        if not todo_id or not matches:
            return make_tool_error(kind=self.name, error=f"Todo not found: {todo_id}")
        if len(matches) > 1:
            return make_tool_error(
                kind=self.name, error=f"Todo id prefix is ambiguous: {todo_id}"
            )

        item = matches[0].model_copy(update={"status": new_status})
        self.todos.replace(item)
        if self.observer is not None:
            self.observer.on_todo_updated(item)
        return make_tool_success(
            kind=self.name,
            output=f"Todo updated: [{item.short_id}] {item.title} -> {new_status.value.upper()}",
            data={"id": item.id, "status": new_status.value},
        )


class ListTodosTool(PortTool):
    name: str = "list_todos"
    description: str = "Show the task list."
    args_schema: Type[BaseModel] = ListTodosInput
    todos: Any = None

    def _run(self) -> ToolResult:
        items = self.todos.list_all()
        if not items:
            return make_tool_success(
                kind=self.name, output="No todos found. Use create_todo to add one."
            )
        lines = ["Current todos:"]
        for item in items:
            lines.append(f"{item.status.icon} [{item.short_id}] {item.title}")
            if item.description:
                lines.append(f"   {item.description}")
        return make_tool_success(
            kind=self.name, output="\n".join(lines), data={"count": len(items)}
        )
