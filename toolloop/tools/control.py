from __future__ import annotations

import logging
from typing import Any, Type

from pydantic import BaseModel, Field

from ._base import PortTool, split_csv
from .result_schema import ToolResult, make_tool_success

logger = logging.getLogger(__name__)


class AskUserInput(BaseModel):
    question: str = Field(description="Question text shown to the user.")
    options: str | None = Field(
        default=None, description="Optional comma-separated list of choices."
    )


class FinishTaskInput(BaseModel):
    summary: str = Field(default="", description="Short summary of what was done.")


class AskUserTool(PortTool):
    """Ask the user a question and stop until the answer arrives.

    The observer answers immediately or returns ``None``; in the latter case
    the loop ends the turn and the answer comes back as the next user message.
    """

    name: str = "ask_user"
    description: str = (
        "Ask the user a clarifying question. Use it when requirements are "
        "ambiguous. The agent pauses until the user answers."
    )
    args_schema: Type[BaseModel] = AskUserInput
    observer: Any = None

    def _run(self, question: str, options: str | None = None) -> ToolResult:
        choices = split_csv(options)
        if self.observer is None:
            output = f"Question for user: {question}"
            if choices:
                output += f"\nOptions: {', '.join(choices)}"
            return make_tool_success(kind=self.name, output=output, data={"pending": True})

        answer = self.observer.ask_user(question, choices or None)
        if answer is None:
            return make_tool_success(
                kind=self.name, output="Waiting for user response...", data={"pending": True}
            )
        return make_tool_success(
            kind=self.name, output=f"User response: {answer}", data={"pending": False}
        )


class FinishTaskTool(PortTool):
    name: str = "finish_task"
    description: str = (
        "Call when the user's request is fully done, with a short summary. "
        "No further steps run after this."
    )
    args_schema: Type[BaseModel] = FinishTaskInput
    observer: Any = None

    def _run(self, summary: str = "") -> ToolResult:
        if self.observer is not None:
            self.observer.on_task_finished(summary)
        logger.info("Task finished: %s", summary[:200])
        output = f"Task completed: {summary}" if summary else "Task completed"
        return make_tool_success(kind=self.name, output=output)
