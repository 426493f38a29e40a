"""Shared fixtures and helpers for toolloop tests."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Sequence

import pytest

from toolloop.agent import AgentConfig
from toolloop.streaming import (
    Completed,
    ContentDelta,
    RawFrame,
    Started,
    StreamEvent,
    ToolCallResponse,
    ToolCalls,
)
from toolloop.tools import create_all_tools
from toolloop.tools.ports import AgentObserver


@pytest.fixture
def workspace(tmp_path):
    """Create a temporary workspace directory."""
    return str(tmp_path)


def make_config(**overrides) -> AgentConfig:
    """Create an AgentConfig with sensible test defaults."""
    return AgentConfig({
        "conversation_id": "test-conv",
        "model": "test-model",
        "api_key": "test-key",
        "system_prompt": "You are a test assistant.",
        **overrides,
    })


def text_turn(text: str) -> list[StreamEvent]:
    """Events of a model turn that only answers with *text*."""
    return [Started(), RawFrame('{"text": true}'), ContentDelta(text), Completed()]


def tool_turn(*calls: tuple[str, dict[str, Any]], text: str = "") -> list[StreamEvent]:
    """Events of a model turn that requests the given ``(name, args)`` calls."""
    responses = tuple(
        ToolCallResponse(id=f"call-{i}", name=name, arguments=json.dumps(args))
        for i, (name, args) in enumerate(calls)
    )
    events: list[StreamEvent] = [Started()]
    if text:
        events.append(ContentDelta(text))
    events += [ToolCalls(responses), Completed()]
    return events


class FakeTransport:
    """Replays scripted event lists, one list per request.

    When the script runs out, the last turn is repeated.
    """

    def __init__(self, *turns: list[StreamEvent]) -> None:
        self.turns = list(turns)
        self.requests: list[list[Any]] = []
        self.tool_names: list[list[str]] = []

    async def stream(self, messages: Sequence[Any], tools: Sequence[Any] = ()) -> AsyncIterator[StreamEvent]:
        self.requests.append(list(messages))
        self.tool_names.append([t.name for t in tools])
        index = min(len(self.requests) - 1, len(self.turns) - 1)
        for event in self.turns[index]:
            yield event


class RecordingObserver(AgentObserver):
    def __init__(self, answer: str | None = None) -> None:
        self.answer = answer
        self.questions: list[tuple[str, list[str] | None]] = []
        self.finished: list[str] = []
        self.changes: list[Any] = []
        self.todos_created: list[Any] = []
        self.todos_updated: list[Any] = []
        self.snapshots: list[Any] = []
        self.events: list[Any] = []

    def ask_user(self, question, options):
        self.questions.append((question, options))
        return self.answer

    def on_task_finished(self, summary):
        self.finished.append(summary)

    def on_file_changed(self, change):
        self.changes.append(change)

    def on_todo_created(self, todo):
        self.todos_created.append(todo)

    def on_todo_updated(self, todo):
        self.todos_updated.append(todo)

    def on_message(self, snapshot):
        self.snapshots.append(snapshot)

    def on_event(self, event):
        self.events.append(event)


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def tools(workspace, observer):
    return create_all_tools(workspace, observer=observer)
