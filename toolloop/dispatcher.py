"""Tool-name dispatch, argument validation and error mapping."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any, Awaitable, Iterable, Sequence

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ValidationError

from .tools._paths import path_violations
from .tools.ports import AgentObserver
from .tools.result_schema import (
    FileChangeType,
    ToolResult,
    make_tool_error,
    make_tool_success,
)

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 100
DEFAULT_LEARNING_TIMEOUT_S = 30.0

_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


class ToolName(str, Enum):
    # File operations
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_FILES = "list_files"
    DELETE_FILE = "delete_file"
    CREATE_FOLDER = "create_folder"
    RENAME_FILE = "rename_file"
    COPY_FILE = "copy_file"
    MOVE_FILE = "move_file"
    # Search and edit
    SEARCH_FILES = "search_files"
    SEARCH_REPLACE = "search_replace"
    PATCH_FILE = "patch_file"
    INSERT_AT_LINE = "insert_at_line"
    GET_FILE_INFO = "get_file_info"
    REGEX_REPLACE = "regex_replace"
    APPEND_TO_FILE = "append_to_file"
    PREPEND_TO_FILE = "prepend_to_file"
    # Memory
    SAVE_MEMORY = "save_memory"
    RECALL_MEMORY = "recall_memory"
    LIST_MEMORIES = "list_memories"
    DELETE_MEMORY = "delete_memory"
    UPDATE_MEMORY = "update_memory"
    # Todo
    CREATE_TODO = "create_todo"
    UPDATE_TODO = "update_todo"
    LIST_TODOS = "list_todos"
    # Agent control
    ASK_USER = "ask_user"
    FINISH_TASK = "finish_task"
    # Version control
    GIT_STATUS = "git_status"
    GIT_STAGE = "git_stage"
    GIT_UNSTAGE = "git_unstage"
    GIT_COMMIT = "git_commit"
    GIT_PUSH = "git_push"
    GIT_PULL = "git_pull"
    GIT_BRANCH = "git_branch"
    GIT_CHECKOUT = "git_checkout"
    GIT_LOG = "git_log"
    GIT_DIFF = "git_diff"
    GIT_DISCARD = "git_discard"

    @classmethod
    def lookup(cls, name: str) -> ToolName | None:
        try:
            return cls(name)
        except ValueError:
            return None


CONTROL_TOOLS = frozenset({ToolName.ASK_USER, ToolName.FINISH_TASK})


def parse_arguments(raw: str | None) -> dict[str, Any] | None:
    """Leniently parse tool-call arguments into a dict.

    Surrounding whitespace and a markdown code fence are tolerated, and
    empty input means no arguments.  Returns ``None`` when the text is not a
    JSON object.
    """
    text = (raw or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text, strict=False)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _format_location(loc: Iterable[Any]) -> str:
    return ".".join(str(part) for part in loc) or "arguments"


def validation_errors(tool: BaseTool, args: dict[str, Any], workspace: str | None) -> list[str]:
    """Return every violated constraint for *args*, in schema order."""
    violations: list[str] = []
    schema = tool.args_schema
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        try:
            schema.model_validate(args)
        except ValidationError as exc:
            for err in exc.errors():
                violations.append(f"{_format_location(err['loc'])}: {err['msg']}")
    if workspace:
        violations.extend(path_violations(args, workspace))
    return violations


def map_exception(exc: Exception) -> str:
    """Map an execution failure onto the user-facing error taxonomy."""
    message = (str(exc) or type(exc).__name__)[:MAX_ERROR_CHARS]
    if isinstance(exc, json.JSONDecodeError):
        return f"JSON parsing error: {message}"
    if isinstance(exc, (ValueError, TypeError)):
        return f"Invalid argument: {message}"
    if isinstance(exc, OSError):
        return f"File I/O error: {message}"
    return f"Error executing tool: {message}"


def _coerce_result(name: str, result: Any) -> ToolResult:
    if isinstance(result, ToolResult):
        return result
    return make_tool_success(kind=name, output="" if result is None else str(result))


# ---------------------------------------------------------------------------
# Background work
# ---------------------------------------------------------------------------

class BackgroundTasks:
    """Supervised group for fire-and-forget work.

    Each job runs under a timeout; failures are logged and never reach the
    caller.  :meth:`close` cancels whatever is still running.
    """

    def __init__(self, timeout: float = DEFAULT_LEARNING_TIMEOUT_S) -> None:
        self.timeout = timeout
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, job: Awaitable[Any], *, label: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self._supervise(job, label), name=f"background:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _supervise(self, job: Awaitable[Any], label: str) -> None:
        try:
            await asyncio.wait_for(job, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Background job %s timed out after %.0fs", label, self.timeout)
        except asyncio.CancelledError:
            logger.debug("Background job %s cancelled", label)
            raise
        except Exception:
            logger.exception("Background job %s failed", label)

    async def join(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class ToolDispatcher:
    """Execute tool calls by name against the built-in and extension tables.

    The built-in table must cover every :class:`ToolName`; a missing handler
    is a construction error.  Names outside the enumeration are looked up in
    the extension table (MCP tools).  :meth:`execute` never raises: every
    failure comes back as an unsuccessful :class:`ToolResult`.
    """

    def __init__(
        self,
        tools: Sequence[BaseTool],
        extensions: Sequence[BaseTool] = (),
        *,
        observer: AgentObserver | None = None,
        learner: Any = None,
        workspace: str | None = None,
        learning_timeout: float = DEFAULT_LEARNING_TIMEOUT_S,
    ) -> None:
        self.builtin: dict[ToolName, BaseTool] = {}
        for tool in tools:
            name = ToolName.lookup(tool.name)
            if name is None:
                raise ValueError(f"{tool.name!r} is not a built-in tool name")
            self.builtin[name] = tool
        missing = [name.value for name in ToolName if name not in self.builtin]
        if missing:
            raise ValueError(f"No handler for built-in tools: {', '.join(missing)}")

        self.extensions: dict[str, BaseTool] = {}
        for tool in extensions:
            if ToolName.lookup(tool.name) is not None:
                logger.warning("Extension tool %s shadows a built-in tool; ignoring", tool.name)
                continue
            self.extensions[tool.name] = tool

        self.observer = observer
        self.learner = learner
        self.workspace = workspace
        self.background = BackgroundTasks(timeout=learning_timeout)

    @property
    def tools(self) -> list[BaseTool]:
        """Every callable tool, built-in first."""
        return [*self.builtin.values(), *self.extensions.values()]

    def resolve(self, name: str) -> BaseTool | None:
        builtin = ToolName.lookup(name)
        if builtin is not None:
            return self.builtin[builtin]
        return self.extensions.get(name)

    async def execute(self, tool_name: str, raw_arguments: str | None) -> ToolResult:
        args = parse_arguments(raw_arguments)
        if args is None:
            logger.info("Malformed arguments for %s: %r", tool_name, (raw_arguments or "")[:200])
            return make_tool_error(kind=tool_name, error="malformed arguments")

        tool = self.resolve(tool_name)
        if tool is None:
            return make_tool_error(kind=tool_name, error=f"unknown tool: {tool_name}")

        workspace = self.workspace if tool_name in self.builtin_names else None
        violations = validation_errors(tool, args, workspace)
        if violations:
            return make_tool_error(
                kind=tool_name, error=f"Invalid arguments: {'; '.join(violations)}"
            )

        try:
            result = _coerce_result(tool_name, await tool.ainvoke(args))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Tool %s raised %s: %s", tool_name, type(exc).__name__, exc)
            return make_tool_error(kind=tool_name, error=map_exception(exc))

        if result.success:
            self._notify_changes(result)
            if tool_name == ToolName.WRITE_FILE.value:
                self._schedule_learning(result)
        return result

    @property
    def builtin_names(self) -> frozenset[str]:
        return frozenset(name.value for name in self.builtin)

    def _notify_changes(self, result: ToolResult) -> None:
        if self.observer is None:
            return
        for change in result.changes:
            try:
                self.observer.on_file_changed(change)
            except Exception:
                logger.exception("Observer failed to record change to %s", change.path)

    def _schedule_learning(self, result: ToolResult) -> None:
        if self.learner is None:
            return
        for change in result.changes:
            if change.change_type in (FileChangeType.CREATED, FileChangeType.MODIFIED) and change.new_content:
                self.background.spawn(
                    self.learner.learn(change.path, change.new_content),
                    label=f"learn:{change.path}",
                )

    async def close(self) -> None:
        await self.background.close()
