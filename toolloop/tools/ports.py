"""Collaborator interfaces consumed by the tool table and the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .memory import MemoryEntry
    from .result_schema import FileChange
    from .todo import TodoItem


@dataclass(frozen=True)
class TreeNode:
    name: str
    path: str
    is_dir: bool
    children: tuple[TreeNode, ...] = field(default_factory=tuple)


@runtime_checkable
class ProjectStore(Protocol):
    """File access rooted at one project.

    Paths are relative to the project root.  Failures raise ``OSError``
    subclasses (``FileNotFoundError``, ``FileExistsError``...) or
    ``ValueError`` for paths outside the project.
    """

    root: str

    def read_file(self, path: str) -> str: ...

    def write_file(self, path: str, content: str) -> None: ...

    def create_file(self, path: str, content: str) -> None: ...

    def delete_file(self, path: str) -> None: ...

    def create_folder(self, path: str) -> None: ...

    def rename_file(self, old_path: str, new_path: str) -> None: ...

    def copy_file(self, source_path: str, destination_path: str) -> None: ...

    def move_file(self, source_path: str, destination_path: str) -> None: ...

    def list_tree(self, path: str = "") -> list[TreeNode]: ...

    def all_files(self) -> list[str]: ...

    def file_info(self, path: str) -> dict[str, Any]: ...


@runtime_checkable
class TodoStore(Protocol):
    def add(self, item: TodoItem) -> None: ...

    def replace(self, item: TodoItem) -> None: ...

    def list_all(self) -> list[TodoItem]: ...


@runtime_checkable
class MemoryStore(Protocol):
    def save(self, entry: MemoryEntry) -> bool:
        """Store *entry*; return True when it replaced an existing key."""
        ...

    def recall(self, key: str, category: str | None = None) -> MemoryEntry | None: ...

    def list_all(self) -> list[MemoryEntry]: ...

    def delete(self, key: str, category: str | None = None) -> bool: ...


class VersionControlError(Exception):
    """A version-control command failed; the message is user-facing."""


@runtime_checkable
class VersionControl(Protocol):
    """Version-control operations; each returns text or raises VersionControlError."""

    async def status(self) -> str: ...

    async def stage(self, paths: list[str] | None) -> str: ...

    async def unstage(self, paths: list[str]) -> str: ...

    async def commit(self, message: str) -> str: ...

    async def push(self, remote: str, set_upstream: bool = False) -> str: ...

    async def pull(self, remote: str, rebase: bool = False) -> str: ...

    async def list_branches(self) -> str: ...

    async def create_branch(self, name: str, checkout: bool = False) -> str: ...

    async def delete_branch(self, name: str) -> str: ...

    async def checkout(self, branch: str) -> str: ...

    async def log(self, count: int = 10) -> str: ...

    async def diff(self, path: str | None = None, staged: bool = False) -> str: ...

    async def discard(self, paths: list[str]) -> str: ...


@runtime_checkable
class Learner(Protocol):
    """Long-term learning from content the agent wrote."""

    async def learn(self, path: str, content: str) -> None: ...


class AgentObserver:
    """Single injection point for user interaction and change notifications.

    Every hook must return quickly.  ``ask_user`` returns the answer when
    one is already available, or ``None`` to mean "pending": the loop then
    stops and the answer arrives later as a new user turn.  Hooks must not
    call back into the agent loop.
    """

    def ask_user(self, question: str, options: list[str] | None) -> str | None:
        return None

    def on_task_finished(self, summary: str) -> None:
        pass

    def on_file_changed(self, change: FileChange) -> None:
        pass

    def on_todo_created(self, todo: TodoItem) -> None:
        pass

    def on_todo_updated(self, todo: TodoItem) -> None:
        pass

    def on_message(self, snapshot: Any) -> None:
        pass

    def on_event(self, event: Any) -> None:
        pass
