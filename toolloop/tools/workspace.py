"""Local filesystem implementations of the project and memory ports."""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ._paths import resolve_workspace_path
from .memory import MemoryEntry
from .todo import TodoItem
from .ports import TreeNode

logger = logging.getLogger(__name__)

STATE_DIR = ".toolloop"

SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    "__pycache__",
    "node_modules",
    ".venv",
    "venv",
    "dist",
    "build",
    "target",
    STATE_DIR,
}


class WorkspaceStore:
    """:class:`~toolloop.tools.ports.ProjectStore` backed by a directory."""

    def __init__(self, root: str) -> None:
        self.root = str(Path(root).resolve())

    def _resolve(self, path: str) -> Path:
        return resolve_workspace_path(path or ".", self.root)

    def read_file(self, path: str) -> str:
        resolved = self._resolve(path)
        if resolved.is_dir():
            raise IsADirectoryError(f"path is a directory, not a file: {path}")
        with open(resolved, "r", encoding="utf-8", errors="replace") as fh:
            return fh.read()

    def write_file(self, path: str, content: str) -> None:
        resolved = self._resolve(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        with open(resolved, "w", encoding="utf-8") as fh:
            fh.write(content)

    def create_file(self, path: str, content: str) -> None:
        resolved = self._resolve(path)
        if resolved.exists():
            raise FileExistsError(f"file already exists: {path}")
        self.write_file(path, content)

    def delete_file(self, path: str) -> None:
        resolved = self._resolve(path)
        if resolved == Path(self.root):
            raise ValueError("refusing to delete the workspace root")
        if resolved.is_dir():
            shutil.rmtree(resolved)
        else:
            resolved.unlink()

    def create_folder(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def rename_file(self, old_path: str, new_path: str) -> None:
        source = self._resolve(old_path)
        target = self._resolve(new_path)
        if not source.exists():
            raise FileNotFoundError(f"file not found: {old_path}")
        if target.exists():
            raise FileExistsError(f"destination already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)

    def copy_file(self, source_path: str, destination_path: str) -> None:
        source = self._resolve(source_path)
        target = self._resolve(destination_path)
        if not source.exists():
            raise FileNotFoundError(f"file not found: {source_path}")
        if target.exists():
            raise FileExistsError(f"destination already exists: {destination_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            shutil.copytree(source, target)
        else:
            shutil.copy2(source, target)

    def move_file(self, source_path: str, destination_path: str) -> None:
        source = self._resolve(source_path)
        target = self._resolve(destination_path)
        if not source.exists():
            raise FileNotFoundError(f"file not found: {source_path}")
        if target.exists():
            raise FileExistsError(f"destination already exists: {destination_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))

    def list_tree(self, path: str = "") -> list[TreeNode]:
        base = self._resolve(path)
        if not base.exists():
            raise FileNotFoundError(f"path not found: {path}")
        if not base.is_dir():
            raise NotADirectoryError(f"path is not a directory: {path}")
        return self._tree(base)

    def _tree(self, directory: Path) -> list[TreeNode]:
        entries = sorted(
            directory.iterdir(),
            key=lambda p: (not p.is_dir(), p.name.lower()),
        )
        nodes: list[TreeNode] = []
        for entry in entries:
            rel = entry.relative_to(self.root).as_posix()
            if entry.is_dir():
                if entry.name in SKIP_DIRS or entry.is_symlink():
                    continue
                nodes.append(TreeNode(entry.name, rel, True, tuple(self._tree(entry))))
            else:
                nodes.append(TreeNode(entry.name, rel, False))
        return nodes

    def all_files(self) -> list[str]:
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            for filename in sorted(filenames):
                full = Path(dirpath) / filename
                files.append(full.relative_to(self.root).as_posix())
        return files

    def file_info(self, path: str) -> dict[str, Any]:
        resolved = self._resolve(path)
        if not resolved.exists():
            raise FileNotFoundError(f"file not found: {path}")
        stat = resolved.stat()
        info: dict[str, Any] = {
            "path": path,
            "size": stat.st_size,
            "extension": resolved.suffix.lstrip("."),
            "is_dir": resolved.is_dir(),
            "modified": datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S"),
            "readable": os.access(resolved, os.R_OK),
            "writable": os.access(resolved, os.W_OK),
        }
        if resolved.is_file():
            content = self.read_file(path)
            info["lines"] = len(content.splitlines()) or (1 if content else 0)
            info["characters"] = len(content)
        return info


_MEMORY_LIST = TypeAdapter(list[MemoryEntry])


class JsonMemoryStore:
    """:class:`~toolloop.tools.ports.MemoryStore` persisted as JSON in the workspace."""

    def __init__(self, root: str, filename: str = "memories.json") -> None:
        self.path = Path(root) / STATE_DIR / filename
        self._lock = threading.Lock()

    def _load(self) -> list[MemoryEntry]:
        if not self.path.exists():
            return []
        try:
            return _MEMORY_LIST.validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as exc:
            logger.warning("Ignoring unreadable memory file %s: %s", self.path, exc)
            return []

    def _dump(self, entries: list[MemoryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry.model_dump(mode="json") for entry in entries]
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def save(self, entry: MemoryEntry) -> bool:
        with self._lock:
            entries = self._load()
            replaced = False
            for idx, existing in enumerate(entries):
                if existing.key == entry.key:
                    entries[idx] = entry
                    replaced = True
                    break
            if not replaced:
                entries.append(entry)
            self._dump(entries)
            return replaced

    def recall(self, key: str, category: str | None = None) -> MemoryEntry | None:
        for entry in self._load():
            if entry.key == key and (category is None or entry.category.value == category):
                return entry
        return None

    def list_all(self) -> list[MemoryEntry]:
        return self._load()

    def delete(self, key: str, category: str | None = None) -> bool:
        with self._lock:
            entries = self._load()
            kept = [
                e for e in entries
                if not (e.key == key and (category is None or e.category.value == category))
            ]
            if len(kept) == len(entries):
                return False
            self._dump(kept)
            return True


_TODO_LIST = TypeAdapter(list[TodoItem])


class JsonTodoStore:
    """:class:`~toolloop.tools.ports.TodoStore` persisted as JSON in the workspace."""

    def __init__(self, root: str, filename: str = "todos.json") -> None:
        self.path = Path(root) / STATE_DIR / filename
        self._lock = threading.Lock()

    def _load(self) -> list[TodoItem]:
        if not self.path.exists():
            return []
        try:
            return _TODO_LIST.validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as exc:
            logger.warning("Ignoring unreadable todo file %s: %s", self.path, exc)
            return []

    def _dump(self, items: list[TodoItem]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [item.model_dump(mode="json") for item in items]
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def add(self, item: TodoItem) -> None:
        with self._lock:
            items = self._load()
            items.append(item)
            self._dump(items)

    def replace(self, item: TodoItem) -> None:
        with self._lock:
            items = [item if existing.id == item.id else existing for existing in self._load()]
            self._dump(items)

    def list_all(self) -> list[TodoItem]:
        return self._load()
