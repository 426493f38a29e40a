"""Project memory tools."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Type

from pydantic import BaseModel, Field

from ._base import PortTool, split_csv
from .result_schema import ToolResult, make_tool_success

MAX_LISTED_PER_CATEGORY = 10
MAX_LISTED_VALUE_CHARS = 100


class MemoryCategory(str, Enum):
    PROJECT_STRUCTURE = "project_structure"
    CODING_PATTERNS = "coding_patterns"
    FRAMEWORK_CONFIG = "framework_config"
    USER_PREFERENCES = "user_preferences"
    COMPONENT_KNOWLEDGE = "component_knowledge"
    STYLING_PATTERNS = "styling_patterns"
    ERROR_SOLUTIONS = "error_solutions"
    TASK_HISTORY = "task_history"
    GENERAL_NOTES = "general_notes"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class MemoryImportance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_CATEGORY_SYNONYMS = {
    MemoryCategory.PROJECT_STRUCTURE: ("PROJECT_STRUCTURE", "STRUCTURE"),
    MemoryCategory.CODING_PATTERNS: ("CODING_PATTERNS", "PATTERNS", "CODE"),
    MemoryCategory.FRAMEWORK_CONFIG: ("FRAMEWORK_CONFIG", "FRAMEWORK", "CONFIG"),
    MemoryCategory.USER_PREFERENCES: ("USER_PREFERENCES", "PREFERENCES", "USER"),
    MemoryCategory.COMPONENT_KNOWLEDGE: ("COMPONENT_KNOWLEDGE", "COMPONENTS", "COMPONENT"),
    MemoryCategory.STYLING_PATTERNS: ("STYLING_PATTERNS", "STYLING", "STYLES"),
    MemoryCategory.ERROR_SOLUTIONS: ("ERROR_SOLUTIONS", "ERRORS", "SOLUTIONS"),
    MemoryCategory.TASK_HISTORY: ("TASK_HISTORY", "TASKS", "HISTORY"),
}

_IMPORTANCE_SYNONYMS = {
    MemoryImportance.CRITICAL: ("CRITICAL", "HIGHEST"),
    MemoryImportance.HIGH: ("HIGH", "IMPORTANT"),
    MemoryImportance.LOW: ("LOW", "MINOR"),
}

_IMPORTANCE_RANK = {
    MemoryImportance.CRITICAL: 0,
    MemoryImportance.HIGH: 1,
    MemoryImportance.MEDIUM: 2,
    MemoryImportance.LOW: 3,
}


def parse_category(raw: str | None) -> MemoryCategory:
    if not raw:
        return MemoryCategory.GENERAL_NOTES
    normalized = raw.strip().upper().replace(" ", "_")
    for category, names in _CATEGORY_SYNONYMS.items():
        if normalized in names:
            return category
    return MemoryCategory.GENERAL_NOTES


def parse_importance(raw: str | None) -> MemoryImportance:
    if not raw:
        return MemoryImportance.MEDIUM
    normalized = raw.strip().upper()
    for importance, names in _IMPORTANCE_SYNONYMS.items():
        if normalized in names:
            return importance
    return MemoryImportance.MEDIUM


class MemoryEntry(BaseModel):
    key: str
    value: str
    category: MemoryCategory = MemoryCategory.GENERAL_NOTES
    importance: MemoryImportance = MemoryImportance.MEDIUM
    tags: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

class SaveMemoryInput(BaseModel):
    key: str = Field(description="Short identifier for the memory.")
    value: str = Field(description="The information to remember.")
    category: str | None = Field(
        default=None,
        description=(
            "One of: project_structure, coding_patterns, framework_config, "
            "user_preferences, component_knowledge, styling_patterns, "
            "error_solutions, task_history, general_notes."
        ),
    )
    importance: str | None = Field(
        default=None, description="low, medium, high or critical."
    )
    tags: str | None = Field(default=None, description="Comma-separated tags.")
    related_files: str | None = Field(
        default=None, description="Comma-separated related file paths."
    )


class MemoryKeyInput(BaseModel):
    key: str = Field(description="Identifier of the memory.")
    category: str | None = Field(default=None, description="Optional category filter.")


class UpdateMemoryInput(BaseModel):
    key: str = Field(description="Identifier of the memory.")
    value: str = Field(description="New value.")
    category: str | None = Field(default=None, description="Category.")
    importance: str | None = Field(default=None, description="low, medium, high or critical.")


class EmptyInput(BaseModel):
    pass


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class SaveMemoryTool(PortTool):
    name: str = "save_memory"
    description: str = "Save a piece of project knowledge for later sessions."
    args_schema: Type[BaseModel] = SaveMemoryInput
    memory: Any = None

    def _run(
        self,
        key: str,
        value: str,
        category: str | None = None,
        importance: str | None = None,
        tags: str | None = None,
        related_files: str | None = None,
    ) -> ToolResult:
        entry = MemoryEntry(
            key=key,
            value=value,
            category=parse_category(category),
            importance=parse_importance(importance),
            tags=split_csv(tags),
            related_files=split_csv(related_files),
        )
        self.memory.save(entry)
        return make_tool_success(
            kind=self.name,
            output=f"Memory saved: {key} (category: {entry.category.display_name})",
            data={"key": key, "category": entry.category.value},
        )


class RecallMemoryTool(PortTool):
    name: str = "recall_memory"
    description: str = "Recall a saved memory by key."
    args_schema: Type[BaseModel] = MemoryKeyInput
    memory: Any = None

    def _run(self, key: str, category: str | None = None) -> ToolResult:
        entry = None
        if category:
            entry = self.memory.recall(key, parse_category(category).value)
        if entry is None:
            entry = self.memory.recall(key)
        if entry is None:
            return make_tool_success(kind=self.name, output=f"No memory found for key: {key}")
        return make_tool_success(
            kind=self.name,
            output=entry.value,
            data={"key": key, "category": entry.category.value},
        )


class ListMemoriesTool(PortTool):
    name: str = "list_memories"
    description: str = "List saved memories grouped by category."
    args_schema: Type[BaseModel] = EmptyInput
    memory: Any = None

    def _run(self) -> ToolResult:
        entries = self.memory.list_all()
        if not entries:
            return make_tool_success(kind=self.name, output="No memories saved for this project")

        grouped: dict[MemoryCategory, list[MemoryEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.category, []).append(entry)

        lines: list[str] = []
        for category in MemoryCategory:
            items = grouped.get(category)
            if not items:
                continue
            items.sort(key=lambda e: _IMPORTANCE_RANK[e.importance])
            lines.append(f"{category.display_name}:")
            for entry in items[:MAX_LISTED_PER_CATEGORY]:
                value = entry.value
                if len(value) > MAX_LISTED_VALUE_CHARS:
                    value = value[:MAX_LISTED_VALUE_CHARS] + "..."
                lines.append(f"  • {entry.key}: {value}")
        return make_tool_success(
            kind=self.name,
            output="\n".join(lines),
            data={"count": len(entries)},
        )


class DeleteMemoryTool(PortTool):
    name: str = "delete_memory"
    description: str = "Delete a saved memory by key."
    args_schema: Type[BaseModel] = MemoryKeyInput
    memory: Any = None

    def _run(self, key: str, category: str | None = None) -> ToolResult:
        cat = parse_category(category).value if category else None
        if self.memory.delete(key, cat):
            return make_tool_success(kind=self.name, output=f"Memory deleted: {key}")
        return make_tool_success(kind=self.name, output=f"No memory found for key: {key}")


class UpdateMemoryTool(PortTool):
    name: str = "update_memory"
    description: str = "Update (or create) a saved memory."
    args_schema: Type[BaseModel] = UpdateMemoryInput
    memory: Any = None

    def _run(
        self,
        key: str,
        value: str,
        category: str | None = None,
        importance: str | None = None,
    ) -> ToolResult:
        existing = self.memory.recall(key)
        entry = MemoryEntry(
            key=key,
            value=value,
            category=parse_category(category) if category else (
                existing.category if existing else MemoryCategory.GENERAL_NOTES
            ),
            importance=parse_importance(importance) if importance else (
                existing.importance if existing else MemoryImportance.MEDIUM
            ),
            tags=existing.tags if existing else [],
            related_files=existing.related_files if existing else [],
        )
        self.memory.save(entry)
        verb = "updated" if existing else "created"
        return make_tool_success(
            kind=self.name,
            output=f"Memory {verb}: {key}",
            data={"key": key, "category": entry.category.value},
        )


# ---------------------------------------------------------------------------
# Auto-learning
# ---------------------------------------------------------------------------

_DEFINITION_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?"
    r"(?:def|class|function|interface|struct|enum|fn|func)\s+([A-Za-z_]\w*)",
    re.MULTILINE,
)
MAX_OUTLINE_NAMES = 20


def outline(content: str) -> str:
    """One-line description of a source file: size and top definitions."""
    lines = len(content.splitlines())
    names: list[str] = []
    for match in _DEFINITION_RE.finditer(content):
        if match.group(1) not in names:
            names.append(match.group(1))
    text = f"{lines} lines"
    if names:
        text += "; defines " + ", ".join(names[:MAX_OUTLINE_NAMES])
        if len(names) > MAX_OUTLINE_NAMES:
            text += f" and {len(names) - MAX_OUTLINE_NAMES} more"
    return text


class FileOutlineLearner:
    """:class:`~toolloop.tools.ports.Learner` that remembers what written files define."""

    def __init__(self, memory: Any) -> None:
        self.memory = memory

    async def learn(self, path: str, content: str) -> None:
        entry = MemoryEntry(
            key=f"file:{path}",
            value=outline(content),
            category=MemoryCategory.PROJECT_STRUCTURE,
            importance=MemoryImportance.LOW,
            related_files=[path],
        )
        await asyncio.to_thread(self.memory.save, entry)
