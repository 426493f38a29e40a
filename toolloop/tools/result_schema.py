from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FileChangeType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    MOVED = "moved"


class FileChange(BaseModel):
    """A workspace mutation reported to the observer for undo recording.

    For renames, copies and moves ``path`` is the source and ``new_content``
    carries the destination path.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    change_type: FileChangeType
    old_content: str | None = None
    new_content: str | None = None


class ToolResult(BaseModel):
    """Uniform tool outcome.

    A failure always has ``success=False``, an empty ``output`` and a
    non-empty ``error``.  Callers must check ``success`` rather than infer it
    from ``output``.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    output: str = ""
    error: str | None = None
    kind: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    changes: tuple[FileChange, ...] = ()

    def model_text(self) -> str:
        """Text fed back to the model as the tool-result message."""
        if self.success:
            return self.output
        return f"Error: {self.error}"


def make_tool_result(
    *,
    kind: str,
    output: str,
    success: bool,
    error: str | None = None,
    data: dict[str, Any] | None = None,
    changes: tuple[FileChange, ...] | list[FileChange] = (),
) -> ToolResult:
    """Build a normalized tool result.

    Failures drop ``output`` and always carry an error message.
    """
    if success:
        return ToolResult(
            success=True,
            output=output,
            kind=kind,
            data=data or {},
            changes=tuple(changes),
        )
    return ToolResult(
        success=False,
        output="",
        error=error or output or "tool failed",
        kind=kind,
        data=data or {},
    )


def make_tool_success(
    *,
    kind: str,
    output: str,
    data: dict[str, Any] | None = None,
    changes: tuple[FileChange, ...] | list[FileChange] = (),
) -> ToolResult:
    return make_tool_result(
        kind=kind,
        output=output,
        success=True,
        data=data,
        changes=changes,
    )


def make_tool_error(
    *,
    kind: str,
    error: str,
    data: dict[str, Any] | None = None,
) -> ToolResult:
    return make_tool_result(
        kind=kind,
        output="",
        success=False,
        error=error,
        data=data,
    )
