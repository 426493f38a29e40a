"""File operation tools backed by a ProjectStore."""

from __future__ import annotations

from typing import Any, Type

from pydantic import BaseModel, Field

from ._base import PortTool
from .ports import TreeNode
from .result_schema import (
    FileChange,
    FileChangeType,
    ToolResult,
    make_tool_error,
    make_tool_success,
)


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

class PathInput(BaseModel):
    path: str = Field(description="Path relative to the project root.")


class OptionalPathInput(BaseModel):
    path: str = Field(default="", description="Directory to list. Empty means the project root.")


class WriteInput(BaseModel):
    path: str = Field(description="Path of the file to write.")
    content: str = Field(description="Full content of the file.")


class RenameInput(BaseModel):
    old_path: str = Field(description="Current path.")
    new_path: str = Field(description="New path.")


class TransferInput(BaseModel):
    source_path: str = Field(description="Path to copy or move from.")
    destination_path: str = Field(description="Path to copy or move to.")


def _try_read(store: Any, path: str) -> str | None:
    try:
        return store.read_file(path)
    except (OSError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class ReadFileTool(PortTool):
    """Read the full contents of a project file."""

    name: str = "read_file"
    description: str = "Read the contents of a file in the project."
    args_schema: Type[BaseModel] = PathInput
    store: Any = None

    def _run(self, path: str) -> ToolResult:
        try:
            content = self.store.read_file(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"Failed to read file: file not found: {path}")
        except IsADirectoryError:
            return make_tool_error(
                kind=self.name,
                error=f"Failed to read file: path is a directory, not a file: {path}",
            )
        return make_tool_success(kind=self.name, output=content, data={"path": path})


class WriteFileTool(PortTool):
    """Create or overwrite a project file."""

    name: str = "write_file"
    description: str = (
        "Create a new file or overwrite an existing one with the given "
        "content. Parent directories are created automatically."
    )
    args_schema: Type[BaseModel] = WriteInput
    store: Any = None

    def _run(self, path: str, content: str) -> ToolResult:
        old_content = _try_read(self.store, path)
        if old_content is None:
            try:
                self.store.create_file(path, content)
            except FileExistsError:
                # Exists but was unreadable: overwrite.
                self.store.write_file(path, content)
                change = FileChange(
                    path=path, change_type=FileChangeType.MODIFIED, new_content=content
                )
                return make_tool_success(
                    kind=self.name,
                    output=f"File written successfully: {path}",
                    data={"path": path, "chars_written": len(content)},
                    changes=[change],
                )
            change = FileChange(path=path, change_type=FileChangeType.CREATED, new_content=content)
            return make_tool_success(
                kind=self.name,
                output=f"File created successfully: {path}",
                data={"path": path, "chars_written": len(content)},
                changes=[change],
            )

        self.store.write_file(path, content)
        change = FileChange(
            path=path,
            change_type=FileChangeType.MODIFIED,
            old_content=old_content,
            new_content=content,
        )
        return make_tool_success(
            kind=self.name,
            output=f"File updated successfully: {path}",
            data={"path": path, "chars_written": len(content)},
            changes=[change],
        )


class ListFilesTool(PortTool):
    """Show the project tree."""

    name: str = "list_files"
    description: str = "List files and folders in the project as a tree."
    args_schema: Type[BaseModel] = OptionalPathInput
    store: Any = None

    def _run(self, path: str = "") -> ToolResult:
        try:
            nodes = self.store.list_tree(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"Failed to list files: path not found: {path}")
        except NotADirectoryError:
            return make_tool_error(kind=self.name, error=f"Failed to list files: not a directory: {path}")
        output = render_tree(nodes)
        return make_tool_success(kind=self.name, output=output or "Directory is empty")


def render_tree(nodes: list[TreeNode] | tuple[TreeNode, ...], indent: str = "") -> str:
    lines: list[str] = []
    for node in nodes:
        if node.is_dir:
            lines.append(f"{indent}📁 {node.name}/")
            child = render_tree(node.children, indent + "  ")
            if child:
                lines.append(child)
        else:
            lines.append(f"{indent}📄 {node.name}")
    return "\n".join(lines)


class DeleteFileTool(PortTool):
    name: str = "delete_file"
    description: str = "Delete a file or folder from the project."
    args_schema: Type[BaseModel] = PathInput
    store: Any = None

    def _run(self, path: str) -> ToolResult:
        old_content = _try_read(self.store, path)
        try:
            self.store.delete_file(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"Failed to delete file: file not found: {path}")
        change = FileChange(path=path, change_type=FileChangeType.DELETED, old_content=old_content)
        return make_tool_success(
            kind=self.name,
            output=f"File deleted successfully: {path}",
            changes=[change],
        )


class CreateFolderTool(PortTool):
    name: str = "create_folder"
    description: str = "Create a folder (and any missing parents)."
    args_schema: Type[BaseModel] = PathInput
    store: Any = None

    def _run(self, path: str) -> ToolResult:
        try:
            self.store.create_folder(path)
        except FileExistsError:
            return make_tool_error(
                kind=self.name, error=f"Failed to create folder: a file exists at {path}"
            )
        return make_tool_success(kind=self.name, output=f"Folder created successfully: {path}")


class RenameFileTool(PortTool):
    name: str = "rename_file"
    description: str = "Rename a file or folder."
    args_schema: Type[BaseModel] = RenameInput
    store: Any = None

    def _run(self, old_path: str, new_path: str) -> ToolResult:
        try:
            self.store.rename_file(old_path, new_path)
        except (FileNotFoundError, FileExistsError) as exc:
            return make_tool_error(kind=self.name, error=f"Failed to rename file: {exc}")
        change = FileChange(path=old_path, change_type=FileChangeType.RENAMED, new_content=new_path)
        return make_tool_success(
            kind=self.name,
            output=f"File renamed from '{old_path}' to '{new_path}'",
            changes=[change],
        )


class CopyFileTool(PortTool):
    name: str = "copy_file"
    description: str = "Copy a file or folder to a new location."
    args_schema: Type[BaseModel] = TransferInput
    store: Any = None

    def _run(self, source_path: str, destination_path: str) -> ToolResult:
        try:
            self.store.copy_file(source_path, destination_path)
        except (FileNotFoundError, FileExistsError) as exc:
            return make_tool_error(kind=self.name, error=f"Failed to copy file: {exc}")
        change = FileChange(
            path=destination_path,
            change_type=FileChangeType.COPIED,
            old_content=source_path,
        )
        return make_tool_success(
            kind=self.name,
            output=f"File copied from '{source_path}' to '{destination_path}'",
            changes=[change],
        )


class MoveFileTool(PortTool):
    name: str = "move_file"
    description: str = "Move a file or folder to a new location."
    args_schema: Type[BaseModel] = TransferInput
    store: Any = None

    def _run(self, source_path: str, destination_path: str) -> ToolResult:
        try:
            self.store.move_file(source_path, destination_path)
        except (FileNotFoundError, FileExistsError) as exc:
            return make_tool_error(kind=self.name, error=f"Failed to move file: {exc}")
        change = FileChange(
            path=source_path,
            change_type=FileChangeType.MOVED,
            new_content=destination_path,
        )
        return make_tool_success(
            kind=self.name,
            output=f"File moved from '{source_path}' to '{destination_path}'",
            changes=[change],
        )
