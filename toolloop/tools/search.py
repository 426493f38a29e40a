from __future__ import annotations

import fnmatch
import re
from posixpath import basename
from typing import Any, Type

from pydantic import BaseModel, Field

from ._base import PortTool, pluralize
from .result_schema import (
    FileChange,
    FileChangeType,
    ToolResult,
    make_tool_error,
    make_tool_success,
)

MAX_SEARCH_RESULTS = 200
_GROUP_REF_RE = re.compile(r"\$(\d+)")


def _expand_braces(pattern: str) -> list[str]:
    """Expand bash-style brace patterns (e.g. ``*.{py,txt}``) into separate globs.

    ``fnmatch`` does not support brace expansion, so this helper recursively
    expands ``{a,b,c}`` groups into individual patterns.
    """
    match = re.search(r"\{([^{}]+)\}", pattern)
    if not match:
        return [pattern]
    prefix = pattern[: match.start()]
    suffix = pattern[match.end() :]
    results: list[str] = []
    for alt in match.group(1).split(","):
        results.extend(_expand_braces(prefix + alt.strip() + suffix))
    return results


def matches_pattern(path: str, pattern: str | None) -> bool:
    """Case-insensitive glob match against the file name (or full path if the pattern has a slash)."""
    if not pattern:
        return True
    target = path if "/" in pattern else basename(path)
    return any(
        fnmatch.fnmatch(target.lower(), p.lower()) for p in _expand_braces(pattern)
    )


def _file_change(path: str, before: str | None, after: str) -> FileChange:
    change_type = FileChangeType.MODIFIED if before is not None else FileChangeType.CREATED
    return FileChange(path=path, change_type=change_type, old_content=before, new_content=after)


def _try_read(store: Any, path: str) -> str | None:
    try:
        return store.read_file(path)
    except (OSError, ValueError):
        return None


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size // 1024} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MB"
    return f"{size / (1024 * 1024 * 1024):.2f} GB"


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

class SearchFilesInput(BaseModel):
    query: str = Field(description="Text to search for (case-insensitive).")
    file_pattern: str | None = Field(
        default=None, description="Optional glob on file names, e.g. '*.py' or '*.{js,ts}'."
    )


class SearchReplaceInput(BaseModel):
    search: str = Field(description="Exact text to find.")
    replace: str = Field(description="Replacement text.")
    file_pattern: str | None = Field(default=None, description="Optional glob on file names.")
    dry_run: bool = Field(default=False, description="Report matches without writing.")


class PatchFileInput(BaseModel):
    path: str = Field(description="File to patch.")
    old_content: str = Field(description="Exact text currently in the file. Must be unique.")
    new_content: str = Field(description="Text to put in its place.")


class InsertAtLineInput(BaseModel):
    path: str = Field(description="File to modify.")
    line_number: int = Field(description="1-based line to insert before.")
    content: str = Field(description="Text to insert.")


class FileInfoInput(BaseModel):
    path: str = Field(description="File or folder to describe.")


class RegexReplaceInput(BaseModel):
    path: str = Field(description="File to modify.")
    pattern: str = Field(description="Regular expression.")
    replacement: str = Field(description="Replacement; $1 or \\1 refer to groups.")
    flags: str = Field(
        default="g",
        description="Any of g (all matches, default), 1 (first only), i (ignore case), m (multiline), s (dotall).",
    )


class ContentInput(BaseModel):
    path: str = Field(description="File to modify; created if missing.")
    content: str = Field(description="Text to add.")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class SearchFilesTool(PortTool):
    """Case-insensitive text search across the project."""

    name: str = "search_files"
    description: str = (
        "Search file contents for a text query (case-insensitive). "
        "Returns matches as 'path:line: text'."
    )
    args_schema: Type[BaseModel] = SearchFilesInput
    store: Any = None

    def _run(self, query: str, file_pattern: str | None = None) -> ToolResult:
        needle = query.lower()
        results: list[str] = []
        truncated = False
        for path in self.store.all_files():
            if not matches_pattern(path, file_pattern):
                continue
            content = _try_read(self.store, path)
            if content is None:
                continue
            for line_no, line in enumerate(content.splitlines(), start=1):
                if needle in line.lower():
                    if len(results) >= MAX_SEARCH_RESULTS:
                        truncated = True
                        break
                    results.append(f"{path}:{line_no}: {line.strip()}")
            if truncated:
                break

        if not results:
            return make_tool_success(kind=self.name, output=f"No matches found for: {query}")
        output = "\n".join(results)
        if truncated:
            output += f"\n... (results truncated at {MAX_SEARCH_RESULTS} matches)"
        return make_tool_success(
            kind=self.name,
            output=output,
            data={"matches": len(results), "truncated": truncated},
        )


class SearchReplaceTool(PortTool):
    """Literal find-and-replace across every matching file."""

    name: str = "search_replace"
    description: str = (
        "Replace every occurrence of a literal string across project files. "
        "Use dry_run to preview."
    )
    args_schema: Type[BaseModel] = SearchReplaceInput
    store: Any = None

    def _run(
        self,
        search: str,
        replace: str,
        file_pattern: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        if not search:
            return make_tool_error(kind=self.name, error="search must not be empty")

        per_file: list[tuple[str, int]] = []
        changes: list[FileChange] = []
        for path in self.store.all_files():
            if not matches_pattern(path, file_pattern):
                continue
            content = _try_read(self.store, path)
            if content is None or search not in content:
                continue
            count = content.count(search)
            per_file.append((path, count))
            if not dry_run:
                updated = content.replace(search, replace)
                self.store.write_file(path, updated)
                changes.append(_file_change(path, content, updated))

        if not per_file:
            return make_tool_success(kind=self.name, output=f"No matches found for: {search}")

        total = sum(count for _, count in per_file)
        action = "Would replace" if dry_run else "Replaced"
        lines = [
            f"{action} {pluralize('occurrence', total)} in {pluralize('file', len(per_file))}:"
        ]
        lines.extend(f"  • {path}: {pluralize('replacement', count)}" for path, count in per_file)
        return make_tool_success(
            kind=self.name,
            output="\n".join(lines),
            data={"files_modified": len(per_file), "total_replacements": total, "dry_run": dry_run},
            changes=changes,
        )


class PatchFileTool(PortTool):
    """Replace one unique snippet in a file."""

    name: str = "patch_file"
    description: str = (
        "Replace an exact, unique snippet of a file with new content. "
        "Read the file first so old_content matches exactly."
    )
    args_schema: Type[BaseModel] = PatchFileInput
    store: Any = None

    def _run(self, path: str, old_content: str, new_content: str) -> ToolResult:
        try:
            before = self.store.read_file(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"Failed to patch file: file not found: {path}")

        count = before.count(old_content) if old_content else 0
        if count == 0:
            return make_tool_error(
                kind=self.name, error=f"Failed to patch file: old_content not found in {path}"
            )
        if count > 1:
            return make_tool_error(
                kind=self.name,
                error=(
                    f"Failed to patch file: old_content appears {count} times in {path}. "
                    "Include more surrounding context to make it unique."
                ),
            )
        after = before.replace(old_content, new_content, 1)
        self.store.write_file(path, after)
        return make_tool_success(
            kind=self.name,
            output=f"File patched successfully: {path}",
            changes=[_file_change(path, before, after)],
        )


class InsertAtLineTool(PortTool):
    name: str = "insert_at_line"
    description: str = "Insert text before a 1-based line number; creates the file if missing."
    args_schema: Type[BaseModel] = InsertAtLineInput
    store: Any = None

    def _run(self, path: str, line_number: int, content: str) -> ToolResult:
        before = _try_read(self.store, path)
        if before is None:
            self.store.create_file(path, content)
            return make_tool_success(
                kind=self.name,
                output=f"Created file {path} with content",
                changes=[_file_change(path, None, content)],
            )

        lines = before.split("\n")
        if line_number <= 0:
            index = 0
        elif line_number > len(lines):
            index = len(lines)
        else:
            index = line_number - 1
        inserted = content.split("\n")
        lines[index:index] = inserted
        after = "\n".join(lines)
        self.store.write_file(path, after)
        return make_tool_success(
            kind=self.name,
            output=f"Inserted {len(inserted)} line(s) at line {line_number} in {path}",
            changes=[_file_change(path, before, after)],
        )


class GetFileInfoTool(PortTool):
    name: str = "get_file_info"
    description: str = "Show size, line count and modification time of a file."
    args_schema: Type[BaseModel] = FileInfoInput
    store: Any = None

    def _run(self, path: str) -> ToolResult:
        try:
            info = self.store.file_info(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"File not found: {path}")

        lines = [
            f"File: {path}",
            f"Size: {format_file_size(info['size'])}",
            f"Extension: {info.get('extension') or '(none)'}",
        ]
        if "lines" in info:
            lines.append(f"Lines: {info['lines']}")
            lines.append(f"Characters: {info['characters']}")
        lines.append(f"Last modified: {info['modified']}")
        lines.append(f"Type: {'Directory' if info.get('is_dir') else 'File'}")
        lines.append(f"Readable: {str(info.get('readable', False)).lower()}")
        lines.append(f"Writable: {str(info.get('writable', False)).lower()}")
        return make_tool_success(kind=self.name, output="\n".join(lines), data=info)


class RegexReplaceTool(PortTool):
    name: str = "regex_replace"
    description: str = "Replace regular-expression matches within one file."
    args_schema: Type[BaseModel] = RegexReplaceInput
    store: Any = None

    def _run(self, path: str, pattern: str, replacement: str, flags: str = "g") -> ToolResult:
        try:
            before = self.store.read_file(path)
        except FileNotFoundError:
            return make_tool_error(kind=self.name, error=f"Failed to read file: file not found: {path}")

        re_flags = 0
        if "i" in flags:
            re_flags |= re.IGNORECASE
        if "m" in flags:
            re_flags |= re.MULTILINE
        if "s" in flags:
            re_flags |= re.DOTALL
        try:
            regex = re.compile(pattern, re_flags)
        except re.error as exc:
            return make_tool_error(kind=self.name, error=f"Invalid regex pattern: {exc}")

        match_count = sum(1 for _ in regex.finditer(before))
        if match_count == 0:
            return make_tool_success(kind=self.name, output=f"No matches found for pattern: {pattern}")

        template = _GROUP_REF_RE.sub(r"\\g<\1>", replacement)
        replace_all = "g" in flags or "1" not in flags
        try:
            after = regex.sub(template, before, count=0 if replace_all else 1)
        except (re.error, IndexError) as exc:
            return make_tool_error(kind=self.name, error=f"Invalid replacement: {exc}")

        replaced = match_count if replace_all else 1
        self.store.write_file(path, after)
        return make_tool_success(
            kind=self.name,
            output=f"Replaced {replaced} match(es) in {path}",
            changes=[_file_change(path, before, after)],
        )


class AppendToFileTool(PortTool):
    name: str = "append_to_file"
    description: str = "Append text to the end of a file; creates the file if missing."
    args_schema: Type[BaseModel] = ContentInput
    store: Any = None

    def _run(self, path: str, content: str) -> ToolResult:
        before = _try_read(self.store, path)
        after = content if before is None else before + content
        self.store.write_file(path, after)
        return make_tool_success(
            kind=self.name,
            output=f"Content appended to {path}",
            changes=[_file_change(path, before, after)],
        )


class PrependToFileTool(PortTool):
    name: str = "prepend_to_file"
    description: str = "Insert text at the start of a file; creates the file if missing."
    args_schema: Type[BaseModel] = ContentInput
    store: Any = None

    def _run(self, path: str, content: str) -> ToolResult:
        before = _try_read(self.store, path)
        after = content if before is None else content + before
        self.store.write_file(path, after)
        return make_tool_success(
            kind=self.name,
            output=f"Content prepended to {path}",
            changes=[_file_change(path, before, after)],
        )
