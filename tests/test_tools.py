"""Tests for built-in tools."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from toolloop.tools import create_all_tools
from toolloop.tools._paths import path_violations, resolve_workspace_path as _resolve_path
from toolloop.tools.control import AskUserTool, FinishTaskTool
from toolloop.tools.file_ops import (
    CopyFileTool,
    CreateFolderTool,
    DeleteFileTool,
    ListFilesTool,
    MoveFileTool,
    ReadFileTool,
    RenameFileTool,
    WriteFileTool,
)
from toolloop.tools.memory import (
    DeleteMemoryTool,
    FileOutlineLearner,
    ListMemoriesTool,
    MemoryCategory,
    MemoryImportance,
    RecallMemoryTool,
    SaveMemoryTool,
    UpdateMemoryTool,
    outline,
    parse_category,
    parse_importance,
)
from toolloop.tools.result_schema import FileChangeType, make_tool_result
from toolloop.tools.search import (
    AppendToFileTool,
    GetFileInfoTool,
    InsertAtLineTool,
    PatchFileTool,
    PrependToFileTool,
    RegexReplaceTool,
    SearchFilesTool,
    SearchReplaceTool,
    _expand_braces,
    format_file_size,
    matches_pattern,
)
from toolloop.tools.todo import CreateTodoTool, ListTodosTool, TodoItem, TodoStatus, UpdateTodoTool
from toolloop.tools.workspace import JsonMemoryStore, JsonTodoStore, WorkspaceStore
from .conftest import RecordingObserver
from .result_helpers import _rchanges, _rdata, _rerror, _rtext


@pytest.fixture
def store(workspace):
    return WorkspaceStore(workspace)


def _write(workspace, rel, content):
    path = Path(workspace) / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

class TestResolvePath:
    def test_relative_path(self, workspace):
        result = _resolve_path("foo.txt", workspace)
        assert str(result) == str(Path(workspace).resolve() / "foo.txt")

    def test_absolute_path_inside_workspace(self, workspace):
        abs_path = os.path.join(workspace, "bar.txt")
        assert str(_resolve_path(abs_path, workspace)) == str(Path(abs_path).resolve())

    def test_path_traversal_blocked(self, workspace):
        with pytest.raises(ValueError, match="outside the workspace"):
            _resolve_path("../../etc/passwd", workspace)

    def test_sibling_prefix_blocked(self, workspace):
        with pytest.raises(ValueError):
            _resolve_path(workspace + "2/file.txt", workspace)

    def test_violations_are_aggregated(self, workspace):
        violations = path_violations(
            {"source_path": "../a", "destination_path": "/etc/b", "content": "../x"}, workspace
        )
        assert len(violations) == 2
        assert violations[0].startswith("source_path:")
        assert violations[1].startswith("destination_path:")

    def test_nul_byte(self, workspace):
        assert path_violations({"path": "a\x00b"}, workspace) == ["path: contains a NUL byte"]


# ---------------------------------------------------------------------------
# ToolResult
# ---------------------------------------------------------------------------

class TestToolResult:
    def test_failure_shape(self):
        result = make_tool_result(kind="x", output="partial", success=False)
        assert result.success is False
        assert result.output == ""
        assert result.error == "partial"
        assert result.model_text() == "Error: partial"

    def test_success_text(self):
        result = make_tool_result(kind="x", output="ok", success=True)
        assert result.model_text() == "ok"
        assert result.error is None


# ---------------------------------------------------------------------------
# File operations
# ---------------------------------------------------------------------------

class TestFileTools:
    def test_read(self, workspace, store):
        _write(workspace, "a.txt", "hello")
        result = ReadFileTool(store=store)._run("a.txt")
        assert _rtext(result) == "hello"

    def test_read_missing(self, store):
        result = ReadFileTool(store=store)._run("nope.txt")
        assert result.success is False
        assert _rerror(result) == "Failed to read file: file not found: nope.txt"

    def test_read_directory(self, workspace, store):
        os.makedirs(os.path.join(workspace, "d"))
        result = ReadFileTool(store=store)._run("d")
        assert "path is a directory" in _rerror(result)

    def test_write_creates_then_updates(self, workspace, store):
        tool = WriteFileTool(store=store)
        created = tool._run("src/app.py", "v1")
        assert _rtext(created) == "File created successfully: src/app.py"
        assert _rchanges(created) == [("src/app.py", FileChangeType.CREATED)]

        updated = tool._run("src/app.py", "v2")
        assert _rtext(updated) == "File updated successfully: src/app.py"
        [change] = updated.changes
        assert (change.old_content, change.new_content) == ("v1", "v2")
        assert Path(workspace, "src/app.py").read_text() == "v2"

    def test_list_tree(self, workspace, store):
        _write(workspace, "src/main.py", "")
        _write(workspace, "README.md", "")
        _write(workspace, ".git/HEAD", "")
        output = _rtext(ListFilesTool(store=store)._run())
        assert output.splitlines() == ["📁 src/", "  📄 main.py", "📄 README.md"]

    def test_list_empty_and_missing(self, store):
        assert _rtext(ListFilesTool(store=store)._run()) == "Directory is empty"
        assert "path not found" in _rerror(ListFilesTool(store=store)._run("missing"))

    def test_delete_records_old_content(self, workspace, store):
        _write(workspace, "a.txt", "bye")
        result = DeleteFileTool(store=store)._run("a.txt")
        [change] = result.changes
        assert change.change_type is FileChangeType.DELETED
        assert change.old_content == "bye"
        assert not Path(workspace, "a.txt").exists()

    def test_delete_missing(self, store):
        assert "file not found" in _rerror(DeleteFileTool(store=store)._run("a.txt"))

    def test_create_folder(self, workspace, store):
        result = CreateFolderTool(store=store)._run("a/b")
        assert result.success
        assert Path(workspace, "a/b").is_dir()

    def test_rename(self, workspace, store):
        _write(workspace, "old.txt", "x")
        result = RenameFileTool(store=store)._run("old.txt", "new.txt")
        assert _rtext(result) == "File renamed from 'old.txt' to 'new.txt'"
        assert _rchanges(result) == [("old.txt", FileChangeType.RENAMED)]
        assert Path(workspace, "new.txt").exists()

    def test_rename_onto_existing(self, workspace, store):
        _write(workspace, "a.txt", "a")
        _write(workspace, "b.txt", "b")
        assert _rerror(RenameFileTool(store=store)._run("a.txt", "b.txt")).startswith(
            "Failed to rename file: destination already exists"
        )

    def test_copy_and_move(self, workspace, store):
        _write(workspace, "a.txt", "data")
        copied = CopyFileTool(store=store)._run("a.txt", "copy/a.txt")
        assert _rchanges(copied) == [("copy/a.txt", FileChangeType.COPIED)]
        moved = MoveFileTool(store=store)._run("a.txt", "moved.txt")
        assert _rchanges(moved) == [("a.txt", FileChangeType.MOVED)]
        assert Path(workspace, "copy/a.txt").read_text() == "data"
        assert Path(workspace, "moved.txt").read_text() == "data"
        assert not Path(workspace, "a.txt").exists()

    def test_copy_missing_source(self, store):
        assert "file not found" in _rerror(CopyFileTool(store=store)._run("x", "y"))


# ---------------------------------------------------------------------------
# Search and edit
# ---------------------------------------------------------------------------

class TestPatterns:
    def test_expand_braces(self):
        assert _expand_braces("*.{py,txt}") == ["*.py", "*.txt"]
        assert _expand_braces("plain") == ["plain"]

    def test_matches_pattern(self):
        assert matches_pattern("src/App.PY", "*.py")
        assert matches_pattern("src/a.ts", "*.{js,ts}")
        assert not matches_pattern("src/a.ts", "*.py")
        assert matches_pattern("src/a.ts", "src/*")
        assert matches_pattern("anything", None)

    def test_format_file_size(self):
        assert format_file_size(10) == "10 B"
        assert format_file_size(2048) == "2 KB"
        assert format_file_size(3 * 1024 * 1024) == "3.00 MB"


class TestSearchTools:
    def test_search_files(self, workspace, store):
        _write(workspace, "a.py", "import os\nTODO: fix\n")
        _write(workspace, "b.txt", "todo list\n")
        output = _rtext(SearchFilesTool(store=store)._run("todo", "*.py"))
        assert output == "a.py:2: TODO: fix"

    def test_search_no_match(self, workspace, store):
        _write(workspace, "a.py", "x")
        assert _rtext(SearchFilesTool(store=store)._run("zzz")) == "No matches found for: zzz"

    def test_search_truncates(self, workspace, store):
        _write(workspace, "big.txt", "hit\n" * 250)
        result = SearchFilesTool(store=store)._run("hit")
        assert _rdata(result) == {"matches": 200, "truncated": True}
        assert _rtext(result).endswith("(results truncated at 200 matches)")

    def test_search_replace(self, workspace, store):
        _write(workspace, "a.py", "foo foo")
        _write(workspace, "b.py", "foo")
        result = SearchReplaceTool(store=store)._run("foo", "bar")
        assert _rtext(result).splitlines() == [
            "Replaced 3 occurrences in 2 files:",
            "  • a.py: 2 replacements",
            "  • b.py: 1 replacement",
        ]
        assert Path(workspace, "a.py").read_text() == "bar bar"
        assert len(result.changes) == 2

    def test_search_replace_dry_run(self, workspace, store):
        _write(workspace, "a.py", "foo")
        result = SearchReplaceTool(store=store)._run("foo", "bar", dry_run=True)
        assert _rtext(result).startswith("Would replace 1 occurrence in 1 file:")
        assert result.changes == ()
        assert Path(workspace, "a.py").read_text() == "foo"

    def test_patch_file(self, workspace, store):
        _write(workspace, "a.py", "x = 1\ny = 2\n")
        result = PatchFileTool(store=store)._run("a.py", "y = 2", "y = 3")
        assert _rtext(result) == "File patched successfully: a.py"
        assert Path(workspace, "a.py").read_text() == "x = 1\ny = 3\n"

    def test_patch_requires_unique_match(self, workspace, store):
        _write(workspace, "a.py", "x\nx\n")
        tool = PatchFileTool(store=store)
        assert "appears 2 times" in _rerror(tool._run("a.py", "x", "y"))
        assert _rerror(tool._run("a.py", "z", "y")) == "Failed to patch file: old_content not found in a.py"

    def test_insert_at_line(self, workspace, store):
        _write(workspace, "a.txt", "one\nthree")
        result = InsertAtLineTool(store=store)._run("a.txt", 2, "two")
        assert _rtext(result) == "Inserted 1 line(s) at line 2 in a.txt"
        assert Path(workspace, "a.txt").read_text() == "one\ntwo\nthree"

    def test_insert_creates_file(self, workspace, store):
        result = InsertAtLineTool(store=store)._run("new.txt", 5, "hi")
        assert _rchanges(result) == [("new.txt", FileChangeType.CREATED)]

    def test_get_file_info(self, workspace, store):
        _write(workspace, "a.py", "a\nb\n")
        output = _rtext(GetFileInfoTool(store=store)._run("a.py"))
        assert "Size: 4 B" in output
        assert "Lines: 2" in output
        assert "Type: File" in output
        assert _rerror(GetFileInfoTool(store=store)._run("x.py")) == "File not found: x.py"

    def test_regex_replace(self, workspace, store):
        _write(workspace, "a.txt", "v1 v2 V3")
        tool = RegexReplaceTool(store=store)
        result = tool._run("a.txt", r"v(\d)", "ver$1", "gi")
        assert _rtext(result) == "Replaced 3 match(es) in a.txt"
        assert Path(workspace, "a.txt").read_text() == "ver1 ver2 ver3"

    def test_regex_first_only(self, workspace, store):
        _write(workspace, "a.txt", "a a a")
        RegexReplaceTool(store=store)._run("a.txt", "a", "b", "1")
        assert Path(workspace, "a.txt").read_text() == "b a a"

    def test_regex_invalid(self, workspace, store):
        _write(workspace, "a.txt", "x")
        assert _rerror(RegexReplaceTool(store=store)._run("a.txt", "(", "y")).startswith(
            "Invalid regex pattern:"
        )

    def test_append_and_prepend(self, workspace, store):
        AppendToFileTool(store=store)._run("log.txt", "b")
        AppendToFileTool(store=store)._run("log.txt", "c")
        PrependToFileTool(store=store)._run("log.txt", "a")
        assert Path(workspace, "log.txt").read_text() == "abc"


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

class TestMemoryTools:
    def test_synonyms(self):
        assert parse_category("styles") is MemoryCategory.STYLING_PATTERNS
        assert parse_category("nonsense") is MemoryCategory.GENERAL_NOTES
        assert parse_importance("important") is MemoryImportance.HIGH
        assert parse_importance(None) is MemoryImportance.MEDIUM

    def test_save_recall_delete(self, workspace):
        memory = JsonMemoryStore(workspace)
        saved = SaveMemoryTool(memory=memory)._run("db", "postgres 16", category="config", tags="a, b")
        assert _rtext(saved) == "Memory saved: db (category: Framework Config)"

        assert _rtext(RecallMemoryTool(memory=memory)._run("db")) == "postgres 16"
        assert _rtext(RecallMemoryTool(memory=memory)._run("nope")) == "No memory found for key: nope"

        assert _rtext(DeleteMemoryTool(memory=memory)._run("db")) == "Memory deleted: db"
        assert memory.list_all() == []

    def test_update_keeps_existing_fields(self, workspace):
        memory = JsonMemoryStore(workspace)
        SaveMemoryTool(memory=memory)._run("k", "v", category="errors", importance="critical")
        result = UpdateMemoryTool(memory=memory)._run("k", "v2")
        assert _rtext(result) == "Memory updated: k"
        entry = memory.recall("k")
        assert entry.value == "v2"
        assert entry.category is MemoryCategory.ERROR_SOLUTIONS
        assert entry.importance is MemoryImportance.CRITICAL

    def test_list_grouped_by_importance(self, workspace):
        memory = JsonMemoryStore(workspace)
        tool = SaveMemoryTool(memory=memory)
        tool._run("low", "l", category="tasks", importance="low")
        tool._run("crit", "c" * 150, category="tasks", importance="critical")
        lines = _rtext(ListMemoriesTool(memory=memory)._run()).splitlines()
        assert lines[0] == "Task History:"
        assert lines[1] == "  • crit: " + "c" * 100 + "..."
        assert lines[2] == "  • low: l"

    def test_list_empty(self, workspace):
        output = _rtext(ListMemoriesTool(memory=JsonMemoryStore(workspace))._run())
        assert output == "No memories saved for this project"

    def test_persistence_file(self, workspace):
        memory = JsonMemoryStore(workspace)
        SaveMemoryTool(memory=memory)._run("k", "v")
        assert Path(workspace, ".toolloop", "memories.json").exists()
        assert JsonMemoryStore(workspace).recall("k").value == "v"

    def test_outline(self):
        text = outline("class A:\n    def run(self):\n        pass\nasync def main():\n    pass\n")
        assert text == "5 lines; defines A, run, main"
        assert outline("") == "0 lines"

    async def test_learner_saves_project_structure(self, workspace):
        memory = JsonMemoryStore(workspace)
        await FileOutlineLearner(memory).learn("src/app.py", "def main():\n    pass\n")
        entry = memory.recall("file:src/app.py")
        assert entry.category is MemoryCategory.PROJECT_STRUCTURE
        assert entry.related_files == ["src/app.py"]
        assert entry.value == "2 lines; defines main"


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------

class TestTodoTools:
    def test_create_update_list(self, workspace):
        todos = JsonTodoStore(workspace)
        observer = RecordingObserver()
        created = CreateTodoTool(todos=todos, observer=observer)._run("Write tests", "all of them")
        todo_id = _rdata(created)["id"]
        assert _rtext(created) == f"Todo created: [{todo_id[:8]}] Write tests"
        assert observer.todos_created[0].title == "Write tests"

        updated = UpdateTodoTool(todos=todos, observer=observer)._run(todo_id[:6], "in_progress")
        assert _rtext(updated) == f"Todo updated: [{todo_id[:8]}] Write tests -> IN_PROGRESS"
        assert observer.todos_updated[0].status is TodoStatus.IN_PROGRESS

        listing = _rtext(ListTodosTool(todos=todos)._run()).splitlines()
        assert listing == ["Current todos:", f"🔄 [{todo_id[:8]}] Write tests", "   all of them"]

    def test_update_errors(self, workspace):
        todos = JsonTodoStore(workspace)
        tool = UpdateTodoTool(todos=todos)
        assert _rerror(tool._run("abc", "done")) == "Invalid status. Use: pending, in_progress, or completed"
        assert _rerror(tool._run("abc", "completed")) == "Todo not found: abc"

    def test_ambiguous_prefix(self, workspace):
        todos = JsonTodoStore(workspace)
        todos.add(TodoItem(id="abc111", title="a"))
        todos.add(TodoItem(id="abc222", title="b"))
        tool = UpdateTodoTool(todos=todos)
        assert _rerror(tool._run("abc", "completed")) == "Todo id prefix is ambiguous: abc"
        assert _rtext(tool._run("abc2", "completed")) == "Todo updated: [abc222] b -> COMPLETED"

    def test_list_empty(self, workspace):
        output = _rtext(ListTodosTool(todos=JsonTodoStore(workspace))._run())
        assert output == "No todos found. Use create_todo to add one."


# ---------------------------------------------------------------------------
# Control tools
# ---------------------------------------------------------------------------

class TestControlTools:
    def test_ask_without_observer(self):
        result = AskUserTool()._run("Which db?", "postgres, sqlite")
        assert _rtext(result) == "Question for user: Which db?\nOptions: postgres, sqlite"
        assert _rdata(result) == {"pending": True}

    def test_ask_pending(self):
        observer = RecordingObserver()
        result = AskUserTool(observer=observer)._run("Which db?", "a,b")
        assert _rtext(result) == "Waiting for user response..."
        assert observer.questions == [("Which db?", ["a", "b"])]

    def test_ask_answered(self):
        result = AskUserTool(observer=RecordingObserver(answer="sqlite"))._run("Which db?")
        assert _rtext(result) == "User response: sqlite"
        assert _rdata(result) == {"pending": False}

    def test_finish(self):
        observer = RecordingObserver()
        assert _rtext(FinishTaskTool(observer=observer)._run("all done")) == "Task completed: all done"
        assert _rtext(FinishTaskTool()._run()) == "Task completed"
        assert observer.finished == ["all done"]


# ---------------------------------------------------------------------------
# Tool table
# ---------------------------------------------------------------------------

class TestCreateAllTools:
    def test_names_are_unique(self, workspace):
        names = [t.name for t in create_all_tools(workspace)]
        assert len(names) == len(set(names)) == 37

    async def test_async_invocation(self, workspace):
        tools = {t.name: t for t in create_all_tools(workspace)}
        await tools["write_file"].ainvoke({"path": "x.txt", "content": "hi"})
        result = await tools["read_file"].ainvoke({"path": "x.txt"})
        assert _rtext(result) == "hi"
