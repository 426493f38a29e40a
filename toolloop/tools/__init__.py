"""Built-in tools for the toolloop agent."""

from __future__ import annotations

from typing import Any

from langchain_core.tools import BaseTool

from .control import AskUserTool, FinishTaskTool
from .file_ops import (
    CopyFileTool,
    CreateFolderTool,
    DeleteFileTool,
    ListFilesTool,
    MoveFileTool,
    ReadFileTool,
    RenameFileTool,
    WriteFileTool,
)
from .git import (
    GitBranchTool,
    GitCheckoutTool,
    GitCli,
    GitCommitTool,
    GitDiffTool,
    GitDiscardTool,
    GitLogTool,
    GitPullTool,
    GitPushTool,
    GitStageTool,
    GitStatusTool,
    GitUnstageTool,
)
from .memory import (
    DeleteMemoryTool,
    ListMemoriesTool,
    RecallMemoryTool,
    SaveMemoryTool,
    UpdateMemoryTool,
)
from .ports import AgentObserver
from .search import (
    AppendToFileTool,
    GetFileInfoTool,
    InsertAtLineTool,
    PatchFileTool,
    PrependToFileTool,
    RegexReplaceTool,
    SearchFilesTool,
    SearchReplaceTool,
)
from .todo import CreateTodoTool, ListTodosTool, UpdateTodoTool
from .workspace import JsonMemoryStore, JsonTodoStore, WorkspaceStore

STORE_TOOLS = [
    ReadFileTool,
    WriteFileTool,
    ListFilesTool,
    DeleteFileTool,
    CreateFolderTool,
    RenameFileTool,
    CopyFileTool,
    MoveFileTool,
    SearchFilesTool,
    SearchReplaceTool,
    PatchFileTool,
    InsertAtLineTool,
    GetFileInfoTool,
    RegexReplaceTool,
    AppendToFileTool,
    PrependToFileTool,
]

MEMORY_TOOLS = [
    SaveMemoryTool,
    RecallMemoryTool,
    ListMemoriesTool,
    DeleteMemoryTool,
    UpdateMemoryTool,
]

GIT_TOOLS = [
    GitStatusTool,
    GitStageTool,
    GitUnstageTool,
    GitCommitTool,
    GitPushTool,
    GitPullTool,
    GitBranchTool,
    GitCheckoutTool,
    GitLogTool,
    GitDiffTool,
    GitDiscardTool,
]


def create_all_tools(
    workspace: str = "/workspace",
    *,
    store: Any = None,
    memory: Any = None,
    todos: Any = None,
    vcs: Any = None,
    observer: AgentObserver | None = None,
) -> list[BaseTool]:
    """Create instances of all built-in tools.

    Collaborators default to the local implementations rooted at *workspace*.
    """
    store = store if store is not None else WorkspaceStore(workspace)
    memory = memory if memory is not None else JsonMemoryStore(workspace)
    todos = todos if todos is not None else JsonTodoStore(workspace)
    vcs = vcs if vcs is not None else GitCli(workspace)

    tools: list[BaseTool] = [cls(store=store) for cls in STORE_TOOLS]
    tools.extend(cls(memory=memory) for cls in MEMORY_TOOLS)
    tools.extend([
        CreateTodoTool(todos=todos, observer=observer),
        UpdateTodoTool(todos=todos, observer=observer),
        ListTodosTool(todos=todos),
        AskUserTool(observer=observer),
        FinishTaskTool(observer=observer),
    ])
    tools.extend(cls(vcs=vcs) for cls in GIT_TOOLS)
    return tools
