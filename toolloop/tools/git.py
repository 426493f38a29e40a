"""Version-control tools and the local ``git`` command-line port."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Type

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ConfigDict, Field

from ._base import split_csv
from .ports import VersionControlError
from .result_schema import ToolResult, make_tool_error, make_tool_success

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50000
GIT_TIMEOUT_S = 60

_TRACKING_RE = re.compile(r"\[(?P<track>[^\]]+)\]$")


def _truncate(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... [output truncated]"


def format_status(porcelain: str) -> str:
    """Render ``git status --porcelain=v1 --branch`` output for the model."""
    branch = "HEAD"
    ahead = behind = 0
    staged: list[str] = []
    unstaged: list[str] = []
    for line in porcelain.splitlines():
        if line.startswith("## "):
            header = line[3:].removeprefix("No commits yet on ")
            branch = header.split("...")[0].split(" ")[0]
            match = _TRACKING_RE.search(header)
            if match:
                for part in match.group("track").split(","):
                    part = part.strip()
                    if part.startswith("ahead "):
                        ahead = int(part[6:])
                    elif part.startswith("behind "):
                        behind = int(part[7:])
            continue
        if len(line) < 4:
            continue
        index, worktree, path = line[0], line[1], line[3:]
        if index == "?" and worktree == "?":
            unstaged.append(f"  ? {path}")
            continue
        if index != " ":
            staged.append(f"  {index} {path}")
        if worktree != " ":
            unstaged.append(f"  {worktree} {path}")

    lines = [f"Branch: {branch}"]
    if ahead or behind:
        lines.append(f"Ahead: {ahead}, Behind: {behind}")
    if not staged and not unstaged:
        lines.append("Working tree clean")
        return "\n".join(lines)
    if staged:
        lines.append("Staged changes:")
        lines.extend(staged)
    if unstaged:
        lines.append("Unstaged changes:")
        lines.extend(unstaged)
    return "\n".join(lines)


class GitCli:
    """:class:`~toolloop.tools.ports.VersionControl` that shells out to ``git``."""

    def __init__(self, root: str, timeout: float = GIT_TIMEOUT_S) -> None:
        self.root = root
        self.timeout = timeout

    async def _run(self, *args: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=self.root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise VersionControlError(f"git is not available: {exc}") from exc
        try:
            out_b, err_b = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.communicate()
            raise VersionControlError(f"git {args[0]} timed out after {self.timeout} seconds")
        stdout = out_b.decode("utf-8", errors="replace")
        stderr = err_b.decode("utf-8", errors="replace")
        if process.returncode != 0:
            message = stderr.strip() or stdout.strip() or f"exit code {process.returncode}"
            logger.debug("git %s failed: %s", " ".join(args), message)
            raise VersionControlError(message)
        return stdout

    async def status(self) -> str:
        return format_status(await self._run("status", "--porcelain=v1", "--branch"))

    async def stage(self, paths: list[str] | None) -> str:
        if paths is None:
            return await self._run("add", "--all")
        return await self._run("add", "--", *paths)

    async def unstage(self, paths: list[str]) -> str:
        return await self._run("reset", "-q", "HEAD", "--", *paths)

    async def commit(self, message: str) -> str:
        await self._run("commit", "-m", message)
        return (await self._run("rev-parse", "--short", "HEAD")).strip()

    async def push(self, remote: str, set_upstream: bool = False) -> str:
        args = ["push"]
        if set_upstream:
            args += ["--set-upstream", remote, "HEAD"]
        else:
            args.append(remote)
        return await self._run(*args)

    async def pull(self, remote: str, rebase: bool = False) -> str:
        args = ["pull"]
        if rebase:
            args.append("--rebase")
        args.append(remote)
        return await self._run(*args)

    async def list_branches(self) -> str:
        return await self._run("branch", "--list")

    async def create_branch(self, name: str, checkout: bool = False) -> str:
        if checkout:
            return await self._run("checkout", "-b", name)
        return await self._run("branch", name)

    async def delete_branch(self, name: str) -> str:
        return await self._run("branch", "-d", name)

    async def checkout(self, branch: str) -> str:
        return await self._run("checkout", branch)

    async def log(self, count: int = 10) -> str:
        return await self._run("log", f"-n{count}", "--pretty=format:%h %an %ad %s", "--date=short")

    async def diff(self, path: str | None = None, staged: bool = False) -> str:
        args = ["diff"]
        if staged:
            args.append("--cached")
        if path:
            args += ["--", path]
        return await self._run(*args)

    async def discard(self, paths: list[str]) -> str:
        return await self._run("checkout", "--", *paths)


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

class NoInput(BaseModel):
    pass


class PathsInput(BaseModel):
    paths: str = Field(description="Comma-separated paths, or 'all' to stage everything.")


class CommitInput(BaseModel):
    message: str = Field(description="Commit message.")


class PushInput(BaseModel):
    remote: str = Field(default="origin", description="Remote name.")
    set_upstream: bool = Field(default=False, description="Set the upstream for the current branch.")


class PullInput(BaseModel):
    remote: str = Field(default="origin", description="Remote name.")
    rebase: bool = Field(default=False, description="Rebase instead of merge.")


class BranchInput(BaseModel):
    action: str = Field(default="list", description="list, create or delete.")
    name: str | None = Field(default=None, description="Branch name for create/delete.")
    checkout: bool = Field(default=False, description="Switch to the branch after creating it.")


class CheckoutInput(BaseModel):
    branch: str = Field(description="Branch to switch to.")


class LogInput(BaseModel):
    count: int = Field(default=10, ge=1, le=200, description="Number of commits.")


class DiffInput(BaseModel):
    path: str | None = Field(default=None, description="Limit the diff to one path.")
    staged: bool = Field(default=False, description="Show staged changes.")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class GitTool(BaseTool):
    """Base for tools that call the version-control port."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    vcs: Any = None
    failure: str = "git command failed"

    def _run(self, **_: Any) -> ToolResult:
        return make_tool_error(kind=self.name, error=f"{self.name} requires async execution")

    async def _arun(self, **kwargs: Any) -> ToolResult:
        try:
            return await self._call(**kwargs)
        except VersionControlError as exc:
            return make_tool_error(kind=self.name, error=f"{self.failure}: {exc}")

    async def _call(self, **kwargs: Any) -> ToolResult:
        raise NotImplementedError


class GitStatusTool(GitTool):
    name: str = "git_status"
    description: str = "Show the current branch and changed files."
    args_schema: Type[BaseModel] = NoInput
    failure: str = "Failed to get status"

    async def _call(self) -> ToolResult:
        return make_tool_success(kind=self.name, output=await self.vcs.status())


class GitStageTool(GitTool):
    name: str = "git_stage"
    description: str = "Stage files for commit. Pass 'all' to stage every change."
    args_schema: Type[BaseModel] = PathsInput
    failure: str = "Failed to stage"

    async def _call(self, paths: str) -> ToolResult:
        targets = None if paths.strip().lower() == "all" else split_csv(paths)
        if targets == []:
            return make_tool_error(kind=self.name, error="No paths given")
        await self.vcs.stage(targets)
        return make_tool_success(kind=self.name, output="Files staged successfully")


class GitUnstageTool(GitTool):
    name: str = "git_unstage"
    description: str = "Remove files from the staging area."
    args_schema: Type[BaseModel] = PathsInput
    failure: str = "Failed to unstage"

    async def _call(self, paths: str) -> ToolResult:
        targets = split_csv(paths)
        if not targets:
            return make_tool_error(kind=self.name, error="No paths given")
        await self.vcs.unstage(targets)
        return make_tool_success(kind=self.name, output="Files unstaged successfully")


class GitCommitTool(GitTool):
    name: str = "git_commit"
    description: str = "Commit the staged changes."
    args_schema: Type[BaseModel] = CommitInput
    failure: str = "Failed to commit"

    async def _call(self, message: str) -> ToolResult:
        if not message.strip():
            return make_tool_error(kind=self.name, error="Commit message must not be empty")
        short_id = await self.vcs.commit(message)
        return make_tool_success(
            kind=self.name,
            output=f"Commit created: {short_id} - {message}",
            data={"commit": short_id},
        )


class GitPushTool(GitTool):
    name: str = "git_push"
    description: str = "Push the current branch to a remote."
    args_schema: Type[BaseModel] = PushInput
    failure: str = "Failed to push"

    async def _call(self, remote: str = "origin", set_upstream: bool = False) -> ToolResult:
        await self.vcs.push(remote, set_upstream)
        return make_tool_success(kind=self.name, output="Pushed successfully to remote")


class GitPullTool(GitTool):
    name: str = "git_pull"
    description: str = "Pull changes from a remote."
    args_schema: Type[BaseModel] = PullInput
    failure: str = "Failed to pull"

    async def _call(self, remote: str = "origin", rebase: bool = False) -> ToolResult:
        await self.vcs.pull(remote, rebase)
        return make_tool_success(kind=self.name, output="Pulled successfully from remote")


class GitBranchTool(GitTool):
    name: str = "git_branch"
    description: str = "List, create or delete branches."
    args_schema: Type[BaseModel] = BranchInput
    failure: str = "Branch operation failed"

    async def _call(
        self, action: str = "list", name: str | None = None, checkout: bool = False
    ) -> ToolResult:
        action = action.strip().lower()
        if action == "list":
            branches = (await self.vcs.list_branches()).rstrip()
            return make_tool_success(kind=self.name, output=branches or "No branches")
        if action not in ("create", "delete"):
            return make_tool_error(
                kind=self.name,
                error=f"Unknown action: {action}. Use 'list', 'create', or 'delete'",
            )
        if not name:
            return make_tool_error(kind=self.name, error=f"Branch name is required to {action}")
        if action == "create":
            await self.vcs.create_branch(name, checkout)
            verb = "Created and switched to" if checkout else "Created"
            return make_tool_success(kind=self.name, output=f"{verb} branch '{name}'")
        await self.vcs.delete_branch(name)
        return make_tool_success(kind=self.name, output=f"Deleted branch '{name}'")


class GitCheckoutTool(GitTool):
    name: str = "git_checkout"
    description: str = "Switch to another branch."
    args_schema: Type[BaseModel] = CheckoutInput
    failure: str = "Failed to checkout"

    async def _call(self, branch: str) -> ToolResult:
        await self.vcs.checkout(branch)
        return make_tool_success(kind=self.name, output=f"Switched to branch '{branch}'")


class GitLogTool(GitTool):
    name: str = "git_log"
    description: str = "Show recent commits."
    args_schema: Type[BaseModel] = LogInput
    failure: str = "Failed to get log"

    async def _call(self, count: int = 10) -> ToolResult:
        entries = (await self.vcs.log(count)).strip()
        if not entries:
            return make_tool_success(kind=self.name, output="No commits yet")
        return make_tool_success(kind=self.name, output=f"Recent commits:\n{entries}")


class GitDiffTool(GitTool):
    name: str = "git_diff"
    description: str = "Show unstaged (or staged) changes as a unified diff."
    args_schema: Type[BaseModel] = DiffInput
    failure: str = "Failed to get diff"

    async def _call(self, path: str | None = None, staged: bool = False) -> ToolResult:
        diff = await self.vcs.diff(path, staged)
        if not diff.strip():
            return make_tool_success(kind=self.name, output="No changes")
        return make_tool_success(kind=self.name, output=_truncate(diff))


class GitDiscardTool(GitTool):
    name: str = "git_discard"
    description: str = "Discard uncommitted changes to the given comma-separated paths."
    args_schema: Type[BaseModel] = PathsInput
    failure: str = "Failed to discard changes"

    async def _call(self, paths: str) -> ToolResult:
        targets = split_csv(paths)
        if not targets:
            return make_tool_error(kind=self.name, error="No paths given")
        await self.vcs.discard(targets)
        return make_tool_success(
            kind=self.name, output=f"Changes discarded for: {', '.join(targets)}"
        )
