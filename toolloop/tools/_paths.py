"""Shared workspace path resolution and validation."""

from __future__ import annotations

from pathlib import Path

PATH_ARGUMENTS = ("path", "old_path", "new_path", "source_path", "destination_path")


def resolve_workspace_path(file_path: str, workspace: str) -> Path:
    """Return an absolute *Path* guaranteed to live under *workspace*.

    Containment is checked with ``Path.is_relative_to()`` on resolved paths,
    so sibling directories with a shared prefix (``/workspace2``) and
    ``..`` segments are rejected.

    Raises ``ValueError`` if the resolved path escapes the workspace.
    """
    ws = Path(workspace).resolve()
    p = Path(file_path)
    if not p.is_absolute():
        p = ws / p
    resolved = p.resolve()
    if not resolved.is_relative_to(ws):
        raise ValueError(
            f"Access denied: {file_path!r} resolves outside the workspace."
        )
    return resolved


def path_violations(args: dict[str, object], workspace: str) -> list[str]:
    """Check every path-like argument, returning one message per violation."""
    violations: list[str] = []
    for key in PATH_ARGUMENTS:
        value = args.get(key)
        if not isinstance(value, str) or not value:
            continue
        if "\x00" in value:
            violations.append(f"{key}: contains a NUL byte")
            continue
        try:
            resolve_workspace_path(value, workspace)
        except ValueError as exc:
            violations.append(f"{key}: {exc}")
    return violations
