from __future__ import annotations

from typing import Any

from langchain_core.tools import BaseTool
from pydantic import ConfigDict


class PortTool(BaseTool):
    """A tool that delegates to an injected collaborator port."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Port calls are quick local I/O; run them inline.
    async def _arun(self, **kwargs: Any) -> Any:
        return self._run(**kwargs)


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated argument into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def pluralize(word: str, count: int) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"
