"""Conversation history: restoring persisted turns and fitting the context window."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_MAX_CHARS = 120_000


def _load_context_max_chars() -> int:
    raw = (os.getenv("CONTEXT_MAX_CHARS", "") or "").strip()
    if not raw:
        return DEFAULT_CONTEXT_MAX_CHARS
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Invalid CONTEXT_MAX_CHARS=%r, defaulting to %d", raw, DEFAULT_CONTEXT_MAX_CHARS
        )
        return DEFAULT_CONTEXT_MAX_CHARS
    if value <= 0:
        logger.warning(
            "CONTEXT_MAX_CHARS=%d must be positive, defaulting to %d",
            value, DEFAULT_CONTEXT_MAX_CHARS,
        )
        return DEFAULT_CONTEXT_MAX_CHARS
    return value


def build_message_history(history: list[dict[str, Any]]) -> list[BaseMessage]:
    """Convert persisted ``{role, content}`` entries to LangChain messages."""
    messages: list[BaseMessage] = []
    for entry in history:
        role = entry.get("role", "")
        content = entry.get("content", "") or ""
        if role == "user":
            messages.append(HumanMessage(content=content))
        elif role == "assistant":
            if content:
                messages.append(AIMessage(content=content))
        elif role == "system":
            messages.append(SystemMessage(content=content))
        else:
            logger.debug("Skipping history entry with role %r", role)
    return messages


def truncate_turns(messages: list[BaseMessage], keep_turns: int) -> list[BaseMessage]:
    """Keep only the first *keep_turns* user exchanges.

    Messages are cut at the (keep_turns + 1)-th ``HumanMessage`` so every
    tool and assistant message of a kept turn survives.
    """
    human_count = 0
    for i, msg in enumerate(messages):
        if isinstance(msg, HumanMessage):
            human_count += 1
            if human_count > keep_turns:
                return messages[:i]
    return list(messages)


def estimate_size(message: BaseMessage) -> int:
    content = message.content
    size = len(content) if isinstance(content, str) else len(json.dumps(content, ensure_ascii=False))
    for call in getattr(message, "tool_calls", None) or ():
        size += len(call.get("name", "")) + len(json.dumps(call.get("args", {}), ensure_ascii=False))
    return size


class ContextWindowPolicy:
    """Drop the oldest whole user turns until the history fits *max_chars*.

    The leading system message and the current (last) turn are always kept,
    even if they alone exceed the budget.  Turns start at a ``HumanMessage``,
    so an assistant tool-call message always stays with its tool results.
    """

    def __init__(self, max_chars: int | None = None) -> None:
        self.max_chars = max_chars if max_chars is not None else _load_context_max_chars()

    def apply(self, messages: Sequence[BaseMessage]) -> list[BaseMessage]:
        if not messages:
            return []
        head: list[BaseMessage] = []
        body = list(messages)
        if isinstance(body[0], SystemMessage):
            head, body = [body[0]], body[1:]

        turns: list[list[BaseMessage]] = []
        for msg in body:
            if isinstance(msg, HumanMessage) or not turns:
                turns.append([msg])
            else:
                turns[-1].append(msg)

        sizes = [sum(estimate_size(m) for m in turn) for turn in turns]
        total = sum(estimate_size(m) for m in head) + sum(sizes)
        dropped = 0
        while total > self.max_chars and dropped < len(turns) - 1:
            total -= sizes[dropped]
            dropped += 1
        if dropped:
            logger.info(
                "Context window: dropped %d oldest turn(s), ~%d chars remain", dropped, total
            )
        return head + [msg for turn in turns[dropped:] for msg in turn]
