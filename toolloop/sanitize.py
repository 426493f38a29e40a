"""Clean-up of streamed deltas and finalized assistant content."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_REPLACEMENT_CHAR = "\ufffd"

_OPEN_TAG_RE = re.compile(r"<(thinking|think|reasoning|reason)>", re.IGNORECASE)
_CLOSE_TAG_RE = re.compile(r"</(thinking|think|reasoning|reason)>", re.IGNORECASE)
_EMPTY_THINK_RE = re.compile(r"<think>\s*</think>")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def sanitize_delta(text: str) -> str:
    """Strip U+FFFD replacement characters from streaming deltas."""
    if _REPLACEMENT_CHAR not in text:
        return text
    logger.warning("Stripped %d U+FFFD from delta: %r",
                   text.count(_REPLACEMENT_CHAR), text[:200])
    return text.replace(_REPLACEMENT_CHAR, "")


def has_unclosed_thinking_tag(content: str) -> bool:
    """True when more thinking/reasoning tags are opened than closed."""
    return len(_OPEN_TAG_RE.findall(content)) > len(_CLOSE_TAG_RE.findall(content))


def sanitize_content(content: str) -> str:
    """Normalize final assistant content before it is persisted.

    Unclosed reasoning tags are closed, every synonym is rewritten to
    ``<think>``/``</think>``, empty reasoning blocks are removed and runs of
    blank lines are collapsed.
    """
    if not content:
        return ""
    result = content
    missing = len(_OPEN_TAG_RE.findall(result)) - len(_CLOSE_TAG_RE.findall(result))
    if missing > 0:
        result = result + "</think>" * missing
    result = _OPEN_TAG_RE.sub("<think>", result)
    result = _CLOSE_TAG_RE.sub("</think>", result)
    result = _EMPTY_THINK_RE.sub("", result)
    result = _EXCESS_NEWLINES_RE.sub("\n\n", result)
    return result.strip()
