"""Split assistant text into typed display blocks.

Assistant content mixes markdown prose, fenced code, ``<think>``-style
reasoning sections and a textual tool-report format::

    🔧 **write_file**
    ✅ File created successfully: src/app.py

:class:`ContentSegmenter` scans the text once, left to right.  At every
position the first rule that applies wins:

1. a code fence opener at the start of a line,
2. a tool-report header at the start of a line (or where the previous
   tool output ended),
3. a thinking/reasoning opening tag,
4. plain text.

Anything inside an open code fence is literal, including headers and tags.
The result depends only on the input, so it is safe to re-run on every
streamed update.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union


class ToolStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


STATUS_MARKERS = {
    "⏳": ToolStatus.RUNNING,
    "✅": ToolStatus.SUCCESS,
    "❌": ToolStatus.ERROR,
}
TOOL_MARKER = "🔧"


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class CodeBlock:
    text: str
    language: str | None = None
    is_active: bool = False


@dataclass(frozen=True)
class ThinkingBlock:
    text: str
    is_active: bool = False


@dataclass(frozen=True)
class ReasoningBlock:
    text: str
    is_active: bool = False


@dataclass(frozen=True)
class ToolCallBlock:
    name: str
    status: ToolStatus
    output: str | None = None
    file_path: str | None = None
    additions: int = 0
    deletions: int = 0
    old_content: str | None = None
    new_content: str | None = None
    is_active: bool = False


ContentBlock = Union[TextBlock, CodeBlock, ThinkingBlock, ReasoningBlock, ToolCallBlock]


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_FENCE_OPEN_RE = re.compile(r"[ \t]{0,3}(`{3,}|~{3,})([^\n]*)")
_TOOL_HEADER_RE = re.compile(
    r"[ \t]*🔧[ \t]*\*\*([^*\n]+)\*\*"
    r"(?:[ \t]*(?:\r?\n[ \t]*)?(✅|❌|⏳))?[ \t]*"
)
_TOOL_HEADER_START_RE = re.compile(r"🔧[ \t]*\*\*[^*\n]+\*\*")
_TAG_OPEN_RE = re.compile(r"<(thinking|think|reasoning|reason)>", re.IGNORECASE)
_CLOSE_TAG_RES = {
    "thinking": re.compile(r"</(?:thinking|think)>", re.IGNORECASE),
    "reasoning": re.compile(r"</(?:reasoning|reason)>", re.IGNORECASE),
}

_EXPLICIT_PATH_RE = re.compile(r"(?im)^\s*(?:file|path)\s*[:=]\s*(\S+)\s*$")
_DIFF_NEW_PATH_RE = re.compile(r"(?m)^\+\+\+\s+(?:b/)?(\S+)")
_DIFF_OLD_PATH_RE = re.compile(r"(?m)^---\s+(?:a/)?(\S+)")
_QUOTED_PATH_RE = re.compile(r"[`'\"]((?:[\w.-]+/)*[\w.-]+\.[A-Za-z0-9]{1,10})[`'\"]")
_BARE_PATH_RE = re.compile(r"(?<![\w/:.])((?:[\w.-]+/)*[\w-][\w.-]*\.[A-Za-z0-9]{1,10})\b")
_FENCED_DIFF_RE = re.compile(r"```(?:diff|patch)[^\n]*\n(.*?)(?:\n```|\Z)", re.DOTALL)

FILE_TOOL_NAMES = frozenset({
    "read_file",
    "write_file",
    "create_file",
    "delete_file",
    "patch_file",
    "edit_file",
    "rename_file",
    "copy_file",
    "move_file",
    "insert_at_line",
    "append_to_file",
    "prepend_to_file",
    "regex_replace",
    "get_file_info",
})


def _at_line_start(text: str, pos: int) -> bool:
    return pos == 0 or text[pos - 1] == "\n"


def _next_candidate(text: str, pos: int) -> int:
    """Return the next position where a non-text rule could start."""
    newline = text.find("\n", pos)
    line_end = len(text) if newline == -1 else newline + 1
    tag = text.find("<", pos + 1, line_end)
    return line_end if tag == -1 else tag


# ---------------------------------------------------------------------------
# Segmenter
# ---------------------------------------------------------------------------

class ContentSegmenter:
    """Single-pass scanner producing :data:`ContentBlock` lists."""

    def segment(self, text: str, is_streaming_tail: bool = False) -> list[ContentBlock]:
        if not text:
            return []

        blocks: list[ContentBlock] = []
        text_start = 0
        pos = 0
        tool_boundary = -1
        length = len(text)

        def flush_text(end: int) -> None:
            if end > text_start:
                blocks.append(TextBlock(text[text_start:end]))

        while pos < length:
            line_start = _at_line_start(text, pos)
            scanned: tuple[int, ContentBlock, bool] | None = None

            if line_start:
                fence = _FENCE_OPEN_RE.match(text, pos)
                if fence:
                    scanned = self._scan_fence(text, fence, is_streaming_tail)

            if scanned is None and (line_start or pos == tool_boundary):
                header = _TOOL_HEADER_RE.match(text, pos)
                if header:
                    scanned = self._scan_tool(text, header, is_streaming_tail)

            if scanned is None:
                tag = _TAG_OPEN_RE.match(text, pos)
                if tag:
                    scanned = self._scan_tag(text, tag, is_streaming_tail)

            if scanned is None:
                pos = _next_candidate(text, pos)
                continue

            flush_text(pos)
            next_pos, block, stop = scanned
            blocks.append(block)
            if isinstance(block, ToolCallBlock):
                tool_boundary = next_pos
            pos = text_start = next_pos
            if stop:
                break

        if pos >= length:
            flush_text(length)
        return _finish(blocks)

    # Each scanner returns (next_pos, block, stop_scanning).

    def _scan_fence(
        self, text: str, opener: re.Match[str], streaming: bool
    ) -> tuple[int, ContentBlock, bool] | None:
        fence = opener.group(1)
        info = opener.group(2).strip()
        if fence[0] == "`" and "`" in info:
            return None
        if opener.end() >= len(text) and not streaming:
            return None
        language = info.split()[0] if info else None

        if opener.end() >= len(text):
            return len(text), CodeBlock("", language, is_active=True), True

        body_start = opener.end() + 1
        closer = re.compile(
            r"^[ \t]{0,3}" + re.escape(fence[0]) + "{" + str(len(fence)) + r",}[ \t]*$",
            re.MULTILINE,
        ).search(text, body_start)
        if closer is None:
            body = text[body_start:]
            if not streaming:
                body = body.rstrip("\n")
            return len(text), CodeBlock(body, language, is_active=streaming), True

        body = text[body_start:closer.start()]
        if body.endswith("\n"):
            body = body[:-1]
        end = closer.end()
        if end < len(text) and text[end] == "\n":
            end += 1
        return end, CodeBlock(body, language), False

    def _scan_tool(
        self, text: str, header: re.Match[str], streaming: bool
    ) -> tuple[int, ContentBlock, bool]:
        name = header.group(1).strip()
        status = STATUS_MARKERS.get(header.group(2) or "", ToolStatus.RUNNING)
        out_start = header.end()

        next_header = _TOOL_HEADER_START_RE.search(text, out_start)
        next_tag = _TAG_OPEN_RE.search(text, out_start)
        ends = [m.start() for m in (next_header, next_tag) if m is not None]
        if ends:
            out_end = min(ends)
            open_tail = False
        else:
            out_end = len(text)
            open_tail = True

        output = text[out_start:out_end].strip()
        return out_end, build_tool_block(
            name, status, output, is_active=streaming and open_tail
        ), open_tail

    def _scan_tag(
        self, text: str, opener: re.Match[str], streaming: bool
    ) -> tuple[int, ContentBlock, bool]:
        tag = opener.group(1).lower()
        concept = "thinking" if tag in ("thinking", "think") else "reasoning"
        block_type = ThinkingBlock if concept == "thinking" else ReasoningBlock

        closer = _CLOSE_TAG_RES[concept].search(text, opener.end())
        if closer is None:
            inner = text[opener.end():].strip()
            return len(text), block_type(inner, is_active=streaming), True
        inner = text[opener.end():closer.start()].strip()
        return closer.end(), block_type(inner), False


def _finish(blocks: list[ContentBlock]) -> list[ContentBlock]:
    """Drop empty blocks, coalesce adjacent text, trim text edges."""
    kept: list[ContentBlock] = []
    for block in blocks:
        if isinstance(block, (CodeBlock, ThinkingBlock, ReasoningBlock)):
            if not block.text.strip() and not block.is_active:
                continue
        if isinstance(block, TextBlock) and kept and isinstance(kept[-1], TextBlock):
            kept[-1] = TextBlock(kept[-1].text + block.text)
            continue
        kept.append(block)

    result: list[ContentBlock] = []
    for block in kept:
        if isinstance(block, TextBlock):
            stripped = block.text.strip()
            if not stripped:
                continue
            block = TextBlock(stripped)
        result.append(block)
    return result


# ---------------------------------------------------------------------------
# Tool block helpers
# ---------------------------------------------------------------------------

def build_tool_block(
    name: str,
    status: ToolStatus,
    output: str,
    *,
    is_active: bool = False,
) -> ToolCallBlock:
    additions, deletions, old_content, new_content = diff_summary(output)
    return ToolCallBlock(
        name=name,
        status=status,
        output=output or None,
        file_path=extract_file_path(name, output),
        additions=additions,
        deletions=deletions,
        old_content=old_content,
        new_content=new_content,
        is_active=is_active,
    )


def extract_file_path(tool_name: str, output: str) -> str | None:
    """Best-effort file path for a tool report, first match wins."""
    if not output:
        return None

    explicit = _EXPLICIT_PATH_RE.search(output)
    if explicit:
        return _clean_path(explicit.group(1))

    for pattern in (_DIFF_NEW_PATH_RE, _DIFF_OLD_PATH_RE):
        for match in pattern.finditer(output):
            candidate = _clean_path(match.group(1))
            if candidate and candidate != "/dev/null":
                return candidate

    quoted = _QUOTED_PATH_RE.search(output)
    if quoted and not _looks_like_url(output, quoted.start(1)):
        return quoted.group(1)

    if _is_file_tool(tool_name):
        for match in _BARE_PATH_RE.finditer(output):
            if not _looks_like_url(output, match.start(1)):
                return match.group(1)
    return None


def _is_file_tool(tool_name: str) -> bool:
    normalized = tool_name.strip().lower().replace(" ", "_")
    return normalized in FILE_TOOL_NAMES or "file" in normalized


def _clean_path(raw: str) -> str:
    return raw.strip().strip("`'\"")


def _looks_like_url(text: str, start: int) -> bool:
    line_start = text.rfind("\n", 0, start) + 1
    prefix = text[line_start:start]
    token = prefix.split()[-1] if prefix and not prefix[-1].isspace() else ""
    return "://" in token or token.startswith("www.")


def diff_summary(output: str) -> tuple[int, int, str | None, str | None]:
    """Count unified-diff additions/deletions in a tool output.

    Returns ``(additions, deletions, old_content, new_content)``.  Output
    that is not recognizably a diff yields ``(0, 0, None, None)``.
    """
    if not output:
        return 0, 0, None, None

    fenced = _FENCED_DIFF_RE.search(output)
    if fenced:
        diff_text = fenced.group(1)
    elif "@@" in output and ("+++" in output or "---" in output):
        diff_text = output
    else:
        return 0, 0, None, None

    additions = deletions = 0
    old_lines: list[str] = []
    new_lines: list[str] = []
    for line in diff_text.splitlines():
        if line.startswith("+++") or line.startswith("---") or line.startswith("@@"):
            continue
        if line.startswith("+"):
            additions += 1
            new_lines.append(line[1:])
        elif line.startswith("-"):
            deletions += 1
            old_lines.append(line[1:])
        elif line.startswith(" "):
            old_lines.append(line[1:])
            new_lines.append(line[1:])

    if not additions and not deletions:
        return 0, 0, None, None
    return additions, deletions, "\n".join(old_lines), "\n".join(new_lines)


def segment_content(text: str, is_streaming_tail: bool = False) -> list[ContentBlock]:
    return ContentSegmenter().segment(text, is_streaming_tail)
