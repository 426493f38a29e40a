"""Normalization of streamed chat-completion frames into typed events.

The provider sends Server-Sent-Events frames whose ``data`` payload is either
a JSON chunk in the OpenAI ``chat.completion.chunk`` shape or the literal
sentinel ``[DONE]``.  :class:`StreamEventDecoder` turns each frame into a
short list of events, merging tool-call fragments through a
:class:`ToolCallAccumulator` so that complete calls are only released once
the stream has terminated.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
KNOWN_FINISH_REASONS = frozenset({"stop", "tool_calls", "length"})


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallResponse:
    """A completed tool call: ``arguments`` is raw JSON text, possibly malformed."""

    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class ToolCalls:
    calls: tuple[ToolCallResponse, ...]


@dataclass(frozen=True)
class FinishReason:
    reason: str


@dataclass(frozen=True)
class StreamError:
    message: str
    error: TransportError | None = None


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class RawFrame:
    raw: str


StreamEvent = Union[
    Started,
    ContentDelta,
    ReasoningDelta,
    ToolCallDelta,
    ToolCalls,
    FinishReason,
    StreamError,
    Completed,
    RawFrame,
]


# ---------------------------------------------------------------------------
# Transport error classification
# ---------------------------------------------------------------------------

class TransportErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    HTTP_STATUS = "http_status"
    NETWORK = "network"


@dataclass(frozen=True)
class TransportError:
    kind: TransportErrorKind
    message: str
    status_code: int | None = None


def classify_status(status_code: int, body: str | None = None) -> TransportError:
    """Map a non-2xx opening response to a :class:`TransportError`."""
    if status_code == 401:
        return TransportError(TransportErrorKind.AUTHENTICATION, "invalid credentials", status_code)
    if status_code == 429:
        return TransportError(TransportErrorKind.RATE_LIMITED, "rate limited, retry later", status_code)
    if status_code == 503:
        return TransportError(TransportErrorKind.UNAVAILABLE, "service unavailable", status_code)
    message = _error_body_message(body) or f"request failed with status {status_code}"
    return TransportError(TransportErrorKind.HTTP_STATUS, message, status_code)


def classify_exception(exc: BaseException) -> TransportError:
    """Map a transport-level exception (reset, timeout, DNS) to a TransportError."""
    message = str(exc).strip() or "network error"
    return TransportError(TransportErrorKind.NETWORK, message)


def _error_body_message(body: str | None) -> str | None:
    if not body:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    return None


# ---------------------------------------------------------------------------
# ToolCallAccumulator
# ---------------------------------------------------------------------------

@dataclass
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Merge per-index tool-call fragments into complete calls.

    Argument fragments are concatenated strictly in delivery order.  ``id``
    and ``name`` overwrite any earlier value when present.
    """

    def __init__(self) -> None:
        self._records: dict[int, _PartialToolCall] = {}

    def __bool__(self) -> bool:
        return bool(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def apply(
        self,
        index: int,
        id: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        record = self._records.setdefault(index, _PartialToolCall())
        if id:
            record.id = id
        if name:
            record.name = name
        if arguments:
            record.arguments.append(arguments)

    def finalize(self) -> list[ToolCallResponse]:
        """Return the accumulated calls in ascending index order."""
        calls: list[ToolCallResponse] = []
        for index in sorted(self._records):
            record = self._records[index]
            calls.append(ToolCallResponse(
                id=record.id or f"call_{uuid.uuid4().hex[:24]}",
                name=record.name,
                arguments="".join(record.arguments),
            ))
        return calls

    def clear(self) -> None:
        self._records.clear()


# ---------------------------------------------------------------------------
# StreamEventDecoder
# ---------------------------------------------------------------------------

class StreamEventDecoder:
    """Decode SSE payloads for one response into :data:`StreamEvent` lists.

    One decoder instance serves exactly one request.  Every frame is echoed
    as a :class:`RawFrame` first, whether or not it parses.  Payloads that
    are not valid JSON objects are dropped silently so that a single bad
    chunk cannot abort the stream.
    """

    def __init__(self) -> None:
        self.accumulator = ToolCallAccumulator()
        self._terminated = False
        self._finish_seen = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def decode(self, data: str, event: str = "message") -> list[StreamEvent]:
        events: list[StreamEvent] = [RawFrame(data)]
        if self._terminated:
            return events

        if data.strip() == DONE_SENTINEL:
            events.extend(self.finish())
            return events

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable %s frame: %r", event, data[:200])
            return events
        if not isinstance(payload, dict):
            return events

        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return events
        choice = choices[0]
        if not isinstance(choice, dict):
            return events

        delta = choice.get("delta")
        if isinstance(delta, dict):
            events.extend(self._decode_delta(delta))

        finish_reason = choice.get("finish_reason")
        if isinstance(finish_reason, str) and finish_reason in KNOWN_FINISH_REASONS:
            self._finish_seen = True
            events.append(FinishReason(finish_reason))
        return events

    def end_of_stream(self) -> list[StreamEvent]:
        """Terminate a response whose connection closed without ``[DONE]``.

        Accumulated tool calls are only released when a finish reason was
        seen; otherwise they are partial and dropped.
        """
        if self._terminated:
            return []
        if self.accumulator and not self._finish_seen:
            logger.warning(
                "Stream ended without a terminal signal; dropping %d partial tool call(s)",
                len(self.accumulator),
            )
            self.accumulator.clear()
        return self.finish()

    def finish(self) -> list[StreamEvent]:
        """Terminate the response: release tool calls, then ``Completed``.

        Safe to call more than once; only the first call emits anything.
        """
        if self._terminated:
            return []
        self._terminated = True
        events: list[StreamEvent] = []
        if self.accumulator:
            events.append(ToolCalls(tuple(self.accumulator.finalize())))
        events.append(Completed())
        return events

    def fail(self, error: TransportError) -> list[StreamEvent]:
        """Terminate the response with a transport error instead of ``Completed``."""
        if self._terminated:
            return []
        self._terminated = True
        return [StreamError(error.message, error)]

    def _decode_delta(self, delta: dict[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []

        reasoning = delta.get("reasoning_content")
        if reasoning is None:
            reasoning = delta.get("reasoning")
        if isinstance(reasoning, str) and reasoning:
            events.append(ReasoningDelta(reasoning))

        content = delta.get("content")
        if isinstance(content, str) and content:
            events.append(ContentDelta(content))

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            for position, fragment in enumerate(tool_calls):
                if not isinstance(fragment, dict):
                    continue
                index = fragment.get("index")
                if not isinstance(index, int):
                    index = position
                function = fragment.get("function")
                if not isinstance(function, dict):
                    function = {}
                tc_delta = ToolCallDelta(
                    index=index,
                    id=_str_or_none(fragment.get("id")),
                    name=_str_or_none(function.get("name")),
                    arguments=_str_or_none(function.get("arguments")),
                )
                self.accumulator.apply(
                    tc_delta.index, tc_delta.id, tc_delta.name, tc_delta.arguments
                )
                events.append(tc_delta)
        return events


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
