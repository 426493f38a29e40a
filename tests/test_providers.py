"""Tests for toolloop.providers.ChatTransport using httpx.MockTransport."""

import json

import httpx
import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from toolloop.providers import ChatTransport
from toolloop.streaming import (
    Completed,
    ContentDelta,
    RawFrame,
    Started,
    StreamError,
    ToolCalls,
    TransportErrorKind,
)
from toolloop.tools.control import FinishTaskTool

SSE_HEADERS = {"content-type": "text/event-stream"}


def _sse(*payloads: str) -> bytes:
    return "".join(f"data: {p}\n\n" for p in payloads).encode()


def _content_chunk(text):
    return json.dumps({"choices": [{"index": 0, "delta": {"content": text}}]})


def _transport(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatTransport("sk-test", "test-model", client=client, **kwargs)


async def _collect(transport, messages=None, tools=()):
    messages = messages or [HumanMessage(content="hi")]
    return [e async for e in transport.stream(messages, tools)]


def _semantic(events):
    return [e for e in events if not isinstance(e, RawFrame)]


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


class TestRequest:
    def test_url_suffix(self):
        assert ChatTransport("k", "m", endpoint_url="https://x/v1/").url == "https://x/v1/chat/completions"
        assert ChatTransport("k", "m", endpoint_url="https://x/chat/completions").url == "https://x/chat/completions"

    def test_payload_without_tools(self):
        transport = ChatTransport("k", "m", temperature=0.2, max_tokens=10)
        payload = transport.build_payload([SystemMessage(content="sys"), HumanMessage(content="hi")])
        assert payload["model"] == "m"
        assert payload["stream"] is True
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 10
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert "tools" not in payload

    def test_payload_with_tools(self):
        payload = ChatTransport("k", "m").build_payload([HumanMessage(content="hi")], [FinishTaskTool()])
        assert payload["tool_choice"] == "auto"
        assert payload["tools"][0]["function"]["name"] == "finish_task"

    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse("[DONE]"))

        await _collect(_transport(handler))
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------


class TestStream:
    async def test_content_stream(self):
        def handler(request):
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse(
                _content_chunk("Hel"), _content_chunk("lo"), "[DONE]",
            ))

        events = await _collect(_transport(handler))
        assert _semantic(events) == [Started(), ContentDelta("Hel"), ContentDelta("lo"), Completed()]
        assert sum(isinstance(e, RawFrame) for e in events) == 3

    async def test_tool_calls_stream(self):
        chunk = json.dumps({"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "list_files", "arguments": "{}"}},
        ]}, "finish_reason": "tool_calls"}]})

        def handler(request):
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse(chunk, "[DONE]"))

        events = _semantic(await _collect(_transport(handler)))
        tool_calls = next(e for e in events if isinstance(e, ToolCalls))
        assert tool_calls.calls[0].name == "list_files"
        assert events[-1] == Completed()

    async def test_stream_closed_without_sentinel_still_completes(self):
        def handler(request):
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse(_content_chunk("x")))

        events = _semantic(await _collect(_transport(handler)))
        assert events[-1] == Completed()

    async def test_truncated_tool_call_is_dropped_when_stream_closes(self):
        chunk = json.dumps({"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "write_file", "arguments": '{"path": "a.py", "con'}},
        ]}}]})

        def handler(request):
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse(chunk))

        events = _semantic(await _collect(_transport(handler)))
        assert not any(isinstance(e, ToolCalls) for e in events)
        assert [e for e in events if isinstance(e, Completed)] == [Completed()]
        assert events[-1] == Completed()

    async def test_tool_call_after_finish_reason_survives_missing_sentinel(self):
        chunk = json.dumps({"choices": [{"index": 0, "finish_reason": "tool_calls", "delta": {"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "read_file", "arguments": '{"path": "a.py"}'}},
        ]}}]})

        def handler(request):
            return httpx.Response(200, headers=SSE_HEADERS, content=_sse(chunk))

        events = _semantic(await _collect(_transport(handler)))
        [tool_calls] = [e for e in events if isinstance(e, ToolCalls)]
        assert tool_calls.calls[0].arguments == '{"path": "a.py"}'
        assert events[-1] == Completed()

    @pytest.mark.parametrize("status,kind", [
        (401, TransportErrorKind.AUTHENTICATION),
        (429, TransportErrorKind.RATE_LIMITED),
        (503, TransportErrorKind.UNAVAILABLE),
        (400, TransportErrorKind.HTTP_STATUS),
    ])
    async def test_error_status(self, status, kind):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        events = _semantic(await _collect(_transport(handler)))
        assert events[0] == Started()
        assert isinstance(events[-1], StreamError)
        assert events[-1].error.kind is kind
        assert not any(isinstance(e, Completed) for e in events)

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        events = _semantic(await _collect(_transport(handler)))
        assert events[0] == Started()
        assert len(events) == 2
        assert events[1].error.kind is TransportErrorKind.NETWORK
        assert "connection refused" in events[1].message
