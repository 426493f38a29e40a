"""Tests for toolloop.streaming: frame decoding and tool-call accumulation."""

import json
import random

import pytest

from toolloop.streaming import (
    Completed,
    ContentDelta,
    FinishReason,
    RawFrame,
    ReasoningDelta,
    StreamError,
    StreamEventDecoder,
    ToolCallAccumulator,
    ToolCallDelta,
    ToolCalls,
    TransportErrorKind,
    classify_exception,
    classify_status,
)


def _chunk(delta=None, finish_reason=None):
    choice = {"index": 0, "delta": delta or {}}
    if finish_reason is not None:
        choice["finish_reason"] = finish_reason
    return json.dumps({"choices": [choice]})


def _without_raw(events):
    return [e for e in events if not isinstance(e, RawFrame)]


# ---------------------------------------------------------------------------
# ToolCallAccumulator
# ---------------------------------------------------------------------------


class TestToolCallAccumulator:
    def test_concatenates_fragments_in_order(self):
        acc = ToolCallAccumulator()
        acc.apply(0, id="call-1", name="read_file", arguments='{"pa')
        acc.apply(0, arguments='th": "a.')
        acc.apply(0, arguments='txt"}')

        [call] = acc.finalize()
        assert call.id == "call-1"
        assert call.name == "read_file"
        assert call.arguments == '{"path": "a.txt"}'

    def test_orders_by_index_not_arrival(self):
        acc = ToolCallAccumulator()
        acc.apply(2, id="c", name="third")
        acc.apply(0, id="a", name="first")
        acc.apply(1, id="b", name="second")

        assert [c.name for c in acc.finalize()] == ["first", "second", "third"]

    def test_later_id_and_name_overwrite(self):
        acc = ToolCallAccumulator()
        acc.apply(0, id="old", name="old_name")
        acc.apply(0, id="new", name="new_name")

        [call] = acc.finalize()
        assert (call.id, call.name) == ("new", "new_name")

    def test_missing_id_is_generated(self):
        acc = ToolCallAccumulator()
        acc.apply(0, name="list_files")

        [call] = acc.finalize()
        assert call.id.startswith("call_")
        assert call.arguments == ""

    def test_clear_and_truthiness(self):
        acc = ToolCallAccumulator()
        assert not acc
        acc.apply(0, name="x")
        assert acc and len(acc) == 1
        acc.clear()
        assert acc.finalize() == []


# ---------------------------------------------------------------------------
# StreamEventDecoder
# ---------------------------------------------------------------------------


class TestStreamEventDecoder:
    def test_every_frame_is_echoed_first(self):
        decoder = StreamEventDecoder()
        events = decoder.decode("not json at all")
        assert events == [RawFrame("not json at all")]

    def test_content_and_reasoning(self):
        decoder = StreamEventDecoder()
        events = decoder.decode(_chunk({"reasoning_content": "hmm", "content": "Hi"}))
        assert _without_raw(events) == [ReasoningDelta("hmm"), ContentDelta("Hi")]

    def test_reasoning_alias(self):
        decoder = StreamEventDecoder()
        events = decoder.decode(_chunk({"reasoning": "thinking"}))
        assert _without_raw(events) == [ReasoningDelta("thinking")]

    def test_empty_content_is_skipped(self):
        decoder = StreamEventDecoder()
        assert _without_raw(decoder.decode(_chunk({"content": ""}))) == []

    def test_non_object_payloads_are_ignored(self):
        decoder = StreamEventDecoder()
        assert _without_raw(decoder.decode("[1, 2]")) == []
        assert _without_raw(decoder.decode('{"choices": []}')) == []
        assert _without_raw(decoder.decode('{"choices": ["x"]}')) == []

    def test_known_finish_reasons_only(self):
        decoder = StreamEventDecoder()
        assert FinishReason("length") in decoder.decode(_chunk(finish_reason="length"))
        assert _without_raw(decoder.decode(_chunk(finish_reason="content_filter"))) == []

    def test_tool_calls_released_only_at_done(self):
        decoder = StreamEventDecoder()
        first = decoder.decode(_chunk({"tool_calls": [
            {"index": 0, "id": "call-1", "function": {"name": "read_file", "arguments": '{"path":'}},
        ]}))
        second = decoder.decode(_chunk({"tool_calls": [
            {"index": 0, "function": {"arguments": ' "x.py"}'}},
        ]}, finish_reason="tool_calls"))

        assert ToolCallDelta(0, "call-1", "read_file", '{"path":') in first
        assert not any(isinstance(e, ToolCalls) for e in first + second)

        done = _without_raw(decoder.decode("[DONE]"))
        assert isinstance(done[0], ToolCalls)
        assert done[0].calls[0].arguments == '{"path": "x.py"}'
        assert done[1] == Completed()

    def test_fragment_without_index_uses_position(self):
        decoder = StreamEventDecoder()
        decoder.decode(_chunk({"tool_calls": [
            {"id": "a", "function": {"name": "one"}},
            {"id": "b", "function": {"name": "two"}},
        ]}))
        [tool_calls, _] = decoder.finish()
        assert [c.name for c in tool_calls.calls] == ["one", "two"]

    def test_done_without_tool_calls(self):
        decoder = StreamEventDecoder()
        assert _without_raw(decoder.decode(" [DONE] ")) == [Completed()]
        assert decoder.terminated

    def test_frames_after_termination_only_echo(self):
        decoder = StreamEventDecoder()
        decoder.decode("[DONE]")
        assert decoder.decode(_chunk({"content": "late"})) == [RawFrame(_chunk({"content": "late"}))]
        assert decoder.finish() == []

    def test_end_of_stream_drops_calls_without_finish_reason(self):
        decoder = StreamEventDecoder()
        decoder.decode(_chunk({"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "write_file", "arguments": '{"pa'}},
        ]}))

        assert decoder.end_of_stream() == [Completed()]
        assert decoder.end_of_stream() == []

    def test_end_of_stream_releases_calls_after_finish_reason(self):
        decoder = StreamEventDecoder()
        decoder.decode(_chunk({"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "read_file", "arguments": "{}"}},
        ]}, finish_reason="tool_calls"))

        [tool_calls, completed] = decoder.end_of_stream()
        assert tool_calls.calls[0].name == "read_file"
        assert completed == Completed()

    def test_fail_replaces_completed(self):
        decoder = StreamEventDecoder()
        decoder.decode(_chunk({"tool_calls": [{"index": 0, "function": {"name": "x"}}]}))
        error = classify_status(503)

        assert decoder.fail(error) == [StreamError("service unavailable", error)]
        assert decoder.finish() == []
        assert decoder.fail(error) == []


# ---------------------------------------------------------------------------
# Chunking invariance
# ---------------------------------------------------------------------------

ARGUMENT_SAMPLES = [
    '{"path": "src/app.py", "content": "print(1)\\n"}',
    '{"path": "docs/读我.md", "content": "héllo wörld ✅ 🚀"}',
    '{"query": "naïve café", "file_pattern": "*.{py,ts}"}',
]


def _split_whole(text):
    return [text]


def _split_each_char(text):
    return list(text)


def _split_random(text, seed=7):
    rng = random.Random(seed)
    pieces, pos = [], 0
    while pos < len(text):
        step = rng.randint(1, 5)
        pieces.append(text[pos:pos + step])
        pos += step
    return pieces


def _split_utf8_bytes(text):
    # Decode incrementally so multi-byte characters arrive as soon as complete.
    pieces, pending = [], b""
    for byte in text.encode("utf-8"):
        pending += bytes([byte])
        try:
            pieces.append(pending.decode("utf-8"))
        except UnicodeDecodeError:
            continue
        pending = b""
    return pieces


def _decode_arguments(pieces):
    decoder = StreamEventDecoder()
    decoder.decode(_chunk({"tool_calls": [
        {"index": 0, "id": "call-1", "function": {"name": "write_file", "arguments": ""}},
    ]}))
    for piece in pieces:
        frame = json.dumps(
            {"choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": piece}},
            ]}}]},
            ensure_ascii=False,
        )
        decoder.decode(frame)
    [tool_calls] = [e for e in decoder.decode("[DONE]") if isinstance(e, ToolCalls)]
    return tool_calls.calls[0].arguments


class TestChunkingInvariance:
    @pytest.mark.parametrize("arguments", ARGUMENT_SAMPLES)
    @pytest.mark.parametrize("split", [_split_each_char, _split_random, _split_utf8_bytes])
    def test_split_matches_single_fragment(self, arguments, split):
        assert _decode_arguments(split(arguments)) == _decode_arguments(_split_whole(arguments))
        assert _decode_arguments(split(arguments)) == arguments

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_random_seeds(self, seed):
        arguments = ARGUMENT_SAMPLES[1]
        assert _decode_arguments(_split_random(arguments, seed)) == arguments


# ---------------------------------------------------------------------------
# Transport error classification
# ---------------------------------------------------------------------------


class TestClassifyStatus:
    def test_well_known_statuses(self):
        assert classify_status(401).kind is TransportErrorKind.AUTHENTICATION
        assert classify_status(429).kind is TransportErrorKind.RATE_LIMITED
        assert classify_status(503).kind is TransportErrorKind.UNAVAILABLE

    def test_error_body_message_is_used(self):
        error = classify_status(400, '{"error": {"message": "bad model"}}')
        assert error.kind is TransportErrorKind.HTTP_STATUS
        assert error.message == "bad model"
        assert error.status_code == 400

    def test_plain_string_error_body(self):
        assert classify_status(500, '{"error": "boom"}').message == "boom"

    def test_unparseable_body_falls_back(self):
        assert classify_status(502, "<html>").message == "request failed with status 502"

    def test_exception(self):
        error = classify_exception(ConnectionResetError("connection reset"))
        assert error.kind is TransportErrorKind.NETWORK
        assert error.message == "connection reset"
        assert classify_exception(TimeoutError()).message == "network error"
