"""
Tests for stream parsing, tool-call normalization and JSON repair.
"""

import asyncio
import json

from routers.chat_orchestration.stream_processor import StreamProcessor, UpdateCoalescer
from routers.chat_orchestration.tool_dispatch import (
    NAV,
    THEME,
    ToolCall,
    canonical_tool_name,
    extract_inline_tool_call,
    normalize_tool_calls,
)
from services.json_repair import parse_json_arguments, repair_json

from conftest import chunked, ndjson, text_frames, tool_frames


def consume(*chunks, **kwargs):
    processor = StreamProcessor(**kwargs)
    return asyncio.run(processor.consume(chunked(*chunks)))


class TestJsonRepair:
    """Test tool-argument repair."""

    def test_dict_passthrough(self):
        """Dicts are returned unchanged."""
        assert parse_json_arguments({"key": "home"}) == {"key": "home"}

    def test_json_string(self):
        """JSON-encoded strings are decoded."""
        assert parse_json_arguments('{"mode": "dark"}') == {"mode": "dark"}

    def test_empty(self):
        """Missing arguments are an empty object."""
        assert parse_json_arguments(None) == {}
        assert parse_json_arguments("") == {}

    def test_repairs_single_quotes_and_trailing_comma(self):
        """Common model mistakes are repaired."""
        assert parse_json_arguments("{'key': 'settings',}") == {"key": "settings"}

    def test_repairs_truncation(self):
        """A missing closing brace is added."""
        assert repair_json('{"key": "home"') == '{"key": "home"}'
        assert parse_json_arguments('{"key": "home"') == {"key": "home"}

    def test_non_object(self):
        """Arrays and scalars are rejected."""
        assert parse_json_arguments("[1, 2]") is None
        assert parse_json_arguments(42) is None


class TestToolDispatch:
    """Test tool-call shape normalization."""

    def test_aliases(self):
        """Wire names map to nav/theme; others are rejected."""
        assert canonical_tool_name("navigate_to_screen") == NAV
        assert canonical_tool_name("Change_Theme") == THEME
        assert canonical_tool_name("delete_user") is None
        assert canonical_tool_name(None) is None

    def test_function_shape(self):
        """OpenAI-style tool_calls with string arguments."""
        message = {"tool_calls": [{"function": {"name": "nav", "arguments": '{"key": "home"}'}}]}
        assert normalize_tool_calls(message) == [ToolCall(NAV, {"key": "home"})]

    def test_flat_shape_and_function_call(self):
        """Flat tool_calls entries and the legacy function_call field."""
        message = {
            "tool_calls": [{"name": "theme", "arguments": {"mode": "dark"}}],
            "function_call": {"name": "navigate", "arguments": {"key": "settings"}},
        }
        assert normalize_tool_calls(message) == [
            ToolCall(THEME, {"mode": "dark"}),
            ToolCall(NAV, {"key": "settings"}),
        ]

    def test_unknown_and_unreadable_dropped(self):
        """Unknown names and unreadable arguments are discarded."""
        message = {
            "tool_calls": [
                {"function": {"name": "rm_rf", "arguments": {}}},
                {"function": {"name": "nav", "arguments": "[1]"}},
                "garbage",
            ]
        }
        assert normalize_tool_calls(message) == []

    def test_inline_hermes(self):
        """<tool_call> blocks in text are recovered."""
        text = 'Được.<tool_call>{"name": "navigate_to_screen", "arguments": {"key": "home"}}</tool_call>'
        assert extract_inline_tool_call(text) == ToolCall(NAV, {"key": "home"})

    def test_inline_json(self):
        """Bare JSON objects in text are recovered."""
        text = 'Sure {"name": "change_theme", "arguments": {"mode": "light"}} done'
        assert extract_inline_tool_call(text) == ToolCall(THEME, {"mode": "light"})

    def test_inline_plain_commands(self):
        """Plain-text commands are recovered."""
        assert extract_inline_tool_call("navigate_to_screen /app/reports/bed-usage.") == ToolCall(
            NAV, {"key": "reports/bed-usage"}
        )
        assert extract_inline_tool_call("change_theme Dark") == ToolCall(THEME, {"mode": "dark"})

    def test_no_inline_call(self):
        """Ordinary text has no tool call."""
        assert extract_inline_tool_call("Bạn hãy khởi động lại máy in.") is None
        assert extract_inline_tool_call("") is None


class TestStreamProcessor:
    """Test NDJSON stream consumption."""

    def test_text_fragments(self):
        """Fragments are concatenated and sanitized."""
        result = consume(text_frames("Bạn hãy ", "khởi động lại ", "máy in"))
        assert result.text == "Bạn hãy khởi động lại máy in"
        assert result.frames == 4
        assert result.malformed == 0
        assert result.tool_calls == []

    def test_utf8_split_across_chunks(self):
        """Multi-byte characters split between chunks decode correctly."""
        body = text_frames("Giường bệnh")
        cut = body.index("ư".encode("utf-8")) + 1
        result = consume(body[:cut], body[cut:])
        assert result.text == "Giường bệnh"

    def test_lines_split_across_chunks(self):
        """Frames split mid-line are reassembled."""
        body = text_frames("xin ", "chào")
        chunks = [body[i:i + 7] for i in range(0, len(body), 7)]
        assert consume(*chunks).text == "xin chào"

    def test_malformed_lines_skipped(self):
        """Unparseable lines are counted and ignored."""
        body = b"not json\n" + text_frames("ok")
        result = consume(body)
        assert result.text == "ok"
        assert result.malformed == 1

    def test_stops_at_done(self):
        """Frames after done are not read."""
        body = text_frames("một") + ndjson({"message": {"content": " hai"}})
        assert consume(body).text == "một"

    def test_last_line_without_newline(self):
        """A final frame without a trailing newline is processed."""
        body = json.dumps({"message": {"content": "cuối"}}).encode("utf-8")
        assert consume(body).text == "cuối"

    def test_pretty_printed_single_response(self):
        """A non-streamed, pretty-printed body is parsed as one frame."""
        body = json.dumps({"message": {"role": "assistant", "content": "Xin chào"}, "done": True}, indent=2)
        result = consume(body.encode("utf-8"))
        assert result.text == "Xin chào"
        assert result.frames == 1
        assert result.malformed == 0

    def test_unparseable_body(self):
        """A body with no valid frame reports zero frames."""
        result = consume(b"<html>bad gateway</html>\n")
        assert result.frames == 0
        assert result.malformed == 1

    def test_tool_call_clears_text(self):
        """Tool-call turns have no display text."""
        result = consume(tool_frames("navigate_to_screen", {"key": "home"}))
        assert result.tool_calls == [ToolCall(NAV, {"key": "home"})]
        assert result.text == ""

    def test_duplicate_tool_calls_across_frames(self):
        """The same tool arriving in several frames is kept once."""
        body = ndjson(
            {"message": {"tool_calls": [{"function": {"name": "theme", "arguments": {"mode": "dark"}}}]}},
            {"message": {"tool_calls": [{"function": {"name": "change_theme", "arguments": {"mode": "light"}}}]}},
            {"message": {"tool_calls": [{"function": {"name": "nav", "arguments": {"key": "home"}}}]}},
            {"done": True},
        )
        result = consume(body)
        assert result.tool_calls == [ToolCall(THEME, {"mode": "dark"}), ToolCall(NAV, {"key": "home"})]

    def test_inline_tool_call_fallback(self):
        """Tool calls written into the text are recovered."""
        result = consume(text_frames('{"name": "nav", "arguments": {"key": "settings"}}'))
        assert result.tool_calls == [ToolCall(NAV, {"key": "settings"})]
        assert result.text == ""

    def test_think_tags_removed(self):
        """Reasoning blocks never reach the display text."""
        result = consume(text_frames("<think>plan</think>", "Đã mở."))
        assert result.text == "Đã mở."

    def test_output_capped(self):
        """Display text is truncated to max_output_length."""
        result = consume(text_frames("a" * 50), max_output_length=10)
        assert result.text == "a" * 10 + "..."

    def test_str_chunks(self):
        """Text chunks are accepted as well as bytes."""
        assert consume(text_frames("ok").decode("utf-8")).text == "ok"

    def test_updates_are_coalesced(self):
        """Rapid fragments produce fewer UI updates than frames."""
        updates = []

        async def run():
            processor = StreamProcessor(on_update=updates.append, debounce_ms=1000)
            return await processor.consume(chunked(text_frames("a", "b", "c")))

        result = asyncio.run(run())
        assert result.text == "abc"
        # The pending flush is dropped when the stream ends
        assert updates == []

    def test_partial_text(self):
        """partial_text() exposes what arrived before a stop."""

        async def run():
            processor = StreamProcessor(debounce_ms=0)
            await processor.consume(chunked(ndjson({"message": {"content": "đang "}}, {"message": {"content": "mở"}})))
            return processor.partial_text()

        assert asyncio.run(run()) == "đang mở"


class TestUpdateCoalescer:
    """Test collect-then-flush delivery."""

    def test_latest_value_delivered_once(self):
        """Only the newest value of a burst is delivered."""
        delivered = []

        async def run():
            coalescer = UpdateCoalescer(delivered.append, debounce_ms=10)
            for value in ("a", "ab", "abc"):
                coalescer.push(value)
            assert coalescer.pending
            await asyncio.sleep(0.05)

        asyncio.run(run())
        assert delivered == ["abc"]

    def test_cancel_drops_pending(self):
        """cancel() discards the pending value."""
        delivered = []

        async def run():
            coalescer = UpdateCoalescer(delivered.append, debounce_ms=10)
            coalescer.push("a")
            coalescer.cancel()
            await asyncio.sleep(0.03)

        asyncio.run(run())
        assert delivered == []

    def test_without_loop_flushes_immediately(self):
        """Outside an event loop values are delivered synchronously."""
        delivered = []
        coalescer = UpdateCoalescer(delivered.append)
        coalescer.push("x")
        assert delivered == ["x"]
        assert not coalescer.pending
