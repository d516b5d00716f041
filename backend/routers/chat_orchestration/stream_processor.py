"""
CareNav Stream Processor - Reads the model's NDJSON response stream.

Each line of the body is one JSON frame:
    {"message": {"role": ..., "content": ..., "tool_calls": [...]}, "done": false}

The processor accumulates text fragments, collects tool calls (normalized and
de-duplicated by name), and pushes the display text to the UI through an
UpdateCoalescer so rapid fragments produce one transcript write per interval.
Malformed lines are counted and skipped. A body that never yields a valid line
but parses as one JSON object is treated as a non-streamed response.
"""

import asyncio
import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable, Dict, List, Optional, Union

from routers.chat_prompts import sanitize_model_output

from .tool_dispatch import ToolCall, extract_inline_tool_call, normalize_tool_calls

logger = logging.getLogger(__name__)


class UpdateCoalescer:
    """
    Collect-then-flush queue for display updates.

    push() stores the latest value and arms a timer if none is armed; when the
    timer fires the latest value is delivered once. Without a running loop the
    value is delivered immediately.
    """

    def __init__(self, on_flush: Callable[[str], None], debounce_ms: float = 30):
        self._on_flush = on_flush
        self._delay = max(debounce_ms, 0) / 1000.0
        self._pending: Optional[str] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def push(self, value: str) -> None:
        self._pending = value
        if self._handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._handle = loop.call_later(self._delay, self.flush)

    def flush(self) -> None:
        self._handle = None
        if self._pending is None:
            return
        value, self._pending = self._pending, None
        self._on_flush(value)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None


@dataclass
class StreamResult:
    """Outcome of one consumed stream.

    Attributes:
        text: Sanitized display text (empty when tool calls were returned)
        tool_calls: Canonical tool calls, one per tool name, in arrival order
        raw_text: Concatenated content fragments as received
        frames: Number of valid frames processed
        malformed: Number of lines skipped as unparseable
    """

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    raw_text: str = ""
    frames: int = 0
    malformed: int = 0


class StreamProcessor:
    """
    Usage:
        processor = StreamProcessor(on_update=lambda text: ..., debounce_ms=30)
        result = await processor.consume(response.aiter_bytes())
    """

    def __init__(
        self,
        on_update: Optional[Callable[[str], None]] = None,
        debounce_ms: float = 30,
        max_output_length: int = 2000,
    ):
        self._on_update = on_update
        self._coalescer = UpdateCoalescer(self._deliver, debounce_ms)
        self.max_output_length = max_output_length
        self._parts: List[str] = []
        self._tool_calls: Dict[str, ToolCall] = {}
        self._frames = 0
        self._malformed = 0

    def _deliver(self, text: str) -> None:
        if self._on_update is not None:
            self._on_update(text)

    @property
    def raw_text(self) -> str:
        return "".join(self._parts)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self._tool_calls)

    def partial_text(self) -> str:
        """Display text received so far (used when the stream is cancelled)."""
        if self._tool_calls:
            return ""
        return sanitize_model_output(self.raw_text, self.max_output_length)

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def _handle_frame(self, frame: Any) -> bool:
        """Apply one decoded frame. Returns True when the frame ends the stream."""
        if not isinstance(frame, dict):
            self._malformed += 1
            return False
        self._frames += 1

        message = frame.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            self._parts.append(content)

        for call in normalize_tool_calls(message):
            if call.name in self._tool_calls:
                logger.debug(f"Duplicate {call.name} tool call ignored")
                continue
            self._tool_calls[call.name] = call

        if content and not self._tool_calls:
            self._coalescer.push(sanitize_model_output(self.raw_text, self.max_output_length))

        return bool(frame.get("done"))

    def _handle_line(self, line: str) -> bool:
        line = line.strip()
        if not line:
            return False
        try:
            frame = json.loads(line)
        except json.JSONDecodeError:
            self._malformed += 1
            logger.debug(f"Skipping malformed stream line: {line[:80]!r}")
            return False
        return self._handle_frame(frame)

    # -------------------------------------------------------------------------
    # Consume
    # -------------------------------------------------------------------------

    async def consume(self, chunks: AsyncIterable[Union[bytes, str]]) -> StreamResult:
        """
        Read the whole stream.

        Args:
            chunks: Async iterable of body chunks (bytes or str)

        Returns:
            StreamResult
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        body: List[str] = []
        buffer = ""
        done = False

        try:
            async for chunk in chunks:
                text = decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
                body.append(text)
                buffer += text
                lines = buffer.split("\n")
                buffer = lines.pop()
                for line in lines:
                    if self._handle_line(line):
                        done = True
                        break
                if done:
                    break

            if not done:
                tail = decoder.decode(b"", final=True)
                body.append(tail)
                buffer += tail
                self._handle_line(buffer)

            if self._frames == 0 and self._malformed:
                # Pretty-printed single response
                try:
                    frame = json.loads("".join(body))
                except json.JSONDecodeError:
                    frame = None
                if isinstance(frame, dict):
                    self._malformed = 0
                    self._handle_frame(frame)
        finally:
            self._coalescer.cancel()

        raw_text = self.raw_text
        tool_calls = list(self._tool_calls.values())
        if not tool_calls:
            inline = extract_inline_tool_call(raw_text)
            if inline is not None:
                logger.info(f"Recovered inline {inline.name} tool call from text")
                tool_calls = [inline]

        text = "" if tool_calls else sanitize_model_output(raw_text, self.max_output_length)
        if self._malformed:
            logger.warning(f"Stream finished with {self._malformed} malformed line(s)")
        logger.debug(f"Stream consumed: {self._frames} frames, {len(raw_text)} chars, {len(tool_calls)} tool calls")

        return StreamResult(
            text=text,
            tool_calls=tool_calls,
            raw_text=raw_text,
            frames=self._frames,
            malformed=self._malformed,
        )
