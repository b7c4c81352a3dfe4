# =============================================================================
# Server-Sent Events: Framing, Sink, and Incremental Parser
# =============================================================================
#
# Wire format, one frame per event:
#
#   event: stepStart\n
#   data: {"stepIndex": 0, ...}\n
#   \n
#
# SERVER SIDE:
#   EventStream              asyncio.Queue-backed sink the pipelines write to.
#                            send() after close() is a silent no-op.
#   event_source_response()  runs a producer coroutine as a task and streams
#                            the queue as the HTTP body. When the body
#                            generator ends (normally or because the client
#                            went away) the sink is closed and the producer
#                            task is cancelled.
#
# CLIENT SIDE:
#   SSEParser / aiter_sse_events() rebuild events from arbitrarily split
#   byte or text chunks (multi-byte UTF-8 may straddle chunks; CRLF, comment
#   lines and multi-line data are supported). Invalid UTF-8 bytes decode to
#   U+FFFD instead of raising.
# =============================================================================

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_LINE_END = re.compile(r"\r\n|\r|\n")


def format_sse(event: str, data: Any) -> str:
    """Render one SSE frame. `data` is JSON-encoded on a single line."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------


class EventStream:
    """
    Per-connection event sink.

    Lifecycle: open → emitting → closed. close() is idempotent; once closed
    (including after a client disconnect) sends are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: str, data: Any) -> bool:
        """Queue an event. Returns False if the stream is already closed."""
        if self._closed:
            logger.debug("Dropping '%s' event on closed stream", event)
            return False
        self._queue.put_nowait(format_sse(event, data))
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield encoded frames until the stream is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


Producer = Callable[[EventStream], Awaitable[None]]


async def stream_events(producer: Producer) -> AsyncIterator[str]:
    """Run `producer` against a fresh EventStream and yield its frames."""
    stream = EventStream()
    task = asyncio.create_task(_run_producer(producer, stream))
    try:
        async for frame in stream.frames():
            yield frame
    finally:
        stream.close()
        if not task.done():
            logger.info("Client disconnected, cancelling event producer")
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def _run_producer(producer: Producer, stream: EventStream) -> None:
    try:
        await producer(stream)
    finally:
        stream.close()


def event_source_response(producer: Producer) -> StreamingResponse:
    return StreamingResponse(
        stream_events(producer),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------


@dataclass
class SSEEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None
    retry: int | None = None

    def json(self) -> Any:
        return json.loads(self.data)


class SSEParser:
    """
    Incremental SSE parser.

    Usage:
        parser = SSEParser()
        for chunk in chunks:
            for event in parser.feed(chunk):
                ...
        events = parser.flush()
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_type = ""
        self._data_lines: list[str] = []
        self._last_id: str | None = None
        self._retry: int | None = None

    def feed(self, chunk: bytes | str) -> list[SSEEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        events: list[SSEEvent] = []
        while True:
            match = _LINE_END.search(self._buffer)
            if match is None:
                break
            # A trailing "\r" may be the first half of a split "\r\n"
            if match.group() == "\r" and match.end() == len(self._buffer):
                break
            line = self._buffer[:match.start()]
            self._buffer = self._buffer[match.end():]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Process whatever is buffered at end of input."""
        self._buffer += self._decoder.decode(b"", final=True)
        events = self.feed("")
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r"), ""
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> SSEEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_type = value
        elif field == "data":
            self._data_lines.append(value)
        elif field == "id":
            self._last_id = value
        elif field == "retry" and value.isdigit():
            self._retry = int(value)
        return None

    def _dispatch(self) -> SSEEvent | None:
        if not self._data_lines:
            self._event_type = ""
            return None
        event = SSEEvent(
            event=self._event_type or "message",
            data="\n".join(self._data_lines),
            id=self._last_id,
            retry=self._retry,
        )
        self._event_type = ""
        self._data_lines = []
        return event


async def aiter_sse_events(
    chunks: AsyncIterable[bytes | str],
) -> AsyncIterator[SSEEvent]:
    """Parse an async stream of chunks (e.g. httpx `aiter_bytes()`)."""
    parser = SSEParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
    for event in parser.flush():
        yield event
