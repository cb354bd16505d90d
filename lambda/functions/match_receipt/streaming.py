"""
Event Streaming
===============

Push channel for matching-agent progress and its Server-Sent Events
transport.

Frames on the wire:

    event: tool_call
    data: {"name": "search_candidates", "input": {...}}

The agent runs on a long-lived background event loop; the WSGI thread
drains a queue of events and writes them as frames. Closing the
generator (client disconnect) cancels the running agent.
"""

import asyncio
import concurrent.futures
import inspect
import json
import queue
import threading
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional

from aws_lambda_powertools import Logger

from models import EventType, PipelineEvent

logger = Logger()

KEEP_ALIVE_SECONDS = 15.0
OPEN_FRAME = ": connected\n\n"
KEEP_ALIVE_FRAME = ": keep-alive\n\n"

STREAM_ENDED_WITHOUT_RESULT = "Matching ended without a result"

_KNOWN_TYPES = {t.value: t for t in EventType}


class ChannelClosedError(RuntimeError):
    """An event was sent after the stream's terminal event."""


class EventChannel:
    """
    Ordered, typed event channel.

    Every send is delivered to the sink before it returns, so an observer
    sees events in emission order. The channel closes itself after the
    first ``complete`` or ``error`` event.
    """

    def __init__(self, sink: Callable[[PipelineEvent], Any]):
        self._sink = sink
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: PipelineEvent) -> None:
        if self._closed:
            raise ChannelClosedError(f"Cannot send {event.type.value} after the terminal event")
        if event.is_terminal:
            self._closed = True
        delivered = self._sink(event)
        if inspect.isawaitable(delivered):
            await delivered


def format_sse(event: PipelineEvent) -> str:
    """Encode one event as an SSE frame."""
    return f"event: {event.type.value}\ndata: {json.dumps(event.data, default=str)}\n\n"


def parse_sse(lines: Iterable[str]) -> Iterator[PipelineEvent]:
    """
    Decode SSE frames back into events.

    Comment lines are ignored and so are event types this version does
    not know, so newer producers stay readable.
    """
    event_type: Optional[str] = None
    data_lines: list[str] = []

    def flush() -> Optional[PipelineEvent]:
        if event_type is None and not data_lines:
            return None
        known = _KNOWN_TYPES.get(event_type or "message")
        if known is None:
            logger.debug(f"Skipping unknown event type: {event_type}")
            return None
        try:
            payload = json.loads("\n".join(data_lines)) if data_lines else {}
        except json.JSONDecodeError:
            logger.warning(f"Skipping {event_type} frame with malformed data")
            return None
        return PipelineEvent(known, payload if isinstance(payload, dict) else {"value": payload})

    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            event = flush()
            if event is not None:
                yield event
            event_type, data_lines = None, []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_type = value
        elif name == "data":
            data_lines.append(value)

    event = flush()
    if event is not None:
        yield event


class BackgroundLoop:
    """
    A single event loop running forever on a daemon thread.

    Async SDK clients are bound to the loop they were first used on, so
    every request is scheduled onto this one loop.
    """

    def __init__(self, name: str = "match-receipt-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro: Awaitable) -> concurrent.futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Awaitable, timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the loop and block for its result."""
        return self.submit(coro).result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)


def sse_stream(
    loop: BackgroundLoop,
    produce: Callable[[EventChannel], Awaitable[Any]],
    keep_alive_seconds: float = KEEP_ALIVE_SECONDS,
) -> Iterator[str]:
    """
    Run ``produce`` on the background loop and yield its events as SSE frames.

    The opening comment frame is yielded before any work is scheduled.
    The stream always ends with exactly one terminal event; if the
    producer fails or returns without one, an ``error`` event is sent.
    """
    frames: queue.Queue = queue.Queue()
    finished = object()
    channel = EventChannel(frames.put)

    async def drive() -> None:
        try:
            await produce(channel)
        except Exception as e:
            logger.exception(f"Event producer failed: {e}")
            if not channel.closed:
                await channel.send(PipelineEvent.error(str(e)))
        if not channel.closed:
            await channel.send(PipelineEvent.error(STREAM_ENDED_WITHOUT_RESULT))

    yield OPEN_FRAME

    future = loop.submit(drive())
    future.add_done_callback(lambda _: frames.put(finished))
    try:
        while True:
            try:
                item = frames.get(timeout=keep_alive_seconds)
            except queue.Empty:
                yield KEEP_ALIVE_FRAME
                continue
            if item is finished:
                break
            yield format_sse(item)
    finally:
        if not future.done():
            logger.info("Stream closed by client, cancelling matching run")
            future.cancel()
