"""Server-sent event framing and the bounded chunk stream handed to callers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
import logging
from typing import Any

from agentwire.errors import CancelledError
from agentwire.responses import StreamingChunk

log = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
STREAM_BUFFER_SIZE = 16


@dataclass(frozen=True)
class SSEEvent:
    """One dispatched server-sent event."""

    data: str
    event: str | None = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL


class SSEDecoder:
    """Incremental SSE frame parser.

    Bytes may arrive split at any position; partial lines are buffered
    until their terminator shows up. Only ``data`` and ``event`` fields are
    interpreted, comments and other fields are dropped.
    """

    def __init__(self) -> None:
        self._buffer = b""
        self._data: list[str] = []
        self._event: str | None = None

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        self._buffer += chunk
        events: list[SSEEvent] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = self._buffer[:idx]
            self._buffer = self._buffer[idx + 1 :]
            event = self._line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Emit whatever is pending at end of input."""
        events: list[SSEEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, b""
            event = self._line(line)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _line(self, raw: bytes) -> SSEEvent | None:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        line = raw.decode("utf-8", errors="replace")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        return None

    def _dispatch(self) -> SSEEvent | None:
        if not self._data:
            self._event = None
            return None
        event = SSEEvent(data="\n".join(self._data), event=self._event)
        self._data = []
        self._event = None
        return event


_END = object()


@dataclass(frozen=True)
class _Failure:
    error: BaseException


class ChunkStream:
    """A bounded, typed stream of :class:`StreamingChunk` values.

    One producer task reads the response body, frames it, parses each event
    and queues the chunks. The stream ends on ``[DONE]``, end of body, a
    failure or :meth:`aclose`; the body is released and the stream is marked
    closed exactly once in every case. A failure is delivered in-band: the
    consumer receives every chunk parsed before it, then the error is raised
    from the iteration and kept on :attr:`error`.

    Usage:
        async with await client.execute_stream(request) as stream:
            async for chunk in stream:
                print(chunk.content(), end="")
    """

    def __init__(
        self,
        body: AsyncIterable[bytes],
        parse_chunk: Callable[[bytes], StreamingChunk],
        *,
        release: Callable[[], Awaitable[None]] | None = None,
        deadline: float | None = None,
        maxsize: int = STREAM_BUFFER_SIZE,
        name: str = "stream",
        on_error: Callable[[BaseException], BaseException] | None = None,
    ) -> None:
        self._body = body
        self._parse = parse_chunk
        self._release_body = release
        self._deadline = deadline
        self._name = name
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()
        self._released = False
        self._exhausted = False
        self._pumping = True
        self._error_hooks: list[Callable[[BaseException], BaseException]] = []
        if on_error is not None:
            self._error_hooks.append(on_error)
        self.error: BaseException | None = None
        self.close_count = 0
        self._task = asyncio.create_task(self._produce(), name=f"agentwire-{name}")
        log.debug("Stream %s opened", name)

    @classmethod
    def from_chunks(
        cls, chunks: list[StreamingChunk], *, error: BaseException | None = None
    ) -> ChunkStream:
        """Build a stream that replays in-memory chunks (used by mocks)."""

        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield b"data: " + chunk.model_dump_json().encode("utf-8") + b"\n\n"
            if error is not None:
                raise error
            yield b"data: [DONE]\n\n"

        return cls(body(), StreamingChunk.model_validate_json, name="memory")

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamingChunk:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._exhausted = True
            raise item.error
        return item

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def add_error_hook(self, hook: Callable[[BaseException], BaseException]) -> None:
        """Map errors raised by the producer before they reach the consumer.

        Hooks run in registration order; each returns the error to deliver.
        """
        self._error_hooks.append(hook)

    async def aclose(self) -> None:
        """Stop the producer, release the body and end iteration."""
        if not self._task.done():
            # Past the pump the producer is only releasing; let it finish.
            if self._pumping:
                self._task.cancel()
            await asyncio.wait([self._task])
        # A producer cancelled before its first step never reached its finally.
        await self._release()
        self._mark_closed()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    async def collect(self) -> list[StreamingChunk]:
        """Drain the remaining chunks into a list."""
        return [chunk async for chunk in self]

    async def text(self) -> str:
        """Concatenate the content of the remaining chunks."""
        return "".join(chunk.content() for chunk in await self.collect())

    async def _pump(self) -> None:
        decoder = SSEDecoder()
        async for raw in self._body:
            for event in decoder.feed(raw):
                if await self._deliver(event):
                    return
        for event in decoder.flush():
            if await self._deliver(event):
                return

    async def _deliver(self, event: SSEEvent) -> bool:
        if event.is_done:
            return True
        if not event.data.strip():
            return False
        await self._queue.put(self._parse(event.data.encode("utf-8")))
        return False

    async def _produce(self) -> None:
        try:
            async with asyncio.timeout_at(self._deadline):
                await self._pump()
        except TimeoutError:
            await self._fail(CancelledError(f"Stream {self._name} deadline expired"))
        except Exception as e:
            await self._fail(e)
        else:
            await self._queue.put(_END)
        finally:
            self._pumping = False
            await self._release()
            self._mark_closed()

    async def _fail(self, error: BaseException) -> None:
        log.debug("Stream %s failed: %s", self._name, type(error).__name__)
        for hook in self._error_hooks:
            error = hook(error)
        self.error = error
        await self._queue.put(_Failure(error))

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._release_body is not None:
            await self._release_body()

    def _mark_closed(self) -> None:
        if self._closed.is_set():
            return
        self.close_count += 1
        self._closed.set()
        log.debug("Stream %s closed", self._name)
