"""
Backpressured async stream of emissions.

An :class:`EventStream` subscribes to one key and hands every emission to
exactly one pull, first come first served:

    stream = bus.async_iterable("tick")
    async for item in stream:
        handle(*item.args)
        if done:
            item.cancel("finished")

Two FIFO queues meet in :meth:`EventStream._match`: pulls waiting for an
emission, and emissions waiting for a pull. The stream never ends by itself;
cancel it to release the subscription and anything still buffered.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from event_chain.config import OverflowPolicy
from event_chain.events.errors import StreamCancelledError
from event_chain.events.watcher import EventWatcher
from event_chain.logging_config import get_logger

if TYPE_CHECKING:
    from event_chain.events.bus import EventChain

logger = get_logger(__name__)


@dataclass(frozen=True)
class StreamItem:
    """One emission delivered by a stream, plus a way to stop the stream."""

    args: tuple[Any, ...]
    cancel: Callable[..., None]


class EventStream:
    """
    Async iterator over the emissions of one key.

    Args:
        bus: Bus to subscribe on
        key: Event key to follow
        max_buffer: Emissions kept while nobody pulls (None = unbounded)
        overflow: Which emission to discard once ``max_buffer`` is exceeded
    """

    def __init__(
        self,
        bus: EventChain,
        key: Hashable,
        max_buffer: int | None = None,
        overflow: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
    ):
        if max_buffer is not None and max_buffer < 1:
            raise ValueError("max_buffer must be >= 1")
        self.key = key
        self.dropped = 0
        self._log = logger.bind(key=key)
        self._max_buffer = max_buffer
        self._overflow = OverflowPolicy(overflow)
        self._requests: deque[asyncio.Future[StreamItem]] = deque()
        self._buffer: deque[tuple[Any, ...]] = deque()
        self._closed = False
        self._watcher = EventWatcher(bus, key, lambda watcher: self._on_emit).start()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> int:
        return sum(1 for request in self._requests if not request.done())

    def _on_emit(self, *args: Any) -> None:
        if self._closed:
            return
        self._buffer.append(args)
        self._match()
        if self._max_buffer is not None and len(self._buffer) > self._max_buffer:
            if self._overflow is OverflowPolicy.DROP_NEWEST:
                self._buffer.pop()
            else:
                self._buffer.popleft()
            self.dropped += 1
            self._log.warning(
                "event_stream_overflow",
                policy=self._overflow.value,
                dropped=self.dropped,
            )

    def _match(self) -> None:
        while self._requests and self._buffer:
            request = self._requests.popleft()
            # The pulling task was cancelled; keep the emission for the next pull
            if request.done():
                continue
            request.set_result(StreamItem(self._buffer.popleft(), self.cancel))

    def cancel(self, reason: Any = None) -> None:
        """
        Stop the stream.

        Unsubscribes from the key, fails every pending pull with ``reason``
        and drops buffered emissions. An exception instance is raised as is;
        any other value is wrapped in :class:`StreamCancelledError`.
        """
        if self._closed:
            return
        self._closed = True
        self._watcher.cancel()

        failed = 0
        while self._requests:
            request = self._requests.popleft()
            if request.done():
                continue
            if isinstance(reason, BaseException):
                request.set_exception(reason)
            else:
                request.set_exception(StreamCancelledError(reason))
            failed += 1

        self._log.debug(
            "event_stream_cancelled",
            reason=repr(reason),
            failed_pulls=failed,
            discarded=len(self._buffer),
        )
        self._buffer.clear()

    async def aclose(self) -> None:
        self.cancel("closed")

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> StreamItem:
        if self._closed:
            raise StopAsyncIteration
        request: asyncio.Future[StreamItem] = asyncio.get_running_loop().create_future()
        self._requests.append(request)
        self._match()
        try:
            return await request
        except asyncio.CancelledError:
            if request in self._requests:
                self._requests.remove(request)
            elif request.done() and not request.cancelled() and not self._closed:
                # Matched just before the pull was cancelled; hand it to the next pull
                self._buffer.appendleft(request.result().args)
                self._match()
            raise

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"<EventStream key={self.key!r} buffered={self.buffered} "
            f"pending={self.pending} closed={self._closed}>"
        )
