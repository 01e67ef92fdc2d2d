"""
Async blocking write coalescer.

asyncio twin of :class:`write_coalescer.writer.BlockingCoalescer`: every
``await write()`` resolves once the flush carrying its bytes completed.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Optional

from loguru import logger

from .buffer import AsyncFlushTicket, aflush_buffer, validate_params
from .errors import CoalescerClosedError
from .metrics import COALESCER_WRITES_TOTAL
from .settings import CoalescerSettings, get_settings
from .types import AsyncSink


class AsyncBlockingCoalescer:
    """Coalesces concurrent ``await write()`` calls into single sink writes.

    Must be created from a running event loop; the flusher task is spawned
    in the constructor.
    """

    mode = "blocking"

    def __init__(
        self, sink: AsyncSink, timeout: float, max_size: int, *, name: str = "coalescer"
    ):
        validate_params(timeout, max_size)
        self._sink = sink
        self._timeout = timeout
        self._max_size = max_size
        self._name = name

        # Held across the sink write; at most one flush in flight
        self._lock = asyncio.Lock()
        self._buffer = bytearray()
        self._ticket = AsyncFlushTicket()
        self._closed = False

        self._notify = asyncio.Event()
        self._closing = asyncio.Event()

        self._worker = asyncio.get_running_loop().create_task(
            self._flusher(), name=f"{name}-flusher"
        )

    @classmethod
    def from_settings(
        cls, sink: AsyncSink, settings: Optional[CoalescerSettings] = None
    ) -> "AsyncBlockingCoalescer":
        s = settings or get_settings()
        return cls(sink, s.timeout, s.max_size, name=s.name)

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    async def write(self, data: bytes) -> int:
        if self._closed:
            raise CoalescerClosedError(f"{self._name}: write to closed coalescer")

        # Appending never awaits, so no lock is needed on the event loop
        self._buffer += data
        ticket = self._ticket
        COALESCER_WRITES_TOTAL.labels(name=self._name, mode=self.mode).inc()
        self._notify.set()

        error = await ticket.wait()
        if error is not None:
            raise error
        return len(data)

    async def close(self) -> None:
        """Flush residual bytes, stop the flusher task and close the sink."""
        if self._closed:
            return
        self._closed = True

        self._closing.set()
        self._notify.set()
        await self._worker
        logger.debug(f"{self._name}: flusher stopped")

        close_fn = getattr(self._sink, "close", None)
        if callable(close_fn):
            result = close_fn()
            if inspect.isawaitable(result):
                await result

    async def __aenter__(self) -> "AsyncBlockingCoalescer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------- internals

    async def _flusher(self) -> None:
        logger.debug(
            f"{self._name}: flusher started (timeout={self._timeout}s, max_size={self._max_size})"
        )
        while True:
            await self._notify.wait()
            self._notify.clear()

            if not self._closing.is_set() and len(self._buffer) < self._max_size:
                try:
                    await asyncio.wait_for(self._closing.wait(), timeout=self._timeout)
                except asyncio.TimeoutError:
                    pass

            async with self._lock:
                stop = self._closed
                ticket, self._ticket = self._ticket, AsyncFlushTicket()
                error = await aflush_buffer(
                    self._sink, self._buffer, name=self._name, mode=self.mode
                )

            ticket.complete(error)
            if stop:
                return
