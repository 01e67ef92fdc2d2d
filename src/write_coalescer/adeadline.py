"""
Async non-blocking (deadline) write coalescer.

asyncio twin of :class:`write_coalescer.deadline.DeadlineCoalescer`.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Optional

from loguru import logger

from .buffer import ErrorSlot, aflush_buffer, validate_params
from .errors import CoalescerClosedError
from .metrics import COALESCER_WRITES_TOTAL
from .settings import CoalescerSettings, get_settings
from .types import AsyncSink


class AsyncDeadlineCoalescer:
    """Buffers ``await write()`` calls and flushes them within ``timeout`` seconds."""

    mode = "deadline"

    def __init__(
        self, sink: AsyncSink, timeout: float, max_size: int, *, name: str = "coalescer"
    ):
        validate_params(timeout, max_size)
        self._sink = sink
        self._timeout = timeout
        self._max_size = max_size
        self._name = name

        self._lock = asyncio.Lock()
        self._buffer = bytearray()
        self._errors = ErrorSlot(name, self.mode)
        self._closed = False

        self._notify = asyncio.Event()
        self._closing = asyncio.Event()

        self._worker = asyncio.get_running_loop().create_task(
            self._flusher(), name=f"{name}-flusher"
        )

    @classmethod
    def from_settings(
        cls, sink: AsyncSink, settings: Optional[CoalescerSettings] = None
    ) -> "AsyncDeadlineCoalescer":
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
        """Buffer ``data``; awaits the sink only when ``data`` fills the buffer."""
        async with self._lock:
            if self._closed:
                raise CoalescerClosedError(f"{self._name}: write to closed coalescer")

            error = self._errors.take()
            if error is not None:
                raise error

            self._buffer += data
            COALESCER_WRITES_TOTAL.labels(name=self._name, mode=self.mode).inc()

            if len(self._buffer) >= self._max_size:
                error = await aflush_buffer(
                    self._sink, self._buffer, name=self._name, mode=self.mode
                )
                if error is not None:
                    raise error
                return len(data)

        self._notify.set()
        return len(data)

    async def close(self) -> None:
        """Flush residual bytes, stop the flusher task and close the sink.

        The pending background error, or else the final flush error, is
        raised after the sink has been released.
        """
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = self._errors.take()
            flush_error = await aflush_buffer(
                self._sink, self._buffer, name=self._name, mode=self.mode
            )

        self._closing.set()
        self._notify.set()
        await self._worker
        logger.debug(f"{self._name}: flusher stopped")

        if pending is None:
            pending = flush_error

        close_fn = getattr(self._sink, "close", None)
        if callable(close_fn):
            try:
                result = close_fn()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                if pending is None:
                    raise
                logger.warning(f"{self._name}: sink close failed after flush error: {exc}")

        if pending is not None:
            raise pending

    async def __aenter__(self) -> "AsyncDeadlineCoalescer":
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
            if self._closing.is_set():
                return
            self._notify.clear()

            try:
                await asyncio.wait_for(self._closing.wait(), timeout=self._timeout)
            except asyncio.TimeoutError:
                pass

            async with self._lock:
                if self._closed:
                    return
                error = await aflush_buffer(
                    self._sink, self._buffer, name=self._name, mode=self.mode
                )
                if error is not None:
                    self._errors.put(error)
