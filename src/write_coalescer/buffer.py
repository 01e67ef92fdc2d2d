"""
Buffer and error-state bookkeeping shared by every coalescer variant.

Nothing in here is locked on its own: callers hold the owning coalescer's
lock (or run on its event loop) while touching these objects.
"""

from __future__ import annotations

import asyncio
import threading
from time import perf_counter
from typing import Optional

from loguru import logger

from .errors import ShortWriteError
from .metrics import (
    COALESCER_ERRORS_DROPPED_TOTAL,
    COALESCER_FLUSH_BYTES,
    COALESCER_FLUSH_LATENCY_MS,
    COALESCER_FLUSHES_TOTAL,
)


def validate_params(timeout: float, max_size: int) -> None:
    if timeout < 0:
        raise ValueError("timeout must be >= 0")
    if max_size <= 0:
        raise ValueError("max_size must be > 0")


def check_written(written: Optional[int], expected: int) -> None:
    """Raise ShortWriteError if the sink accepted less than ``expected`` bytes."""
    if written is None:
        return
    if written < expected:
        raise ShortWriteError(written, expected)


def _outcome(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "success"
    if isinstance(exc, ShortWriteError):
        return "short_write"
    return "error"


def _record(name: str, mode: str, size: int, started: float, exc: Optional[BaseException]):
    COALESCER_FLUSH_BYTES.labels(name=name, mode=mode).observe(size)
    COALESCER_FLUSH_LATENCY_MS.labels(name=name, mode=mode).observe(
        (perf_counter() - started) * 1000.0
    )
    COALESCER_FLUSHES_TOTAL.labels(name=name, mode=mode, outcome=_outcome(exc)).inc()
    if exc is None:
        logger.debug(f"{name}: flushed {size} bytes ({mode})")
    else:
        logger.warning(f"{name}: flush of {size} bytes failed: {type(exc).__name__}: {exc}")


def flush_buffer(sink, buffer: bytearray, *, name: str, mode: str) -> Optional[Exception]:
    """Hand the whole buffer to ``sink`` in one call and clear it.

    The buffer is cleared whatever the outcome; failed bytes are not resent.
    Returns the flush error instead of raising it so the caller can fan it
    out to every waiter of the cycle.
    """
    if not buffer:
        return None

    data = bytes(buffer)
    del buffer[:]
    started = perf_counter()
    try:
        check_written(sink.write(data), len(data))
    except Exception as exc:
        _record(name, mode, len(data), started, exc)
        return exc
    _record(name, mode, len(data), started, None)
    return None


async def aflush_buffer(sink, buffer: bytearray, *, name: str, mode: str) -> Optional[Exception]:
    """Async counterpart of :func:`flush_buffer`."""
    if not buffer:
        return None

    data = bytes(buffer)
    del buffer[:]
    started = perf_counter()
    try:
        check_written(await sink.write(data), len(data))
    except Exception as exc:
        _record(name, mode, len(data), started, exc)
        return exc
    _record(name, mode, len(data), started, None)
    return None


class ErrorSlot:
    """Single pending-error slot; the latest unseen error overwrites older ones."""

    def __init__(self, name: str, mode: str):
        self._name = name
        self._mode = mode
        self._error: Optional[Exception] = None

    def put(self, error: Exception) -> None:
        if self._error is not None:
            COALESCER_ERRORS_DROPPED_TOTAL.labels(name=self._name, mode=self._mode).inc()
            logger.warning(
                f"{self._name}: unseen flush error overwritten "
                f"({type(self._error).__name__}: {self._error})"
            )
        self._error = error

    def take(self) -> Optional[Exception]:
        """Return and clear the pending error (consumed at most once)."""
        error, self._error = self._error, None
        return error

    @property
    def pending(self) -> bool:
        return self._error is not None


class FlushTicket:
    """Completion signal for one flush cycle of a blocking coalescer.

    Writers grab the current ticket while appending; the worker swaps in a
    fresh ticket when it takes the buffer, so every waiter sees the result
    of the flush that carried its own bytes.
    """

    __slots__ = ("_done", "error")

    def __init__(self) -> None:
        self._done = threading.Event()
        self.error: Optional[Exception] = None

    def complete(self, error: Optional[Exception]) -> None:
        self.error = error
        self._done.set()

    def wait(self) -> Optional[Exception]:
        self._done.wait()
        return self.error


class AsyncFlushTicket:
    """asyncio flavour of :class:`FlushTicket`."""

    __slots__ = ("_done", "error")

    def __init__(self) -> None:
        self._done = asyncio.Event()
        self.error: Optional[Exception] = None

    def complete(self, error: Optional[Exception]) -> None:
        self.error = error
        self._done.set()

    async def wait(self) -> Optional[Exception]:
        await self._done.wait()
        return self.error
