"""
Non-blocking (deadline) write coalescer.

``write()`` returns as soon as the payload is buffered. A background flusher
writes the buffer out ``timeout`` seconds after the first pending write;
its failures are held back and raised by the next ``write()`` or ``close()``.
"""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from .buffer import ErrorSlot, flush_buffer, validate_params
from .errors import CoalescerClosedError
from .metrics import COALESCER_WRITES_TOTAL
from .settings import CoalescerSettings, get_settings
from .types import Sink


class DeadlineCoalescer:
    """Buffers writes and flushes them within ``timeout`` seconds.

    A write that brings the buffer to ``max_size`` bytes or more flushes the
    buffer inline, on the calling thread, and reports that flush's error
    directly. Errors of background flushes stay pending until observed;
    when several pile up unseen, the latest one wins.
    """

    mode = "deadline"

    def __init__(self, sink: Sink, timeout: float, max_size: int, *, name: str = "coalescer"):
        validate_params(timeout, max_size)
        self._sink = sink
        self._timeout = timeout
        self._max_size = max_size
        self._name = name

        # Protects _buffer, _errors & _closed
        self._lock = threading.Lock()
        self._buffer = bytearray()
        self._errors = ErrorSlot(name, self.mode)
        self._closed = False

        self._notify = threading.Event()
        self._closing = threading.Event()

        self._worker = threading.Thread(target=self._flusher, name=f"{name}-flusher", daemon=True)
        self._worker.start()

    @classmethod
    def from_settings(
        cls, sink: Sink, settings: Optional[CoalescerSettings] = None
    ) -> "DeadlineCoalescer":
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
        with self._lock:
            return len(self._buffer)

    def write(self, data: bytes) -> int:
        """Buffer ``data``; returns ``len(data)`` without waiting for the sink.

        Raises a pending background flush error instead of buffering, or the
        error of the inline flush when ``data`` fills the buffer.
        """
        with self._lock:
            if self._closed:
                raise CoalescerClosedError(f"{self._name}: write to closed coalescer")

            error = self._errors.take()
            if error is not None:
                raise error

            self._buffer += data
            COALESCER_WRITES_TOTAL.labels(name=self._name, mode=self.mode).inc()

            if len(self._buffer) >= self._max_size:
                error = flush_buffer(self._sink, self._buffer, name=self._name, mode=self.mode)
                if error is not None:
                    raise error
                return len(data)

        self._notify.set()
        return len(data)

    def close(self) -> None:
        """Flush residual bytes, stop the flusher and close the sink.

        The sink is released even when a flush failed; the pending background
        error (or else the final flush error) is raised afterwards. Calling
        close() again is a no-op.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = self._errors.take()
            flush_error = flush_buffer(self._sink, self._buffer, name=self._name, mode=self.mode)

        self._closing.set()
        self._notify.set()
        self._worker.join()
        logger.debug(f"{self._name}: flusher stopped")

        if pending is None:
            pending = flush_error

        close_fn = getattr(self._sink, "close", None)
        if callable(close_fn):
            try:
                close_fn()
            except Exception as exc:
                if pending is None:
                    raise
                logger.warning(f"{self._name}: sink close failed after flush error: {exc}")

        if pending is not None:
            raise pending

    def __enter__(self) -> "DeadlineCoalescer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------- internals

    def _flusher(self) -> None:
        logger.debug(f"{self._name}: flusher started (timeout={self._timeout}s, max_size={self._max_size})")
        while True:
            self._notify.wait()
            if self._closing.is_set():
                return
            self._notify.clear()

            self._closing.wait(self._timeout)

            with self._lock:
                # close() performs the final flush itself
                if self._closed:
                    return
                error = flush_buffer(self._sink, self._buffer, name=self._name, mode=self.mode)
                if error is not None:
                    self._errors.put(error)
