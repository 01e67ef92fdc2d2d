"""
Blocking write coalescer.

Every ``write()`` parks the calling thread until the buffer holding its bytes
has been flushed; concurrent writers that land in the same flush window all
return together, sharing one write on the underlying sink.
"""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from .buffer import FlushTicket, flush_buffer, validate_params
from .errors import CoalescerClosedError
from .metrics import COALESCER_WRITES_TOTAL
from .settings import CoalescerSettings, get_settings
from .types import Sink


class BlockingCoalescer:
    """Coalesces concurrent write calls into single writes on ``sink``.

    A write is parked for up to ``timeout`` seconds, waiting for other writes
    to arrive; anything that arrives in that window is merged into the same
    sink write. Once the buffer holds ``max_size`` bytes or more when the
    flusher wakes up, it skips the wait and flushes straight away.

    Usage:
        with BlockingCoalescer(sock_file, timeout=0.01, max_size=1400) as bw:
            bw.write(b"ping")  # returns 4 once the batch hit the socket
    """

    mode = "blocking"

    def __init__(self, sink: Sink, timeout: float, max_size: int, *, name: str = "coalescer"):
        validate_params(timeout, max_size)
        self._sink = sink
        self._timeout = timeout
        self._max_size = max_size
        self._name = name

        # Protects _buffer, _ticket & _closed
        self._lock = threading.Lock()
        self._buffer = bytearray()
        self._ticket = FlushTicket()
        self._closed = False

        # _notify coalesces pending-write signals into a single wakeup
        self._notify = threading.Event()
        self._closing = threading.Event()

        self._worker = threading.Thread(target=self._flusher, name=f"{name}-flusher", daemon=True)
        self._worker.start()

    @classmethod
    def from_settings(
        cls, sink: Sink, settings: Optional[CoalescerSettings] = None
    ) -> "BlockingCoalescer":
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
        """Bytes currently waiting for a flush."""
        with self._lock:
            return len(self._buffer)

    def write(self, data: bytes) -> int:
        """Buffer ``data`` and block until the flush carrying it completes.

        Returns ``len(data)``; raises the flush error (sink error or
        ShortWriteError) if the flush carrying these bytes failed.
        """
        with self._lock:
            if self._closed:
                raise CoalescerClosedError(f"{self._name}: write to closed coalescer")
            self._buffer += data
            ticket = self._ticket

        COALESCER_WRITES_TOTAL.labels(name=self._name, mode=self.mode).inc()
        self._notify.set()  # no-op if a wakeup is already pending

        error = ticket.wait()
        if error is not None:
            raise error
        return len(data)

    def close(self) -> None:
        """Flush residual bytes, stop the flusher and close the sink if it can be closed.

        Writers still parked are released with the final flush's result.
        Calling close() again is a no-op.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._closing.set()
        self._notify.set()
        self._worker.join()
        logger.debug(f"{self._name}: flusher stopped")

        close_fn = getattr(self._sink, "close", None)
        if callable(close_fn):
            close_fn()

    def __enter__(self) -> "BlockingCoalescer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------- internals

    def _flusher(self) -> None:
        logger.debug(f"{self._name}: flusher started (timeout={self._timeout}s, max_size={self._max_size})")
        while True:
            self._notify.wait()
            self._notify.clear()

            if not self._closing.is_set() and self.buffered < self._max_size:
                # Coalescing window; cut short by close()
                self._closing.wait(self._timeout)

            with self._lock:
                stop = self._closed
                ticket, self._ticket = self._ticket, FlushTicket()
                error = flush_buffer(self._sink, self._buffer, name=self._name, mode=self.mode)

            ticket.complete(error)
            if stop:
                return
