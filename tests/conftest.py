"""
Pytest configuration and fixtures for write-coalescer.

Provides cross-platform event loop configuration and fake byte sinks.
"""

import asyncio
import sys
import threading

import pytest

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


class RecordingSink:
    """Thread-safe sink that records every write it receives.

    ``error`` is raised from every write when set; ``short_by`` makes each
    write report that many bytes fewer than it was handed.
    """

    def __init__(self, error: Exception | None = None, short_by: int = 0):
        self.error = error
        self.short_by = short_by
        self.writes: list[bytes] = []
        self.closed = False
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            self.writes.append(bytes(data))
        if self.error is not None:
            raise self.error
        return len(data) - self.short_by

    def close(self) -> None:
        self.closed = True

    @property
    def payload(self) -> bytes:
        return b"".join(self.writes)


class AsyncRecordingSink:
    """asyncio flavour of :class:`RecordingSink` with an async close()."""

    def __init__(self, error: Exception | None = None, short_by: int = 0):
        self.error = error
        self.short_by = short_by
        self.writes: list[bytes] = []
        self.closed = False

    async def write(self, data: bytes) -> int:
        await asyncio.sleep(0)
        self.writes.append(bytes(data))
        if self.error is not None:
            raise self.error
        return len(data) - self.short_by

    async def close(self) -> None:
        self.closed = True


class NoCloseSink:
    """Sink without a close() method; write() returns None like socket.sendall."""

    def __init__(self):
        self.writes: list[bytes] = []

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return RecordingSink(error=OSError("sink unavailable"))


@pytest.fixture
def short_sink():
    return RecordingSink(short_by=1)


@pytest.fixture
def async_sink():
    return AsyncRecordingSink()


@pytest.fixture
def async_failing_sink():
    return AsyncRecordingSink(error=OSError("sink unavailable"))


@pytest.fixture
def make_sink():
    """Factory for sinks with custom failure behaviour."""
    return RecordingSink


@pytest.fixture
def make_async_sink():
    return AsyncRecordingSink


@pytest.fixture
def no_close_sink():
    return NoCloseSink()
