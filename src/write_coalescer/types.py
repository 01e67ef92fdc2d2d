from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Sink(Protocol):
    """Byte sink behind a thread-based coalescer.

    ``write`` returns the number of bytes accepted; ``None`` means all of them.
    A ``close()`` method is optional and is forwarded on coalescer close.
    """

    def write(self, data: bytes) -> Optional[int]: ...


@runtime_checkable
class AsyncSink(Protocol):
    """Byte sink behind an asyncio coalescer. ``close()`` may be sync or async."""

    async def write(self, data: bytes) -> Optional[int]: ...
