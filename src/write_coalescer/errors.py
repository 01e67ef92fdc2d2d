"""
Custom exceptions for the write coalescer.

Sink errors are never wrapped: the exception raised by the underlying sink
is re-raised to callers as-is. The classes here cover the failure modes the
coalescer itself detects.
"""


class CoalescerError(Exception):
    """Base error for write coalescers."""

    pass


class ShortWriteError(CoalescerError):
    """The sink accepted fewer bytes than the buffered payload."""

    def __init__(self, written: int, expected: int):
        super().__init__(f"short write: {written} of {expected} bytes")
        self.written = written
        self.expected = expected


class CoalescerClosedError(CoalescerError, ValueError):
    """Write attempted on a coalescer that was already closed."""

    pass
