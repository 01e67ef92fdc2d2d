"""
Write Coalescer

Merges bursts of small writes into fewer, larger writes on an underlying
byte sink, trading a bounded amount of latency for fewer sink calls.

Usage:
    from write_coalescer import BlockingCoalescer, DeadlineCoalescer

    # Every write returns once its batch reached the sink
    with BlockingCoalescer(sink, timeout=0.01, max_size=1400) as bw:
        bw.write(b"ping")

    # Writes return immediately; flush errors surface on the next call
    with DeadlineCoalescer(sink, timeout=0.01, max_size=1400) as dw:
        dw.write(b"ping")
"""

from .types import Sink, AsyncSink
from .errors import CoalescerError, ShortWriteError, CoalescerClosedError
from .writer import BlockingCoalescer
from .deadline import DeadlineCoalescer
from .awriter import AsyncBlockingCoalescer
from .adeadline import AsyncDeadlineCoalescer
from .settings import CoalescerSettings, get_settings
from .metrics import metrics_registry

__version__ = "1.0.0"
__all__ = [
    # types
    "Sink",
    "AsyncSink",
    # errors
    "CoalescerError",
    "ShortWriteError",
    "CoalescerClosedError",
    # coalescers
    "BlockingCoalescer",
    "DeadlineCoalescer",
    "AsyncBlockingCoalescer",
    "AsyncDeadlineCoalescer",
    # config & observability
    "CoalescerSettings",
    "get_settings",
    "metrics_registry",
]
