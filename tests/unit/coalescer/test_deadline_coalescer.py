"""
Unit tests for DeadlineCoalescer (non-blocking writes, deferred errors).
"""

import threading
import time

import pytest

from write_coalescer import CoalescerClosedError, DeadlineCoalescer, ShortWriteError


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


def test_small_write_returns_before_flush(sink):
    with DeadlineCoalescer(sink, timeout=0.1, max_size=32) as dw:
        start = time.monotonic()
        assert dw.write(b"abc") == 3
        assert time.monotonic() - start < 0.09
        assert sink.writes == []

        assert _wait_for(lambda: sink.writes == [b"abc"])
        assert dw.buffered == 0


def test_concurrent_small_writes_coalesce_into_one_flush(sink):
    dw = DeadlineCoalescer(sink, timeout=0.1, max_size=32)
    barrier = threading.Barrier(5)
    results = []

    def run():
        barrier.wait()
        results.append(dw.write(b"abc"))

    threads = [threading.Thread(target=run) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=2)

    assert results == [3] * 5
    assert _wait_for(lambda: len(sink.writes) == 1)
    time.sleep(0.15)
    dw.close()

    assert sink.writes == [b"abc" * 5]


def test_write_reaching_max_size_flushes_inline(sink):
    with DeadlineCoalescer(sink, timeout=1.0, max_size=32) as dw:
        start = time.monotonic()
        assert dw.write(b"x" * 64) == 64
        assert time.monotonic() - start < 0.5
        # already on the sink when write() returns
        assert sink.writes == [b"x" * 64]


def test_buffer_filled_by_several_writes_flushes_on_threshold(sink):
    with DeadlineCoalescer(sink, timeout=1.0, max_size=8) as dw:
        dw.write(b"abcd")
        assert sink.writes == []
        dw.write(b"efgh")
        assert sink.writes == [b"abcdefgh"]
        assert dw.buffered == 0


def test_background_error_surfaces_on_next_write(failing_sink):
    dw = DeadlineCoalescer(failing_sink, timeout=0.05, max_size=32)
    assert dw.write(b"abc") == 3
    assert _wait_for(lambda: len(failing_sink.writes) == 1)
    time.sleep(0.02)

    with pytest.raises(OSError) as exc_info:
        dw.write(b"def")
    assert exc_info.value is failing_sink.error
    # the write that reported the error did not buffer its payload
    assert dw.buffered == 0

    # consumed once; the next write is accepted again
    failing_sink.error = None
    assert dw.write(b"ghi") == 3
    dw.close()
    assert failing_sink.writes[-1] == b"ghi"


def test_background_error_surfaces_on_close(failing_sink):
    dw = DeadlineCoalescer(failing_sink, timeout=0.05, max_size=32)
    dw.write(b"abc")
    assert _wait_for(lambda: len(failing_sink.writes) == 1)
    time.sleep(0.02)

    with pytest.raises(OSError) as exc_info:
        dw.close()
    assert exc_info.value is failing_sink.error
    # sink is released even though an error was pending
    assert failing_sink.closed


def test_inline_flush_error_reported_on_same_write(failing_sink):
    dw = DeadlineCoalescer(failing_sink, timeout=1.0, max_size=32)
    with pytest.raises(OSError):
        dw.write(b"y" * 64)
    assert dw.buffered == 0
    dw.close()


def test_inline_short_write(short_sink):
    dw = DeadlineCoalescer(short_sink, timeout=1.0, max_size=4)
    with pytest.raises(ShortWriteError) as exc_info:
        dw.write(b"abcd")
    assert (exc_info.value.written, exc_info.value.expected) == (3, 4)
    dw.close()


def test_close_flushes_residual_bytes_without_waiting(sink):
    dw = DeadlineCoalescer(sink, timeout=5.0, max_size=32)
    dw.write(b"tail")

    start = time.monotonic()
    dw.close()
    assert time.monotonic() - start < 1.0
    assert sink.writes == [b"tail"]
    assert sink.closed


def test_close_reports_final_flush_error(make_sink):
    sink = make_sink()
    dw = DeadlineCoalescer(sink, timeout=5.0, max_size=32)
    dw.write(b"tail")
    sink.error = OSError("final flush")

    with pytest.raises(OSError, match="final flush"):
        dw.close()
    assert sink.closed


def test_write_after_close_raises(sink):
    dw = DeadlineCoalescer(sink, timeout=0.01, max_size=32)
    dw.close()
    with pytest.raises(CoalescerClosedError):
        dw.write(b"late")
    dw.close()


def test_sink_without_close(no_close_sink):
    dw = DeadlineCoalescer(no_close_sink, timeout=0.01, max_size=32)
    dw.write(b"abc")
    dw.close()
    assert no_close_sink.writes == [b"abc"]


def test_from_settings(sink):
    from write_coalescer import CoalescerSettings

    settings = CoalescerSettings(timeout=0.02, max_size=16, name="cfg")
    with DeadlineCoalescer.from_settings(sink, settings) as dw:
        assert dw.timeout == 0.02
        assert dw.max_size == 16
        assert dw.name == "cfg"
