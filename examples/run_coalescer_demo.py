"""
Demo script for the write coalescers.

Floods a counting sink from several threads, then from asyncio tasks, and
shows how many sink writes the burst collapsed into.
"""

import asyncio
import threading
import time

from loguru import logger

from write_coalescer import AsyncDeadlineCoalescer, BlockingCoalescer


class CountingSink:
    """Sink that counts calls and simulates a per-call cost."""

    def __init__(self):
        self.calls = 0
        self.bytes = 0

    def write(self, data: bytes) -> int:
        time.sleep(0.002)
        self.calls += 1
        self.bytes += len(data)
        return len(data)


class AsyncCountingSink:
    def __init__(self):
        self.calls = 0
        self.bytes = 0

    async def write(self, data: bytes) -> int:
        await asyncio.sleep(0.002)
        self.calls += 1
        self.bytes += len(data)
        return len(data)


def run_threads(writers: int = 8, per_writer: int = 50):
    sink = CountingSink()
    with BlockingCoalescer(sink, timeout=0.005, max_size=1400, name="demo-threads") as bw:

        def produce(i: int):
            for j in range(per_writer):
                bw.write(f"w{i}:{j};".encode())

        threads = [threading.Thread(target=produce, args=(i,)) for i in range(writers)]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        elapsed = time.monotonic() - start

    logger.info(
        f"🧵 {writers * per_writer} blocking writes -> {sink.calls} sink writes "
        f"({sink.bytes} bytes) in {elapsed:.2f}s"
    )


async def run_tasks(count: int = 2_000):
    sink = AsyncCountingSink()
    async with AsyncDeadlineCoalescer(sink, timeout=0.01, max_size=4096, name="demo-async") as dw:
        for i in range(count):
            await dw.write(f"event-{i}\n".encode())
            if i % 500 == 0:
                await asyncio.sleep(0)

    logger.info(f"⚡ {count} deadline writes -> {sink.calls} sink writes ({sink.bytes} bytes)")


if __name__ == "__main__":
    run_threads()
    asyncio.run(run_tasks())
