"""Unit tests for siteinventory.io_queue."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from siteinventory.io_queue import AdmissionQueue


class TestAdmissionQueue:
    async def test_returns_function_result(self) -> None:
        queue = AdmissionQueue(max_in_flight=2, poll_interval=0.001)
        assert await queue.run(lambda a, b: a + b, 2, b=3) == 5
        assert queue.in_flight == 0

    async def test_propagates_exceptions_and_releases_slot(self) -> None:
        queue = AdmissionQueue(max_in_flight=1, poll_interval=0.001)

        def fail() -> None:
            raise FileNotFoundError("gone")

        with pytest.raises(FileNotFoundError):
            await queue.run(fail)
        assert queue.in_flight == 0
        assert await queue.run(lambda: "ok") == "ok"

    async def test_never_exceeds_max_in_flight(self) -> None:
        queue = AdmissionQueue(max_in_flight=3, poll_interval=0.001)
        lock = threading.Lock()
        current = 0
        peak = 0

        def work() -> None:
            nonlocal current, peak
            with lock:
                current += 1
                peak = max(peak, current)
            time.sleep(0.01)
            with lock:
                current -= 1

        await asyncio.gather(*(queue.run(work) for _ in range(12)))

        assert peak <= 3
        assert queue.in_flight == 0

    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            AdmissionQueue(max_in_flight=0)
