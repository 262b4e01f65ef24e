"""Bounded admission queue for blocking file operations.

Callers that would exceed the in-flight limit poll on a fixed interval
until a slot frees, then run their operation in a worker thread. This caps
open file descriptors however many fetches the pipeline runs at once.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


class AdmissionQueue:
    def __init__(self, max_in_flight: int = 50, poll_interval: float = 0.05) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.max_in_flight = max_in_flight
        self.poll_interval = poll_interval
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run ``func`` in a worker thread once a slot is available."""
        waited = False
        while self._in_flight >= self.max_in_flight:
            waited = True
            await asyncio.sleep(self.poll_interval)
        if waited:
            log.debug("io_queue_admitted_after_wait", in_flight=self._in_flight)

        # No await between the check above and this increment, so the
        # limit holds on a single event loop.
        self._in_flight += 1
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        finally:
            self._in_flight -= 1
