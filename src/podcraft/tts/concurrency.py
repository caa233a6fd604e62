"""
Process-wide limit on running generation jobs.

A single episode already fans out into `tts.max_parallel` Gemini calls, so
the number of whole jobs in flight is what keeps the service under the
API's rate limits. Jobs beyond `max_concurrent` wait in a bounded queue:

    slot free            -> run now
    queue has room       -> wait up to timeout_s, then TimeoutError (408)
    queue full           -> QueueFull immediately (503)

The service maps both exceptions onto PodcraftErrors.
"""
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from podcraft.core.logging import get_logger, verbose, warn
from podcraft.core.metrics import metrics

_LOG = get_logger("podcraft.concurrency")


@dataclass
class ConcurrencyStats:
    max_concurrent: int
    current_active: int
    current_waiting: int
    total_processed: int
    total_rejected: int


class QueueFull(RuntimeError):
    pass


class ConcurrencyController:
    """Counting semaphore with a bounded, timed wait queue."""

    def __init__(self, max_concurrent: int = 2, max_queue: int = 10):
        self.max_concurrent = max_concurrent
        self.max_queue = max_queue
        self._cond = threading.Condition()
        self._active = 0
        self._waiting = 0
        self._processed = 0
        self._rejected = 0

    @property
    def active_count(self) -> int:
        with self._cond:
            return self._active

    @property
    def queue_depth(self) -> int:
        with self._cond:
            return self._waiting

    def stats(self) -> ConcurrencyStats:
        with self._cond:
            return ConcurrencyStats(
                max_concurrent=self.max_concurrent,
                current_active=self._active,
                current_waiting=self._waiting,
                total_processed=self._processed,
                total_rejected=self._rejected,
            )

    def _has_slot(self) -> bool:
        return self._active < self.max_concurrent

    def try_acquire(self) -> bool:
        with self._cond:
            if not self._has_slot():
                return False
            self._active += 1
            self._publish()
            return True

    def release(self) -> None:
        with self._cond:
            self._active -= 1
            self._processed += 1
            self._publish()
            self._cond.notify()

    def _wait_for_slot(self, timeout: float) -> None:
        # lock held by caller
        if self._waiting >= self.max_queue:
            self._rejected += 1
            warn(_LOG, "queue_full", waiting=self._waiting, max_queue=self.max_queue)
            raise QueueFull(f"Generation queue is full ({self._waiting} jobs waiting)")

        deadline = time.monotonic() + timeout
        self._waiting += 1
        self._publish()
        try:
            while not self._has_slot():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._rejected += 1
                    raise TimeoutError(f"No generation slot within {timeout}s")
                self._cond.wait(remaining)
        finally:
            self._waiting -= 1
            self._publish()

    @contextmanager
    def acquire_sync(self, timeout: float = 30.0) -> Iterator[None]:
        """
        Run the block inside a job slot.

        Raises:
            QueueFull: max_queue jobs are already waiting.
            TimeoutError: no slot freed up within `timeout` seconds.
        """
        with self._cond:
            if not self._has_slot():
                self._wait_for_slot(timeout)
            self._active += 1
            self._publish()
            verbose(_LOG, "slot_acquired", active=self._active, waiting=self._waiting)
        try:
            yield
        finally:
            self.release()

    def _publish(self) -> None:
        metrics.set_active_jobs(self._active)
        metrics.set_queue_depth(self._waiting)
