"""Tests for concurrency control."""
from __future__ import annotations

import threading
import time

import pytest

from podcraft.tts.concurrency import ConcurrencyController, QueueFull


class TestConcurrencyController:
    """Test ConcurrencyController basic functionality."""

    def test_controller_creation(self):
        """Controller can be created with custom limits."""
        controller = ConcurrencyController(max_concurrent=3, max_queue=5)
        assert controller.max_concurrent == 3
        assert controller.max_queue == 5

    def test_try_acquire_success(self):
        """try_acquire returns True when slot available."""
        controller = ConcurrencyController(max_concurrent=2)
        assert controller.try_acquire() is True
        assert controller.active_count == 1
        controller.release()

    def test_try_acquire_fail_when_full(self):
        """try_acquire returns False when no slots available."""
        controller = ConcurrencyController(max_concurrent=1)
        assert controller.try_acquire() is True
        assert controller.try_acquire() is False
        controller.release()

    def test_stats(self):
        """Stats are tracked correctly."""
        controller = ConcurrencyController(max_concurrent=2, max_queue=5)
        with controller.acquire_sync(timeout=1.0):
            pass
        stats = controller.stats()

        assert stats.max_concurrent == 2
        assert stats.current_active == 0
        assert stats.current_waiting == 0
        assert stats.total_processed == 1


class TestSyncAcquire:
    """Test synchronous acquire/release."""

    def test_sync_acquire_success(self):
        """Sync acquire works within context manager."""
        controller = ConcurrencyController(max_concurrent=2)

        with controller.acquire_sync(timeout=1.0):
            assert controller.active_count == 1

        assert controller.active_count == 0

    def test_slot_released_on_error(self):
        controller = ConcurrencyController(max_concurrent=1)

        with pytest.raises(RuntimeError):
            with controller.acquire_sync(timeout=1.0):
                raise RuntimeError("job failed")

        assert controller.active_count == 0

    def test_queue_full_rejects(self):
        """With no queue space a busy controller rejects immediately."""
        controller = ConcurrencyController(max_concurrent=1, max_queue=0)

        with controller.acquire_sync(timeout=1.0):
            with pytest.raises(QueueFull):
                with controller.acquire_sync(timeout=1.0):
                    pass

        assert controller.stats().total_rejected == 1

    def test_timeout_while_waiting(self):
        controller = ConcurrencyController(max_concurrent=1, max_queue=5)

        with controller.acquire_sync(timeout=1.0):
            start = time.monotonic()
            with pytest.raises(TimeoutError):
                with controller.acquire_sync(timeout=0.05):
                    pass
            assert time.monotonic() - start < 1.0

        assert controller.queue_depth == 0

    def test_waiter_gets_slot_after_release(self):
        """A queued job runs once the active job finishes."""
        controller = ConcurrencyController(max_concurrent=1, max_queue=5)
        order = []

        def waiter():
            with controller.acquire_sync(timeout=2.0):
                order.append("waiter")

        with controller.acquire_sync(timeout=1.0):
            t = threading.Thread(target=waiter)
            t.start()
            time.sleep(0.05)
            assert controller.queue_depth == 1
            order.append("holder")

        t.join(timeout=2.0)
        assert order == ["holder", "waiter"]
        assert controller.stats().total_processed == 2

    def test_max_concurrent_respected(self):
        controller = ConcurrencyController(max_concurrent=2, max_queue=10)
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def job():
            with controller.acquire_sync(timeout=5.0):
                with lock:
                    state["active"] += 1
                    state["peak"] = max(state["peak"], state["active"])
                time.sleep(0.02)
                with lock:
                    state["active"] -= 1

        threads = [threading.Thread(target=job) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert state["peak"] <= 2
        assert controller.stats().total_processed == 6
