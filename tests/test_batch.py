"""
Unit tests for BatchQueue and the KeepAlive thread.
"""

import threading
import time

from md_calendar_sync.models import BatchApplyError
from md_calendar_sync.sync.batch import BatchQueue
from md_calendar_sync.sync.keepalive import KeepAlive
from md_calendar_sync.system_store import BatchResult


class TestBatchQueue:
    def test_flushes_every_size_items(self, sync_stats, sync_logger):
        batches = []

        def apply(ops):
            batches.append(list(ops))
            return BatchResult(applied=len(ops))

        queue = BatchQueue(apply, sync_stats, sync_logger, size=2)
        for i in range(5):
            queue.add(i)
        assert batches == [[0, 1], [2, 3]]
        assert len(queue) == 1

        queue.flush()
        assert batches[-1] == [4]
        assert queue.applied == 5

    def test_rejected_batch_counts_errors_and_continues(self, sync_stats, sync_logger):
        calls = []

        def apply(ops):
            calls.append(len(ops))
            if len(calls) == 1:
                raise BatchApplyError("store busy")
            return BatchResult(applied=len(ops))

        queue = BatchQueue(apply, sync_stats, sync_logger, size=3)
        for i in range(4):
            queue.add(i)
        queue.flush()

        assert calls == [3, 1]
        assert sync_stats.errors == 3
        assert queue.applied == 1

    def test_individual_failures_counted(self, sync_stats, sync_logger):
        queue = BatchQueue(
            lambda ops: BatchResult(applied=1, failed=[(ops[1], "nope")]),
            sync_stats,
            sync_logger,
        )
        queue.add("a")
        queue.add("b")
        queue.flush()
        assert sync_stats.errors == 1

    def test_empty_flush_does_nothing(self, sync_stats, sync_logger):
        def apply(ops):
            raise AssertionError("should not be called")

        BatchQueue(apply, sync_stats, sync_logger).flush()


class TestKeepAlive:
    def test_pings_while_running(self):
        pinged = threading.Event()

        with KeepAlive(pinged.set, 0.01) as keepalive:
            assert pinged.wait(timeout=2)
            assert keepalive.running

        assert not keepalive.running
        assert keepalive.pings >= 1

    def test_zero_interval_starts_no_thread(self):
        with KeepAlive(lambda: None, 0) as keepalive:
            assert not keepalive.running

    def test_ping_failure_does_not_stop_thread(self):
        attempts = []

        def ping():
            attempts.append(1)
            raise RuntimeError("connection reset")

        with KeepAlive(ping, 0.01):
            deadline = time.monotonic() + 2
            while len(attempts) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)

        assert len(attempts) >= 2
