"""
Queued System Store mutations, flushed in fixed-size batches.
"""

import logging
from collections.abc import Callable

from md_calendar_sync.models import BatchApplyError
from md_calendar_sync.models import StoreIOError
from md_calendar_sync.models import SyncStats
from md_calendar_sync.system_store import BatchResult

RECORD_BATCH_SIZE = 50
CONTACT_BATCH_SIZE = 100


class BatchQueue:
    """
    Collects operations and hands them to ``apply`` every ``size`` items.

    A rejected batch is logged and counted as errors; later batches are
    still attempted.
    """

    def __init__(
        self,
        apply: Callable[[list], BatchResult],
        stats: SyncStats,
        logger: logging.Logger,
        size: int = RECORD_BATCH_SIZE,
    ):
        self._apply = apply
        self._stats = stats
        self._logger = logger
        self._size = size
        self._pending: list = []
        self.applied = 0

    def __len__(self):
        return len(self._pending)

    def add(self, op):
        self._pending.append(op)
        if len(self._pending) >= self._size:
            self.flush()

    def flush(self):
        if not self._pending:
            return
        ops, self._pending = self._pending, []
        try:
            result = self._apply(ops)
        except (BatchApplyError, StoreIOError) as e:
            self._logger.error(f"Batch of {len(ops)} operations failed: {e}")
            self._stats.errors += len(ops)
            return
        self.applied += result.applied
        for op, reason in result.failed:
            self._logger.error(f"Operation {op} failed: {reason}")
            self._stats.errors += 1
        self._logger.debug(f"Applied batch: {result.applied}/{len(ops)} operations")
