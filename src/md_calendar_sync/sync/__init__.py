"""
Synchronizer: single-flight orchestrator that delegates to sync submodules.
"""

import logging
import threading
import time

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.file_store import DocumentTree
from md_calendar_sync.file_store import FileStore
from md_calendar_sync.file_store import LocalFileStore
from md_calendar_sync.models import ConfigurationError
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncError
from md_calendar_sync.models import SyncStats
from md_calendar_sync.palette import PaletteManager
from md_calendar_sync.sync.contacts import run_contact_sync
from md_calendar_sync.sync.context import PassContext
from md_calendar_sync.sync.keepalive import KeepAlive
from md_calendar_sync.sync.refresh import wipe_all
from md_calendar_sync.sync.two_way import run_two_way
from md_calendar_sync.system_store import ContactStore
from md_calendar_sync.system_store import SystemStore


class Synchronizer:
    """
    Main synchronization engine.

    At most one pass runs at a time per instance: a second caller blocks on
    the lock until the running pass finishes, then runs its own full pass.
    """

    def __init__(
        self,
        config: SyncConfig,
        system_store: SystemStore,
        file_store: FileStore | None = None,
    ):
        self.config = config
        self.system_store = system_store
        self.file_store = file_store or LocalFileStore()
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()
        self._lock = threading.Lock()

    def _check_root(self, root, label: str):
        if root is not None and not self.file_store.exists(root):
            raise ConfigurationError(f"{label} folder does not exist: {root}")

    def run(self) -> SyncStats:
        """Execute one calendar and task reconciliation pass."""
        with self._lock:
            config = self.config
            if config.calendar_root is None and config.task_root is None:
                raise ConfigurationError("No calendar or task folder configured")
            self._check_root(config.calendar_root, "Calendar")
            self._check_root(config.task_root, "Task")

            self.stats = SyncStats()
            started = time.monotonic()
            with (
                KeepAlive(self.system_store.ping, config.keepalive_interval),
                MetadataCache(config.cache_db_path) as cache,
            ):
                ctx = PassContext(
                    config=config,
                    stats=self.stats,
                    logger=self.logger,
                    tree=DocumentTree(self.file_store),
                    cache=cache,
                    store=self.system_store,
                    palette=PaletteManager(self.system_store),
                )
                try:
                    run_two_way(ctx)
                except SyncError as e:
                    self.logger.error(f"Sync pass failed: {e}")
                    raise
                except Exception as e:
                    self.logger.error(f"Unexpected error: {e}", exc_info=True)
                    raise

            self.logger.info(
                f"Sync pass finished in {time.monotonic() - started:.1f}s: "
                f"{self.stats.processed} changes, {self.stats.errors} errors"
            )
            return self.stats

    def run_contacts(self) -> SyncStats:
        """Execute one contact sync cycle."""
        with self._lock:
            config = self.config
            if config.contacts_root is None:
                raise ConfigurationError("No contacts folder configured")
            self._check_root(config.contacts_root, "Contacts")
            if not isinstance(self.system_store, ContactStore):
                raise ConfigurationError("System store does not hold contacts")

            self.stats = SyncStats()
            try:
                run_contact_sync(
                    config,
                    self.stats,
                    self.logger,
                    self.system_store,
                    DocumentTree(self.file_store),
                )
            except SyncError as e:
                self.logger.error(f"Contact sync failed: {e}")
                raise
            except Exception as e:
                self.logger.error(f"Unexpected error: {e}", exc_info=True)
                raise
            return self.stats

    def wipe(self) -> SyncStats:
        """Remove all synced data from the System Store and the cache."""
        with self._lock:
            self.stats = SyncStats()
            wipe_all(self.config, self.stats, self.logger, self.system_store)
            return self.stats
