"""
Pass-scoped state, built fresh for every reconciliation pass.
"""

import logging
from dataclasses import dataclass
from dataclasses import field

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.file_store import DocumentTree
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncStats
from md_calendar_sync.palette import PaletteManager
from md_calendar_sync.system_store import SystemStore


@dataclass
class PassContext:
    """Everything one pass needs; discarded when the pass ends."""

    config: SyncConfig
    stats: SyncStats
    logger: logging.Logger
    tree: DocumentTree
    cache: MetadataCache
    store: SystemStore
    palette: PaletteManager

    # record id -> collection name, as listed by the System Store at pass start
    record_index: dict[int, str] = field(default_factory=dict)
    # ids already claimed by a file in this pass (duplicate-id guard)
    claimed_ids: set[int] = field(default_factory=set)
    # collections created during this pass
    new_collections: set[str] = field(default_factory=set)
    # cache paths seen on disk during the scan
    found_paths: set[str] = field(default_factory=set)
    # linked ids whose file disappeared since the previous pass
    vanished_ids: set[int] = field(default_factory=set)
    # colors observed in parsed files
    file_colors: set[int] = field(default_factory=set)

    def claim(self, record_id: int | None, collection: str) -> bool:
        """
        Claim ``record_id`` for a file in ``collection``.

        Fails when the id was already claimed this pass or does not belong to
        that collection in the System Store.
        """
        if record_id is None or record_id in self.claimed_ids:
            return False
        if self.record_index.get(record_id) != collection:
            return False
        self.claimed_ids.add(record_id)
        return True
