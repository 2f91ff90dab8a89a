"""
Wipe operation: remove everything the sync put into the System Store.
"""

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncStats
from md_calendar_sync.system_store import ContactOp
from md_calendar_sync.system_store import ContactStore
from md_calendar_sync.system_store import SystemStore


def wipe_all(config: SyncConfig, stats: SyncStats, logger, store: SystemStore):
    """
    Delete every collection and contact from the System Store and clear the cache.

    Files are left untouched; the next pass re-inserts them as new records.
    """
    logger.warning("WIPE: removing all collections, contacts and cached metadata...")

    for name in store.list_collections():
        store.delete_collection(name)
        stats.deleted += 1
        logger.info(f"Deleted collection {name!r}")

    if isinstance(store, ContactStore):
        contacts = store.list_contacts() + store.list_deleted_contacts()
        if contacts:
            result = store.apply_contact_batch(
                [ContactOp("delete", contact_id=c.id) for c in contacts]
            )
            stats.deleted += result.applied
            stats.errors += len(result.failed)
        logger.info(f"Deleted {len(contacts)} contacts")

    with MetadataCache(config.cache_db_path) as cache:
        cache.clear_all()

    logger.info("Wipe complete")
