"""
Tests for the wipe operation: the store and cache are emptied, files are not.
"""

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.models import Contact
from md_calendar_sync.sync import Synchronizer
from tests.conftest import find_docs
from tests.conftest import make_doc
from tests.conftest import write_doc


def test_wipe_clears_store_and_cache(sync_config, local_store, calendar_root):
    write_doc(calendar_root / "work", "a.md", make_doc("A"))
    local_store.create_contact(Contact(first_name="Ada"))
    synchronizer = Synchronizer(sync_config, local_store)
    synchronizer.run()
    docs = find_docs(calendar_root)

    stats = synchronizer.wipe()

    assert stats.errors == 0
    assert local_store.list_collections() == {}
    assert local_store.list_contacts() == []
    with MetadataCache(sync_config.cache_db_path) as cache:
        assert cache.list_all() == []
    assert find_docs(calendar_root) == docs


def test_sync_after_wipe_reinserts_from_files(sync_config, local_store, calendar_root):
    """Ids left in the documents are stale after a wipe and get replaced."""
    write_doc(calendar_root / "work", "a.md", make_doc("A"))
    synchronizer = Synchronizer(sync_config, local_store)
    synchronizer.run()
    synchronizer.wipe()

    stats = synchronizer.run()

    assert stats.added == 1
    assert stats.errors == 0
    records = local_store.list_records(local_store.list_collections()["work"])
    assert [r.title for r in records] == ["A"]
