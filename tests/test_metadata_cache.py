"""
Unit tests for MetadataCache: upsert semantics, per-collection counts and
status queries against a real SQLite file.
"""

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.db import query_status
from md_calendar_sync.models import CacheEntry


class TestUpsertSemantics:
    def test_upsert_on_conflict_updates_not_errors(self, metadata_cache):
        """Writing the same path twice replaces the row instead of raising UNIQUE errors."""
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 100, None))
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 200, 7))

        entry = metadata_cache.get("work/a.md")
        assert entry.last_modified == 200
        assert entry.linked_id == 7
        assert len(metadata_cache.list_all()) == 1

    def test_missing_path_is_none(self, metadata_cache):
        assert metadata_cache.get("nope.md") is None


class TestCounts:
    def test_count_by_collection(self, metadata_cache):
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 1, 1))
        metadata_cache.upsert(CacheEntry("work/b.md", "work", 1, None))
        metadata_cache.upsert(CacheEntry("Tasks/c.md", "Tasks", 1, 3))

        assert metadata_cache.count_by_collection() == {"Tasks": (1, 1), "work": (2, 1)}

    def test_query_status_without_database(self, tmp_path):
        """status must not create an empty cache file as a side effect."""
        db_path = tmp_path / "absent.db"
        assert query_status(db_path) == {}
        assert not db_path.exists()

    def test_query_status_reads_existing(self, cache_db):
        with MetadataCache(cache_db) as cache:
            cache.upsert(CacheEntry("work/a.md", "work", 1, 5))
        assert query_status(cache_db) == {"work": (1, 1)}


class TestDeletion:
    def test_delete_removes_row(self, metadata_cache):
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 1, 1))
        metadata_cache.delete("work/a.md")
        assert metadata_cache.get("work/a.md") is None

    def test_delete_collection_only_touches_that_collection(self, metadata_cache):
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 1, 1))
        metadata_cache.upsert(CacheEntry("home/b.md", "home", 1, 2))
        metadata_cache.delete_collection("work")
        assert [e.path for e in metadata_cache.list_all()] == ["home/b.md"]

    def test_clear_all(self, metadata_cache):
        metadata_cache.upsert(CacheEntry("work/a.md", "work", 1, 1))
        metadata_cache.clear_all()
        assert metadata_cache.list_all() == []

    def test_rows_survive_reopen(self, cache_db):
        with MetadataCache(cache_db) as cache:
            cache.upsert(CacheEntry("work/a.md", "work", 42, 9))
        with MetadataCache(cache_db) as cache:
            assert cache.get("work/a.md") == CacheEntry("work/a.md", "work", 42, 9)
