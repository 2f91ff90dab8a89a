"""
Unit tests for LocalSystemStore: dirty/deleted bookkeeping, batch semantics
and the palette tables, against a real SQLite file.
"""

from datetime import datetime

import pytest

from md_calendar_sync.local_store import LocalSystemStore
from md_calendar_sync.models import StoreIOError
from md_calendar_sync.system_store import BatchOp


class TestRecords:
    def test_sync_insert_is_clean(self, local_store):
        """Writes through the adapter interface never mark a record dirty."""
        cid = local_store.ensure_collection("work")
        rid = local_store.insert(cid, {"title": "A", "start": datetime(2026, 2, 20, 10, 0)})

        record = local_store.get_record(rid)
        assert record.dirty is False
        assert record.collection == "work"
        assert record.start == datetime(2026, 2, 20, 10, 0)

    def test_user_edits_set_dirty(self, local_store):
        rid = local_store.create_record("work", title="A")
        assert local_store.get_record(rid).dirty is True

        local_store.apply_batch([BatchOp("update", rid, {})])
        assert local_store.get_record(rid).dirty is False

        local_store.edit_record(rid, title="B")
        record = local_store.get_record(rid)
        assert record.title == "B"
        assert record.dirty is True

    def test_tombstones_listed_and_indexed(self, local_store):
        rid = local_store.create_record("work", title="A")
        local_store.mark_deleted(rid)

        records = local_store.list_records(local_store.ensure_collection("work"))
        assert [r.deleted for r in records] == [True]
        assert local_store.record_index() == {rid: "work"}

    def test_list_fields_round_trip(self, local_store):
        cid = local_store.ensure_collection("work")
        rid = local_store.insert(cid, {"attendees": ["a@x", "b@x"], "reminders": [10]})
        record = local_store.get_record(rid)
        assert record.attendees == ["a@x", "b@x"]
        assert record.reminders == [10]

    def test_delete_collection_cascades(self, local_store):
        rid = local_store.create_record("work", title="A")
        local_store.delete_collection("work")
        assert local_store.get_record(rid) is None
        assert "work" not in local_store.list_collections()


class TestBatches:
    def test_update_without_clearing_dirty(self, local_store):
        rid = local_store.create_record("work", title="A")
        local_store.apply_batch([BatchOp("update", rid, {"title": "B"}, clear_dirty=False)])
        record = local_store.get_record(rid)
        assert record.title == "B"
        assert record.dirty is True

    def test_bad_op_reported_not_raised(self, local_store):
        rid = local_store.create_record("work", title="A")
        result = local_store.apply_batch([BatchOp("explode", rid), BatchOp("delete", rid)])
        assert result.applied == 1
        assert len(result.failed) == 1
        assert local_store.get_record(rid) is None

    def test_constraint_violation_raises_store_error(self, local_store):
        """sqlite errors surface as StoreIOError so the pass can count and skip them."""
        with pytest.raises(StoreIOError):
            local_store.insert(999, {"title": "orphan"})

    def test_reopen_keeps_data(self, store_db):
        with LocalSystemStore(store_db) as store:
            rid = store.create_record("work", title="A")
        with LocalSystemStore(store_db) as store:
            assert store.get_record(rid).title == "A"


class TestPalette:
    def test_used_colors_resolve_keys(self, local_store):
        local_store.insert_color("7", 0xFF039BE5)
        cid = local_store.ensure_collection("work")
        local_store.insert(cid, {"color_key": "7"})
        local_store.insert(cid, {"color": 0xFF123456})
        deleted = local_store.insert(cid, {"color": 0xFF000000})
        local_store.mark_deleted(deleted)

        assert local_store.used_colors() == {0xFF039BE5, 0xFF123456}

    def test_insert_color_overwrites(self, local_store):
        local_store.insert_color("1", 1)
        local_store.insert_color("1", 2)
        assert local_store.list_colors() == {"1": 2}
