"""
In-memory fake System Store for testing.

Implements the SystemStore and ContactStore contracts with plain dicts, and
records every mutation so tests can assert on what a pass sent.  Failure
switches let tests simulate a store that rejects batches or deletes.
"""

import copy
from dataclasses import fields as dataclass_fields

from md_calendar_sync.models import BatchApplyError
from md_calendar_sync.models import Contact
from md_calendar_sync.models import StoreIOError
from md_calendar_sync.models import SystemContact
from md_calendar_sync.models import SystemRecord
from md_calendar_sync.system_store import RECORD_FIELDS
from md_calendar_sync.system_store import BatchOp
from md_calendar_sync.system_store import BatchResult
from md_calendar_sync.system_store import ContactOp
from md_calendar_sync.system_store import ContactStore
from md_calendar_sync.system_store import SystemStore


class FakeSystemStore(SystemStore, ContactStore):
    """Dict-backed stand-in for LocalSystemStore."""

    def __init__(self):
        self._collections: dict[str, int] = {}
        self._records: dict[int, SystemRecord] = {}
        self._colors: dict[str, int] = {}
        self._contacts: dict[int, SystemContact] = {}
        self._next_id = 1

        self.inserts: list[int] = []
        self.updates: list[int] = []
        self.deletes: list[int] = []
        self.batches: list[int] = []  # size of every batch applied
        self.pings = 0

        self.fail_batches = False
        self.fail_deletes = False

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    # ------------------------------------------------------------------ #
    # SystemStore interface                                                 #
    # ------------------------------------------------------------------ #

    def list_collections(self) -> dict[str, int]:
        return dict(self._collections)

    def ensure_collection(self, name: str) -> int:
        if name not in self._collections:
            self._collections[name] = self._new_id()
        return self._collections[name]

    def delete_collection(self, name: str) -> None:
        self._collections.pop(name, None)
        for record_id in [r.id for r in self._records.values() if r.collection == name]:
            del self._records[record_id]

    def _collection_name(self, collection_id: int) -> str:
        for name, cid in self._collections.items():
            if cid == collection_id:
                return name
        raise StoreIOError(f"No collection {collection_id}")

    def list_records(self, collection_id: int) -> list[SystemRecord]:
        name = self._collection_name(collection_id)
        return [
            copy.deepcopy(r)
            for r in sorted(self._records.values(), key=lambda r: r.id)
            if r.collection == name
        ]

    def record_index(self) -> dict[int, str]:
        return {r.id: r.collection for r in self._records.values()}

    def insert(self, collection_id: int, fields: dict) -> int:
        record = SystemRecord(id=self._new_id(), collection=self._collection_name(collection_id))
        self._assign(record, fields)
        self._records[record.id] = record
        self.inserts.append(record.id)
        return record.id

    def delete(self, record_id: int) -> None:
        if self.fail_deletes:
            raise StoreIOError(f"delete of {record_id} refused")
        self._records.pop(record_id, None)
        self.deletes.append(record_id)

    def apply_batch(self, ops: list[BatchOp]) -> BatchResult:
        if self.fail_batches:
            raise BatchApplyError(f"batch of {len(ops)} rejected")
        self.batches.append(len(ops))
        result = BatchResult()
        for op in ops:
            record = self._records.get(op.record_id)
            if record is None:
                result.failed.append((op, "no such record"))
                continue
            if op.kind == "delete":
                del self._records[op.record_id]
                self.deletes.append(op.record_id)
            else:
                self._assign(record, op.fields)
                if op.clear_dirty:
                    record.dirty = False
                self.updates.append(op.record_id)
            result.applied += 1
        return result

    @staticmethod
    def _assign(record: SystemRecord, fields: dict):
        for name in RECORD_FIELDS:
            if name in fields:
                value = fields[name]
                setattr(record, name, list(value) if isinstance(value, list) else value)

    def list_colors(self) -> dict[str, int]:
        return dict(self._colors)

    def insert_color(self, key: str, value: int) -> None:
        self._colors[key] = value

    def delete_color(self, key: str) -> None:
        self._colors.pop(key, None)

    def used_colors(self) -> set[int]:
        used = set()
        for record in self._records.values():
            if record.deleted:
                continue
            value = record.color if record.color is not None else self._colors.get(record.color_key)
            if value is not None:
                used.add(value)
        return used

    def ping(self) -> None:
        self.pings += 1

    # ------------------------------------------------------------------ #
    # ContactStore interface                                                #
    # ------------------------------------------------------------------ #

    def list_contacts(self) -> list[SystemContact]:
        return [copy.deepcopy(c) for c in self._contacts.values() if not c.deleted]

    def list_pending_contacts(self) -> list[SystemContact]:
        return [c for c in self.list_contacts() if c.dirty or c.file_name is None]

    def list_deleted_contacts(self) -> list[SystemContact]:
        return [copy.deepcopy(c) for c in self._contacts.values() if c.deleted]

    def mark_exported(self, contact_id: int, file_name: str, stored_hash: str) -> None:
        contact = self._contacts[contact_id]
        contact.file_name = file_name
        contact.stored_hash = stored_hash
        contact.dirty = False

    def apply_contact_batch(self, ops: list[ContactOp]) -> BatchResult:
        if self.fail_batches:
            raise BatchApplyError(f"contact batch of {len(ops)} rejected")
        result = BatchResult()
        for op in ops:
            if op.kind == "delete":
                self._contacts.pop(op.contact_id, None)
            elif op.kind == "insert":
                contact = self._from_contact(op.contact, self._new_id())
                contact.stored_hash = op.stored_hash
                self._contacts[contact.id] = contact
            else:
                contact = self._from_contact(op.contact, op.contact_id)
                contact.stored_hash = op.stored_hash
                self._contacts[op.contact_id] = contact
            result.applied += 1
        return result

    @staticmethod
    def _from_contact(contact: Contact, contact_id: int) -> SystemContact:
        values = {
            f.name: copy.deepcopy(getattr(contact, f.name)) for f in dataclass_fields(Contact)
        }
        return SystemContact(id=contact_id, **values)

    # ------------------------------------------------------------------ #
    # Test helpers                                                          #
    # ------------------------------------------------------------------ #

    def create_record(self, collection: str, **fields) -> int:
        """Simulate a user creating a record in another app."""
        self.ensure_collection(collection)
        record = SystemRecord(id=self._new_id(), collection=collection, dirty=True)
        self._assign(record, fields)
        self._records[record.id] = record
        return record.id

    def edit_record(self, record_id: int, **fields) -> None:
        record = self._records[record_id]
        self._assign(record, fields)
        record.dirty = True

    def mark_deleted(self, record_id: int) -> None:
        record = self._records[record_id]
        record.deleted = True
        record.dirty = True

    def get_record(self, record_id: int) -> SystemRecord | None:
        return self._records.get(record_id)

    def create_contact(self, contact: Contact) -> int:
        new = self._from_contact(contact, self._new_id())
        new.dirty = True
        self._contacts[new.id] = new
        return new.id

    def reset_counters(self):
        self.inserts.clear()
        self.updates.clear()
        self.deletes.clear()
        self.batches.clear()

    @property
    def record_count(self) -> int:
        return len(self._records)
