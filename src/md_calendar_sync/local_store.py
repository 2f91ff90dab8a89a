"""
SQLite-backed System Store for hosts without a native calendar/contacts datastore.

Writes made through the ``SystemStore``/``ContactStore`` interface are
sync-adapter writes and leave ``dirty`` clear.  The "user side" methods at the
bottom (``create_record``, ``edit_record``, ``mark_deleted`` ...) behave like an
external app editing the store: they set ``dirty``/``deleted`` so the next
pass picks the change up.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

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

_SCHEMA = """
CREATE TABLE IF NOT EXISTS collections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection_id INTEGER NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    title TEXT NOT NULL DEFAULT '',
    start TEXT,
    "end" TEXT,
    all_day INTEGER NOT NULL DEFAULT 0,
    recurrence TEXT,
    location TEXT,
    timezone TEXT,
    color INTEGER,
    color_key TEXT,
    attendees TEXT NOT NULL DEFAULT '[]',
    reminders TEXT NOT NULL DEFAULT '[]',
    description TEXT NOT NULL DEFAULT '',
    dirty INTEGER NOT NULL DEFAULT 0,
    deleted INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS colors (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    display_name TEXT NOT NULL DEFAULT '',
    phones TEXT NOT NULL DEFAULT '[]',
    emails TEXT NOT NULL DEFAULT '[]',
    organization TEXT NOT NULL DEFAULT '',
    note TEXT NOT NULL DEFAULT '',
    file_name TEXT,
    stored_hash TEXT,
    dirty INTEGER NOT NULL DEFAULT 0,
    deleted INTEGER NOT NULL DEFAULT 0
);
"""

_CONTACT_COLUMNS = (
    "first_name",
    "last_name",
    "display_name",
    "phones",
    "emails",
    "organization",
    "note",
)


def _encode_field(name: str, value: Any):
    if name in ("start", "end"):
        return value.isoformat(timespec="seconds") if value is not None else None
    if name in ("attendees", "reminders", "phones", "emails"):
        return json.dumps(list(value or []))
    if name == "all_day":
        return 1 if value else 0
    return value


def _decode_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class LocalSystemStore(SystemStore, ContactStore):
    """SystemStore and ContactStore over a single SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self.logger = logging.getLogger(__name__)
        # the keep-alive thread pings from outside the pass thread
        self._lock = threading.RLock()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(_SCHEMA)
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cursor = self.conn.execute(sql, params)
                self.conn.commit()
                return cursor
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StoreIOError(f"{e} (while running: {sql.split()[0]})") from e

    @staticmethod
    def _to_record(row: sqlite3.Row) -> SystemRecord:
        return SystemRecord(
            id=row["id"],
            collection=row["collection"],
            title=row["title"],
            start=_decode_datetime(row["start"]),
            end=_decode_datetime(row["end"]),
            all_day=bool(row["all_day"]),
            recurrence=row["recurrence"],
            location=row["location"],
            timezone=row["timezone"],
            color=row["color"],
            color_key=row["color_key"],
            attendees=json.loads(row["attendees"]),
            reminders=json.loads(row["reminders"]),
            description=row["description"],
            dirty=bool(row["dirty"]),
            deleted=bool(row["deleted"]),
        )

    @staticmethod
    def _to_contact(row: sqlite3.Row) -> SystemContact:
        return SystemContact(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            display_name=row["display_name"],
            phones=json.loads(row["phones"]),
            emails=json.loads(row["emails"]),
            organization=row["organization"],
            note=row["note"],
            file_name=row["file_name"],
            stored_hash=row["stored_hash"],
            dirty=bool(row["dirty"]),
            deleted=bool(row["deleted"]),
        )

    # ---- Collections ---- #

    def list_collections(self) -> dict[str, int]:
        rows = self._execute("SELECT id, name FROM collections ORDER BY name").fetchall()
        return {row["name"]: row["id"] for row in rows}

    def ensure_collection(self, name: str) -> int:
        self._execute("INSERT OR IGNORE INTO collections (name) VALUES (?)", (name,))
        row = self._execute("SELECT id FROM collections WHERE name = ?", (name,)).fetchone()
        return row["id"]

    def delete_collection(self, name: str) -> None:
        self._execute("DELETE FROM collections WHERE name = ?", (name,))
        self.logger.info(f"Deleted collection {name!r}")

    # ---- Records ---- #

    _RECORD_SELECT = """
        SELECT r.*, c.name AS collection
        FROM records r JOIN collections c ON c.id = r.collection_id
    """

    def list_records(self, collection_id: int) -> list[SystemRecord]:
        rows = self._execute(
            self._RECORD_SELECT + " WHERE r.collection_id = ? ORDER BY r.id", (collection_id,)
        ).fetchall()
        return [self._to_record(row) for row in rows]

    def get_record(self, record_id: int) -> SystemRecord | None:
        row = self._execute(self._RECORD_SELECT + " WHERE r.id = ?", (record_id,)).fetchone()
        return self._to_record(row) if row else None

    def record_index(self) -> dict[int, str]:
        rows = self._execute(
            "SELECT r.id, c.name FROM records r JOIN collections c ON c.id = r.collection_id"
        ).fetchall()
        return {row["id"]: row["name"] for row in rows}

    def insert(self, collection_id: int, fields: dict[str, Any]) -> int:
        return self._insert_record(collection_id, fields, dirty=False)

    def _insert_record(self, collection_id: int, fields: dict[str, Any], dirty: bool) -> int:
        names = [name for name in RECORD_FIELDS if name in fields]
        columns = ", ".join(["collection_id", *(f'"{n}"' for n in names), "dirty"])
        placeholders = ", ".join("?" * (len(names) + 2))
        params = (collection_id, *(_encode_field(n, fields[n]) for n in names), int(dirty))
        cursor = self._execute(
            f"INSERT INTO records ({columns}) VALUES ({placeholders})", params
        )
        return cursor.lastrowid

    def delete(self, record_id: int) -> None:
        self._execute("DELETE FROM records WHERE id = ?", (record_id,))

    def apply_batch(self, ops: list[BatchOp]) -> BatchResult:
        result = BatchResult()
        with self._lock:
            for op in ops:
                try:
                    self._apply_op(op)
                    result.applied += 1
                except (sqlite3.Error, ValueError) as e:
                    result.failed.append((op, str(e)))
            try:
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise BatchApplyError(f"Batch of {len(ops)} operations rejected: {e}") from e
        return result

    def _apply_op(self, op: BatchOp):
        if op.kind == "delete":
            self.conn.execute("DELETE FROM records WHERE id = ?", (op.record_id,))
            return
        if op.kind != "update":
            raise ValueError(f"Unknown batch operation {op.kind!r}")
        names = [name for name in RECORD_FIELDS if name in op.fields]
        assignments = [f'"{n}" = ?' for n in names]
        params = [_encode_field(n, op.fields[n]) for n in names]
        if op.clear_dirty:
            assignments.append("dirty = 0")
        if not assignments:
            return
        self.conn.execute(
            f"UPDATE records SET {', '.join(assignments)} WHERE id = ?",
            (*params, op.record_id),
        )

    # ---- Palette ---- #

    def list_colors(self) -> dict[str, int]:
        rows = self._execute("SELECT key, value FROM colors ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def insert_color(self, key: str, value: int) -> None:
        self._execute(
            "INSERT INTO colors (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def delete_color(self, key: str) -> None:
        self._execute("DELETE FROM colors WHERE key = ?", (key,))

    def used_colors(self) -> set[int]:
        rows = self._execute(
            """
            SELECT COALESCE(r.color, c.value) AS value
            FROM records r LEFT JOIN colors c ON c.key = r.color_key
            WHERE r.deleted = 0
            """
        ).fetchall()
        return {row["value"] for row in rows if row["value"] is not None}

    def ping(self) -> None:
        self._execute("SELECT 1")

    # ---- Contacts ---- #

    def list_contacts(self) -> list[SystemContact]:
        rows = self._execute("SELECT * FROM contacts WHERE deleted = 0 ORDER BY id").fetchall()
        return [self._to_contact(row) for row in rows]

    def list_pending_contacts(self) -> list[SystemContact]:
        rows = self._execute(
            "SELECT * FROM contacts WHERE deleted = 0 AND (dirty = 1 OR file_name IS NULL) "
            "ORDER BY id"
        ).fetchall()
        return [self._to_contact(row) for row in rows]

    def list_deleted_contacts(self) -> list[SystemContact]:
        rows = self._execute("SELECT * FROM contacts WHERE deleted = 1 ORDER BY id").fetchall()
        return [self._to_contact(row) for row in rows]

    def mark_exported(self, contact_id: int, file_name: str, stored_hash: str) -> None:
        self._execute(
            "UPDATE contacts SET file_name = ?, stored_hash = ?, dirty = 0 WHERE id = ?",
            (file_name, stored_hash, contact_id),
        )

    def apply_contact_batch(self, ops: list[ContactOp]) -> BatchResult:
        result = BatchResult()
        with self._lock:
            for op in ops:
                try:
                    self._apply_contact_op(op)
                    result.applied += 1
                except (sqlite3.Error, ValueError) as e:
                    result.failed.append((op, str(e)))
            try:
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise BatchApplyError(
                    f"Contact batch of {len(ops)} operations rejected: {e}"
                ) from e
        return result

    def _apply_contact_op(self, op: ContactOp):
        if op.kind == "delete":
            self.conn.execute("DELETE FROM contacts WHERE id = ?", (op.contact_id,))
            return
        contact = op.contact
        values = [_encode_field(n, getattr(contact, n)) for n in _CONTACT_COLUMNS]
        if op.kind == "insert":
            self.conn.execute(
                f"INSERT INTO contacts ({', '.join(_CONTACT_COLUMNS)}, file_name, stored_hash) "
                f"VALUES ({', '.join('?' * (len(_CONTACT_COLUMNS) + 2))})",
                (*values, contact.file_name, op.stored_hash),
            )
        elif op.kind == "update":
            assignments = ", ".join(f"{n} = ?" for n in _CONTACT_COLUMNS)
            self.conn.execute(
                f"UPDATE contacts SET {assignments}, stored_hash = ?, dirty = 0 WHERE id = ?",
                (*values, op.stored_hash, op.contact_id),
            )
        else:
            raise ValueError(f"Unknown contact operation {op.kind!r}")

    # ------------------------------------------------------------------ #
    # User-side edits (what an external app would do)                     #
    # ------------------------------------------------------------------ #

    def create_record(self, collection: str, **fields) -> int:
        """Create a record as a user would: dirty, with no file yet."""
        return self._insert_record(self.ensure_collection(collection), fields, dirty=True)

    def edit_record(self, record_id: int, **fields) -> None:
        names = [name for name in RECORD_FIELDS if name in fields]
        assignments = ", ".join([*(f'"{n}" = ?' for n in names), "dirty = 1"])
        self._execute(
            f"UPDATE records SET {assignments} WHERE id = ?",
            (*(_encode_field(n, fields[n]) for n in names), record_id),
        )

    def mark_deleted(self, record_id: int) -> None:
        self._execute("UPDATE records SET deleted = 1, dirty = 1 WHERE id = ?", (record_id,))

    def create_contact(self, contact: Contact) -> int:
        values = [_encode_field(n, getattr(contact, n)) for n in _CONTACT_COLUMNS]
        cursor = self._execute(
            f"INSERT INTO contacts ({', '.join(_CONTACT_COLUMNS)}, dirty) "
            f"VALUES ({', '.join('?' * len(_CONTACT_COLUMNS))}, 1)",
            tuple(values),
        )
        return cursor.lastrowid

    def edit_contact(self, contact_id: int, **fields) -> None:
        names = [n for n in _CONTACT_COLUMNS if n in fields]
        assignments = ", ".join([*(f"{n} = ?" for n in names), "dirty = 1"])
        self._execute(
            f"UPDATE contacts SET {assignments} WHERE id = ?",
            (*(_encode_field(n, fields[n]) for n in names), contact_id),
        )

    def mark_contact_deleted(self, contact_id: int) -> None:
        self._execute("UPDATE contacts SET deleted = 1 WHERE id = ?", (contact_id,))
