"""
SQLite persistence for the file metadata cache.
"""

import logging
import sqlite3
from pathlib import Path

from md_calendar_sync.models import CacheEntry


class MetadataCache:
    """Persisted index from relative file path to last-seen mtime and linked id."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Open the cache database, creating the schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS file_metadata (
                path TEXT PRIMARY KEY,
                collection_name TEXT NOT NULL,
                last_modified INTEGER NOT NULL,
                linked_id INTEGER
            )
        """)
        self.conn.commit()

    @staticmethod
    def _to_entry(row: sqlite3.Row) -> CacheEntry:
        return CacheEntry(
            path=row["path"],
            collection_name=row["collection_name"],
            last_modified=row["last_modified"],
            linked_id=row["linked_id"],
        )

    # ---- Query methods ---- #

    def get(self, path: str) -> CacheEntry | None:
        row = self.conn.execute(
            "SELECT * FROM file_metadata WHERE path = ?", (path,)
        ).fetchone()
        return self._to_entry(row) if row else None

    def list_all(self) -> list[CacheEntry]:
        rows = self.conn.execute("SELECT * FROM file_metadata ORDER BY path").fetchall()
        return [self._to_entry(row) for row in rows]

    def count_by_collection(self) -> dict[str, tuple[int, int]]:
        """Return {collection: (rows, linked rows)}."""
        rows = self.conn.execute(
            """
            SELECT collection_name,
                   COUNT(*) AS total,
                   COUNT(linked_id) AS linked
            FROM file_metadata
            GROUP BY collection_name
            ORDER BY collection_name
            """
        ).fetchall()
        return {row["collection_name"]: (row["total"], row["linked"]) for row in rows}

    # ---- Mutations ---- #

    def upsert(self, entry: CacheEntry):
        """Insert or replace the row for ``entry.path``."""
        self.conn.execute(
            """
            INSERT INTO file_metadata (path, collection_name, last_modified, linked_id)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                collection_name = excluded.collection_name,
                last_modified = excluded.last_modified,
                linked_id = excluded.linked_id
            """,
            (entry.path, entry.collection_name, entry.last_modified, entry.linked_id),
        )
        self.conn.commit()

    def delete(self, path: str):
        self.conn.execute("DELETE FROM file_metadata WHERE path = ?", (path,))
        self.conn.commit()

    def delete_collection(self, collection_name: str):
        self.conn.execute(
            "DELETE FROM file_metadata WHERE collection_name = ?", (collection_name,)
        )
        self.conn.commit()

    def clear_all(self):
        """Remove every cached row (next pass re-parses everything)."""
        self.conn.execute("DELETE FROM file_metadata")
        self.conn.commit()
        self.logger.info("Metadata cache cleared")

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None


def query_status(db_path: Path) -> dict[str, tuple[int, int]]:
    """
    Return per-collection cache counts without creating the database.

    Used by the ``status`` subcommand; an absent database yields ``{}``.
    """
    if not db_path.exists():
        return {}
    with MetadataCache(db_path) as cache:
        return cache.count_by_collection()
