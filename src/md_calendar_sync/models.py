"""
Pure data models: no sqlite or filesystem imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path
from typing import Any

DEFAULT_DATA_DIR = Path.home() / ".local/share/md-calendar-sync"
DEFAULT_CACHE_DB = DEFAULT_DATA_DIR / "metadata-cache.db"
DEFAULT_STORE_DB = DEFAULT_DATA_DIR / "system-store.db"
DEFAULT_LOG_FILE = DEFAULT_DATA_DIR / "sync.log"
DEFAULT_CONFIG = Path.home() / ".config/md-calendar-sync.conf"

TASKS_COLLECTION = "Tasks"


class SyncError(Exception):
    """Base exception for sync errors."""

    pass


class ConfigurationError(SyncError):
    """No usable store root is configured; aborts the pass."""

    pass


class StoreIOError(SyncError):
    """A single file or System Store operation failed."""

    pass


class BatchApplyError(SyncError):
    """The System Store rejected a whole batch of operations."""

    pass


class RollbackError(SyncError):
    """A compensating delete after a failed write-back failed too."""

    pass


@dataclass
class SyncConfig:
    """Configuration for a sync pass."""

    cache_db_path: Path
    store_db_path: Path
    calendar_root: Path | None = None
    task_root: Path | None = None
    contacts_root: Path | None = None
    keepalive_interval: float = 0.0  # seconds, 0 disables the keep-alive thread
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting


@dataclass
class SyncStats:
    """Statistics for a sync pass."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    archived: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.added + self.modified + self.deleted + self.archived


@dataclass
class Record:
    """One synchronized item as seen from the File Store."""

    title: str = ""
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    recurrence: str | None = None
    location: str | None = None
    timezone: str | None = None
    color: int | None = None
    color_key: str | None = None
    attendees: list[str] = field(default_factory=list)
    reminders: list[int] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    body: str = ""
    override_id: str | None = None
    # raw header text per unknown key, re-emitted verbatim
    metadata: dict[str, str] = field(default_factory=dict)
    system_id: int | None = None
    file_path: str | None = None
    needs_update: bool = False

    # Pass-only bookkeeping, never serialized
    handle: Any = field(default=None, compare=False, repr=False)
    is_stub: bool = field(default=False, compare=False, repr=False)
    needs_rewrite: bool = field(default=False, compare=False, repr=False)


@dataclass
class SystemRecord:
    """The System Store's view of a record, with its bookkeeping bits."""

    id: int
    collection: str
    title: str = ""
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    recurrence: str | None = None
    location: str | None = None
    timezone: str | None = None
    color: int | None = None
    color_key: str | None = None
    attendees: list[str] = field(default_factory=list)
    reminders: list[int] = field(default_factory=list)
    description: str = ""
    dirty: bool = False
    deleted: bool = False


@dataclass
class CacheEntry:
    """One Metadata Cache row."""

    path: str
    collection_name: str
    last_modified: int
    linked_id: int | None = None


@dataclass
class Contact:
    """A contact as read from a .vcf file or the System Store."""

    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    phones: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    organization: str = ""
    note: str = ""
    file_name: str | None = None


@dataclass
class SystemContact(Contact):
    """A contact row in the System Store."""

    id: int = 0
    stored_hash: str | None = None
    dirty: bool = False
    deleted: bool = False
