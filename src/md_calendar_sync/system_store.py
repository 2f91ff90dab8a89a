"""
System Store adapter contract.

The System Store owns its records and maintains the ``dirty``/``deleted``
bits itself.  Every write made through this interface is a sync-adapter
write: it never sets ``dirty``, and updates may clear it explicitly.
"""

from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from md_calendar_sync.models import Contact
from md_calendar_sync.models import SystemContact
from md_calendar_sync.models import SystemRecord


@dataclass
class BatchOp:
    """One queued record mutation: ``update`` (fields, optionally clearing dirty) or ``delete``."""

    kind: str
    record_id: int
    fields: dict[str, Any] = field(default_factory=dict)
    clear_dirty: bool = True


@dataclass
class ContactOp:
    """One queued contact mutation: ``insert``, ``update`` or ``delete``."""

    kind: str
    contact: Contact | None = None
    contact_id: int | None = None
    stored_hash: str | None = None


@dataclass
class BatchResult:
    applied: int = 0
    failed: list[tuple[Any, str]] = field(default_factory=list)


class SystemStore(ABC):
    """Records grouped into named collections, plus the shared color palette."""

    # ---- Collections ---- #

    @abstractmethod
    def list_collections(self) -> dict[str, int]:
        """Return ``{name: collection id}``."""

    @abstractmethod
    def ensure_collection(self, name: str) -> int:
        """Return the id of collection ``name``, creating it if needed."""

    @abstractmethod
    def delete_collection(self, name: str) -> None: ...

    # ---- Records ---- #

    @abstractmethod
    def list_records(self, collection_id: int) -> list[SystemRecord]:
        """All records of a collection, tombstoned ones included."""

    @abstractmethod
    def record_index(self) -> dict[int, str]:
        """Return ``{record id: collection name}`` for every record, tombstoned ones included."""

    @abstractmethod
    def insert(self, collection_id: int, fields: dict[str, Any]) -> int:
        """Insert a clean record and return its new id."""

    @abstractmethod
    def delete(self, record_id: int) -> None: ...

    @abstractmethod
    def apply_batch(self, ops: list[BatchOp]) -> BatchResult:
        """
        Apply ``ops``; individual failures are reported in the result.

        Raises BatchApplyError when the whole batch is rejected.
        """

    # ---- Palette ---- #

    @abstractmethod
    def list_colors(self) -> dict[str, int]: ...

    @abstractmethod
    def insert_color(self, key: str, value: int) -> None: ...

    @abstractmethod
    def delete_color(self, key: str) -> None: ...

    @abstractmethod
    def used_colors(self) -> set[int]:
        """Color values referenced by any live record."""

    def ping(self) -> None:
        """Keep an idle connection alive; no-op unless the backend needs it."""
        return None


class ContactStore(ABC):
    """Contact rows with the same dirty/deleted bookkeeping."""

    @abstractmethod
    def list_contacts(self) -> list[SystemContact]:
        """Every contact that is not tombstoned."""

    @abstractmethod
    def list_pending_contacts(self) -> list[SystemContact]:
        """Live contacts that are dirty or were never exported to a file."""

    @abstractmethod
    def list_deleted_contacts(self) -> list[SystemContact]: ...

    @abstractmethod
    def mark_exported(self, contact_id: int, file_name: str, stored_hash: str) -> None:
        """Record the file a contact was written to and clear its dirty bit."""

    @abstractmethod
    def apply_contact_batch(self, ops: list[ContactOp]) -> BatchResult: ...


# Field names accepted by insert() and update ops.
RECORD_FIELDS = (
    "title",
    "start",
    "end",
    "all_day",
    "recurrence",
    "location",
    "timezone",
    "color",
    "color_key",
    "attendees",
    "reminders",
    "description",
)
