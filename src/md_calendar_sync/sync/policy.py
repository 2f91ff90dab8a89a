"""
Per-collection strategies injected into the generic reconciliation routine.

A policy decides which files belong to the collection, where a record's file
lives, how a record is normalized before it reaches the System Store, and
what "retiring" a file means (trash for calendars, strip for tasks).
"""

import re
from datetime import datetime
from datetime import time
from datetime import timedelta

from md_calendar_sync import codec
from md_calendar_sync.models import TASKS_COLLECTION
from md_calendar_sync.models import Record
from md_calendar_sync.models import SystemRecord
from md_calendar_sync.palette import PaletteManager
from md_calendar_sync.sync import writer
from md_calendar_sync.sync.utils import sanitize_filename
from md_calendar_sync.sync.utils import split_document_name

RECURRING_FOLDER = "_Recurring"
INBOX_FOLDER = "Inbox"

TASK_PREFIX = "[] "
TASK_DURATION = timedelta(minutes=10)

# "[x] Buy milk" / "[X] Buy milk" marks a finished task
_DONE_MARKER_RE = re.compile(r"^\[x\] ", re.IGNORECASE)


class CollectionPolicy:
    """
    Behaviour shared by every file-backed collection.

    ``folder`` is the handle scanned for the collection's documents; cache
    paths are ``<collection>/<path below folder>``.  ``root`` is where the
    trash and archive subtrees live.
    """

    kind = "generic"
    supports_archive = False

    def __init__(self, collection: str, folder, root):
        self.collection = collection
        self.folder = folder
        self.root = root

    def __repr__(self):
        return f"{type(self).__name__}({self.collection!r})"

    # ---- Paths ---- #

    def cache_path(self, relative: str) -> str:
        return f"{self.collection}/{relative}"

    def relative(self, path: str) -> str:
        return path.split("/", 1)[1] if "/" in path else path

    def target_location(self, record: Record, current: str | None) -> tuple[list[str], str]:
        """Return ``(folder parts below self.folder, file base name)`` for a record."""
        raise NotImplementedError

    # ---- Documents ---- #

    def eligible(self, content: str) -> bool:
        return True

    def read_record(self, content: str, name: str) -> Record | None:
        """Parse a document, filling gaps in the header from its file name."""
        if not self.eligible(content):
            return None
        record = codec.parse(content)
        name_date, name_title = split_document_name(name)
        if not record.title:
            record.title = name_title
            record.needs_rewrite = True
        if record.start is None and name_date is not None:
            record.start = datetime.combine(name_date, time())
            record.all_day = True
            record.needs_rewrite = True
        if not codec.has_required_metadata(record):
            record.needs_rewrite = True
        return record

    def stub(self, name: str, path: str, handle, linked_id: int) -> Record:
        """A linked record built from the cache without reading the file."""
        _, title = split_document_name(name)
        return Record(
            title=title,
            system_id=linked_id,
            file_path=path,
            handle=handle,
            is_stub=True,
        )

    def normalize(self, record: Record) -> Record:
        return record

    # ---- System Store mapping ---- #

    def to_fields(self, record: Record, palette: PaletteManager) -> dict:
        start = record.start
        end = record.end
        if start is not None and end is None:
            end = start + (timedelta(days=1) if record.all_day else timedelta(hours=1))
        return {
            "title": record.title,
            "start": start,
            "end": end,
            "all_day": record.all_day,
            "recurrence": record.recurrence,
            "location": record.location,
            "timezone": record.timezone,
            "color": record.color,
            "color_key": palette.key_for(record.color),
            "attendees": list(record.attendees),
            "reminders": list(record.reminders),
            "description": record.body,
        }

    def from_system(self, system: SystemRecord, base: Record | None = None) -> Record:
        """
        Build a file record from a SystemRecord.

        With ``base`` (the existing file record) the structured fields come
        from the System Store while body, tags, opaque metadata and link
        fields are kept from the file.
        """
        record = Record(
            title=system.title,
            start=system.start,
            end=system.end,
            all_day=system.all_day,
            recurrence=system.recurrence,
            location=system.location,
            timezone=system.timezone,
            color=system.color,
            color_key=system.color_key,
            attendees=list(system.attendees),
            reminders=list(system.reminders),
            body=system.description,
            system_id=system.id,
        )
        if base is not None:
            record.body = base.body
            record.tags = list(base.tags)
            record.metadata = dict(base.metadata)
            record.override_id = base.override_id
            record.file_path = base.file_path
            record.handle = base.handle
        return record

    def default_start(self, record: Record, now: datetime):
        if record.start is None:
            if record.all_day:
                record.start = datetime.combine(now.date(), time())
            else:
                record.start = now.replace(second=0, microsecond=0)
            record.needs_rewrite = True

    # ---- Retire / archive ---- #

    def is_done(self, title: str) -> bool:
        return False

    def retire(self, ctx, record: Record) -> bool:
        raise NotImplementedError

    def archive(self, ctx, record: Record) -> bool:
        raise NotImplementedError(f"{self.kind} collections have no archive")


class CalendarPolicy(CollectionPolicy):
    """One calendar per top-level folder; files filed by year and month."""

    kind = "calendar"

    def target_location(self, record: Record, current: str | None) -> tuple[list[str], str]:
        title = sanitize_filename(record.title)
        if record.recurrence:
            return [RECURRING_FOLDER], title
        start = record.start or datetime.now()
        return [f"{start:%Y}", f"{start:%m}"], f"{start:%Y-%m-%d}_{title}"

    def retire(self, ctx, record: Record) -> bool:
        return writer.trash_record(ctx, self, record)


class TaskPolicy(CollectionPolicy):
    """The single ``Tasks`` collection; files keep whatever folder the user chose."""

    kind = "task"
    supports_archive = True

    def __init__(self, folder):
        super().__init__(TASKS_COLLECTION, folder, folder)

    def eligible(self, content: str) -> bool:
        return codec.has_schedule_line(content)

    def target_location(self, record: Record, current: str | None) -> tuple[list[str], str]:
        if current is None:
            parts = [INBOX_FOLDER]
        else:
            parts = current.split("/")[:-1]
        return parts, sanitize_filename(strip_task_prefix(record.title))

    def normalize(self, record: Record) -> Record:
        title = record.title
        if not title.startswith(TASK_PREFIX) and not self.is_done(title):
            record.title = TASK_PREFIX + title.strip()
            record.needs_rewrite = True
        if record.start is not None and record.end != record.start + TASK_DURATION:
            record.end = record.start + TASK_DURATION
            record.needs_rewrite = True
        return record

    def is_done(self, title: str) -> bool:
        return _DONE_MARKER_RE.match(title or "") is not None

    def retire(self, ctx, record: Record) -> bool:
        return writer.strip_record(ctx, self, record)

    def archive(self, ctx, record: Record) -> bool:
        return writer.archive_record(ctx, self, record)


def strip_task_prefix(title: str) -> str:
    if title.startswith(TASK_PREFIX):
        return title[len(TASK_PREFIX) :].strip()
    return _DONE_MARKER_RE.sub("", title).strip()
