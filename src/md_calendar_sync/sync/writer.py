"""
File-side write-back: save, trash, strip and archive record documents.

Every helper commits the file mutation first and only then touches the
Metadata Cache, so a crash in between leaves at worst a stale cache row that
the next scan cleans up.
"""

import logging
import time

from md_calendar_sync import codec
from md_calendar_sync.models import CacheEntry
from md_calendar_sync.models import Record

TRASH_FOLDER = ".Deleted"
ARCHIVE_FOLDER = ".Archive"

_logger = logging.getLogger(__name__)


def _locate(ctx, policy, record: Record):
    """Return a live handle for the record's file, or None."""
    if record.handle is not None and ctx.tree.exists(record.handle):
        return record.handle
    if record.file_path:
        return ctx.tree.find(policy.folder, policy.relative(record.file_path))
    return None


def load_full(ctx, policy, record: Record) -> Record | None:
    """Turn a cache stub into a fully parsed record, keeping its link fields."""
    if not record.is_stub:
        return record
    handle = _locate(ctx, policy, record)
    content = ctx.tree.read_text(handle) if handle is not None else None
    if content is None:
        return None
    full = policy.read_record(content, ctx.tree.store.name_of(handle)) or codec.parse(content)
    full.system_id = record.system_id
    full.file_path = record.file_path
    full.handle = handle
    return full


def save_record(ctx, policy, record: Record) -> str | None:
    """
    Write ``record`` to its canonical location, replacing its current file.

    Renames and relocations happen here: the new document is written next to
    its final name, the old one deleted, and only then is the cache row moved
    to the new path.  Returns the new cache path, or None if nothing was
    written.
    """
    current = policy.relative(record.file_path) if record.file_path else None
    parts, base = policy.target_location(record, current)
    folder, names = ctx.tree.folder_path(policy.folder, parts)
    if folder is None:
        return None

    original = _locate(ctx, policy, record)
    name = ctx.tree.unique_name(folder, base, keep=original)
    data = codec.serialize(record).encode("utf-8")
    handle = ctx.tree.write(folder, name, data, original=original)
    if handle is None:
        return None

    new_path = policy.cache_path("/".join([*names, ctx.tree.store.name_of(handle)]))
    modified_at = ctx.tree.modified_at(handle) or 0
    if record.file_path and record.file_path != new_path:
        ctx.cache.delete(record.file_path)
        ctx.logger.info(f"Renamed {record.file_path} -> {new_path}")
    ctx.cache.upsert(CacheEntry(new_path, policy.collection, modified_at, record.system_id))

    record.file_path = new_path
    record.handle = handle
    record.needs_rewrite = False
    return new_path


def needs_relocation(policy, record: Record) -> bool:
    """True when the record's file is not at the path its fields call for."""
    if not record.file_path:
        return True
    current = policy.relative(record.file_path)
    parts, base = policy.target_location(record, current)
    current_parts = current.split("/")
    if [p.lower() for p in current_parts[:-1]] != [p.lower() for p in parts]:
        return True
    name = current_parts[-1]
    # "base (2).md" is a collision-resolved copy of "base.md"
    return not (name == f"{base}.md" or (name.startswith(f"{base} (") and name.endswith(").md")))


def trash_record(ctx, policy, record: Record) -> bool:
    """Move a calendar document into the trash subtree, content untouched."""
    handle = _locate(ctx, policy, record)
    if handle is None:
        ctx.cache.delete(record.file_path)
        return True
    try:
        data = ctx.tree.store.read(handle)
    except OSError as e:
        _logger.error(f"Cannot read {record.file_path} for trashing: {e}")
        return False

    trash = ctx.tree.get_or_create_folder(policy.root, TRASH_FOLDER)
    if trash is None:
        return False
    flat = policy.relative(record.file_path).replace("/", "_")
    name = f"{policy.collection}_{int(time.time() * 1000)}_{flat}"
    if ctx.tree.create_file(trash, name, data) is None:
        return False
    if not ctx.tree.delete(handle):
        return False
    ctx.cache.delete(record.file_path)
    ctx.logger.info(f"Moved {record.file_path} to trash")
    return True


def strip_record(ctx, policy, record: Record) -> bool:
    """Remove date and link fields from a task document but keep the file."""
    handle = _locate(ctx, policy, record)
    if handle is None:
        ctx.cache.delete(record.file_path)
        return True
    content = ctx.tree.read_text(handle)
    if content is None:
        return False

    parent = ctx.tree.store.parent_of(handle)
    name = ctx.tree.store.name_of(handle)
    stripped = codec.strip_calendar_fields(content).encode("utf-8")
    new_handle = ctx.tree.write(parent, name, stripped, original=handle)
    if new_handle is None:
        return False

    path = record.file_path
    new_name = ctx.tree.store.name_of(new_handle)
    if new_name != name:
        ctx.cache.delete(path)
        path = path[: -len(name)] + new_name
    modified_at = ctx.tree.modified_at(new_handle) or 0
    ctx.cache.upsert(CacheEntry(path, policy.collection, modified_at, None))
    ctx.logger.info(f"Unlinked {record.file_path}")
    return True


def archive_record(ctx, policy, record: Record) -> bool:
    """Move a finished task into the archive subtree with date and link fields stripped."""
    handle = _locate(ctx, policy, record)
    if handle is None:
        ctx.cache.delete(record.file_path)
        return True
    content = ctx.tree.read_text(handle)
    if content is None:
        return False

    relative = policy.relative(record.file_path).split("/")
    folder, _ = ctx.tree.folder_path(policy.root, [ARCHIVE_FOLDER, *relative[:-1]])
    if folder is None:
        return False
    base = relative[-1][: -len(".md")] if relative[-1].endswith(".md") else relative[-1]
    name = ctx.tree.unique_name(folder, base)
    stripped = codec.strip_calendar_fields(content).encode("utf-8")
    if ctx.tree.create_file(folder, name, stripped) is None:
        return False
    if not ctx.tree.delete(handle):
        return False
    ctx.cache.delete(record.file_path)
    ctx.logger.info(f"Archived {record.file_path}")
    return True
