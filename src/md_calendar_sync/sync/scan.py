"""
Phase A: fold duplicate folders together and scan collections into records.
"""

from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field

from md_calendar_sync.file_store import DocumentInfo
from md_calendar_sync.models import TASKS_COLLECTION
from md_calendar_sync.models import CacheEntry
from md_calendar_sync.models import Record
from md_calendar_sync.sync.context import PassContext
from md_calendar_sync.sync.policy import CalendarPolicy
from md_calendar_sync.sync.policy import CollectionPolicy
from md_calendar_sync.sync.utils import is_document_name


@dataclass
class ScanResult:
    """Records found in one collection folder."""

    existing: dict[int, Record] = field(default_factory=dict)  # first claim wins
    new: list[Record] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Duplicate folder merge
# ---------------------------------------------------------------------------


def merge_duplicate_folders(ctx: PassContext, root) -> int:
    """
    Merge folders whose names differ only by case.

    The folder with the earliest modification time survives; the others are
    emptied into it and removed.  Returns the number of folders removed.
    """
    groups: dict[str, list[DocumentInfo]] = {}
    for info in ctx.tree.list_children(root):
        if info.is_directory and not info.name.startswith("."):
            groups.setdefault(info.name.lower(), []).append(info)

    removed = 0
    for infos in groups.values():
        if len(infos) < 2:
            continue
        infos.sort(key=lambda info: (info.modified_at, info.name))
        target = infos[0]
        for duplicate in infos[1:]:
            ctx.logger.info(f"Merging folder {duplicate.name!r} into {target.name!r}")
            _merge_into(ctx, duplicate.handle, target.handle)
            if ctx.tree.delete(duplicate.handle):
                removed += 1
            else:
                ctx.stats.errors += 1
    return removed


def _merge_into(ctx: PassContext, source, target):
    for info in list(ctx.tree.list_children(source)):
        if info.is_directory:
            sub = ctx.tree.get_or_create_folder(target, info.name)
            if sub is None:
                continue
            _merge_into(ctx, info.handle, sub)
            ctx.tree.delete(info.handle)
            continue
        if ctx.tree.child(target, info.name) is None and ctx.tree.move(info.handle, target):
            continue
        # name taken or move refused: copy under a free name, then drop the source
        if ctx.tree.copy_into(info.handle, target, info.name) is not None:
            ctx.tree.delete(info.handle)
        else:
            ctx.stats.errors += 1


# ---------------------------------------------------------------------------
# Collection scan
# ---------------------------------------------------------------------------


def calendar_policies(ctx: PassContext, root) -> list[CalendarPolicy]:
    """One CalendarPolicy per visible top-level folder of the calendar root."""
    policies = []
    for info in ctx.tree.list_children(root):
        if not info.is_directory or info.name.startswith("."):
            continue
        if info.name == TASKS_COLLECTION:
            ctx.logger.warning(f"Skipping calendar folder {info.name!r}: reserved for tasks")
            continue
        policies.append(CalendarPolicy(info.name, info.handle, root))
    return policies


def scan_collection(ctx: PassContext, policy: CollectionPolicy) -> ScanResult:
    """Walk a collection folder and sort its documents into linked and new records."""
    result = ScanResult()
    _walk(ctx, policy, policy.folder, "", result)
    ctx.logger.info(
        f"[{policy.collection}] Scanned {len(result.existing)} linked, {len(result.new)} new"
    )
    return result


def _walk(ctx: PassContext, policy: CollectionPolicy, folder, prefix: str, result: ScanResult):
    for info in ctx.tree.list_children(folder):
        relative = f"{prefix}{info.name}"
        if info.is_directory:
            # hidden folders hold trash, archive and tool metadata
            if not info.name.startswith("."):
                _walk(ctx, policy, info.handle, f"{relative}/", result)
            continue
        if not is_document_name(info.name):
            continue
        path = policy.cache_path(relative)
        ctx.found_paths.add(path)
        _scan_document(ctx, policy, info, path, result)


def _scan_document(
    ctx: PassContext,
    policy: CollectionPolicy,
    info: DocumentInfo,
    path: str,
    result: ScanResult,
):
    entry = ctx.cache.get(path)
    linked = entry.linked_id if entry else None

    if (
        linked is not None
        and entry.last_modified == info.modified_at
        and ctx.claim(linked, policy.collection)
    ):
        result.existing[linked] = policy.stub(info.name, path, info.handle, linked)
        return

    content = ctx.tree.read_text(info.handle)
    if content is None:
        ctx.stats.errors += 1
        # keep the link so the system record is not adopted into a second file
        if linked is not None and ctx.claim(linked, policy.collection):
            result.existing[linked] = policy.stub(info.name, path, info.handle, linked)
        return

    record = policy.read_record(content, info.name)
    if record is None:
        if linked is not None:
            # no longer eligible: its system record goes the way of a deleted file
            ctx.logger.info(f"{path}: no longer scheduled; unlinking id {linked}")
            ctx.vanished_ids.add(linked)
            ctx.cache.upsert(CacheEntry(path, policy.collection, info.modified_at, None))
        return
    record.file_path = path
    record.handle = info.handle
    record.needs_update = True
    if record.color is not None:
        ctx.file_colors.add(record.color)

    declared = record.system_id if record.system_id is not None else linked
    if declared is not None and record.system_id is None:
        record.needs_rewrite = True

    if declared is not None and ctx.claim(declared, policy.collection):
        record.system_id = declared
        result.existing[declared] = record
        ctx.cache.upsert(CacheEntry(path, policy.collection, info.modified_at, declared))
        return

    if declared is not None:
        holder = result.existing.get(declared)
        if holder is not None:
            ctx.logger.warning(
                f"{path}: id {declared} already belongs to {holder.file_path}; "
                f"treating as a new record"
            )
        else:
            ctx.logger.warning(f"{path}: id {declared} is unknown here; treating as a new record")
    record.system_id = None
    result.new.append(record)


# ---------------------------------------------------------------------------
# Cache pruning
# ---------------------------------------------------------------------------


def prune_cache(ctx: PassContext, in_scope: Callable[[str], bool]) -> int:
    """
    Drop cache rows for files that were not seen during the scan.

    Their linked ids are remembered in ``ctx.vanished_ids``.  Nothing is
    pruned when any directory listing failed, since a missing file could then
    just be an unreadable one.
    """
    if ctx.tree.listing_errors:
        ctx.logger.warning("Directory listing failed during scan; keeping cached rows")
        return 0
    pruned = 0
    for entry in ctx.cache.list_all():
        if entry.path in ctx.found_paths or not in_scope(entry.collection_name):
            continue
        ctx.cache.delete(entry.path)
        pruned += 1
        if entry.linked_id is not None:
            ctx.vanished_ids.add(entry.linked_id)
            ctx.logger.debug(f"File for record {entry.linked_id} is gone: {entry.path}")
    return pruned
