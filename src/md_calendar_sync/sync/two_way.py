"""
Bidirectional reconciliation between the File Store and the System Store.

One pass:
  Phase A  merge duplicate folders, scan every collection (see scan.py)
  Phase B  fetch the collection's System Store records
  Phase C  reconcile each system record with its linked file
  Phase D  retire files whose system record is gone
  Phase E  insert new, unlinked files and stamp their ids
"""

from datetime import datetime

from md_calendar_sync.models import TASKS_COLLECTION
from md_calendar_sync.models import Record
from md_calendar_sync.models import RollbackError
from md_calendar_sync.models import StoreIOError
from md_calendar_sync.models import SystemRecord
from md_calendar_sync.sync import writer
from md_calendar_sync.sync.batch import BatchQueue
from md_calendar_sync.sync.context import PassContext
from md_calendar_sync.sync.policy import CollectionPolicy
from md_calendar_sync.sync.policy import TaskPolicy
from md_calendar_sync.sync.scan import ScanResult
from md_calendar_sync.sync.scan import calendar_policies
from md_calendar_sync.sync.scan import merge_duplicate_folders
from md_calendar_sync.sync.scan import prune_cache
from md_calendar_sync.sync.scan import scan_collection
from md_calendar_sync.system_store import BatchOp


def run_two_way(ctx: PassContext):
    """Run one complete pass over every configured collection."""
    config = ctx.config
    logger = ctx.logger

    ctx.record_index = ctx.store.record_index()

    # Phase A: scan both roots before touching anything
    scans: list[tuple[CollectionPolicy, ScanResult]] = []
    if config.calendar_root is not None:
        logger.info("Scanning calendar folders...")
        merge_duplicate_folders(ctx, config.calendar_root)
        for policy in calendar_policies(ctx, config.calendar_root):
            scans.append((policy, scan_collection(ctx, policy)))
    if config.task_root is not None:
        logger.info("Scanning task folder...")
        policy = TaskPolicy(config.task_root)
        scans.append((policy, scan_collection(ctx, policy)))

    def in_scope(collection: str) -> bool:
        if collection == TASKS_COLLECTION:
            return config.task_root is not None
        return config.calendar_root is not None

    prune_cache(ctx, in_scope)

    ctx.palette.reconcile(ctx.file_colors | ctx.store.used_colors())

    existing_collections = ctx.store.list_collections()
    for policy, scanned in scans:
        if policy.collection not in existing_collections:
            logger.info(f"[{policy.collection}] Creating collection")
            ctx.new_collections.add(policy.collection)
        collection_id = ctx.store.ensure_collection(policy.collection)
        reconcile_collection(ctx, policy, collection_id, scanned)

    if config.calendar_root is not None and not ctx.tree.listing_errors:
        folders = {policy.collection for policy, _ in scans}
        for name in existing_collections:
            if name != TASKS_COLLECTION and name not in folders:
                logger.info(f"Folder for collection {name!r} is gone; deleting collection")
                try:
                    ctx.store.delete_collection(name)
                    ctx.stats.deleted += 1
                except StoreIOError as e:
                    logger.error(f"Failed to delete collection {name!r}: {e}")
                    ctx.stats.errors += 1


def reconcile_collection(
    ctx: PassContext,
    policy: CollectionPolicy,
    collection_id: int,
    scanned: ScanResult,
):
    """Phases B to E for one collection."""
    logger = ctx.logger
    label = f"[{policy.collection}]"
    is_new = policy.collection in ctx.new_collections

    # Phase B: fetch
    logger.info(f"{label} Fetching system records...")
    try:
        system_records = ctx.store.list_records(collection_id)
    except StoreIOError as e:
        logger.error(f"{label} Cannot list system records: {e}")
        ctx.stats.errors += 1
        return
    for system in system_records:
        system.color = ctx.palette.resolve(system.color, system.color_key)
    logger.debug(f"{label} {len(system_records)} system records")

    # Phase C: reconcile by id
    queue = BatchQueue(ctx.store.apply_batch, ctx.stats, logger)
    seen: set[int] = set()
    for system in sorted(system_records, key=lambda s: s.id):
        seen.add(system.id)
        try:
            _reconcile_record(ctx, policy, queue, system, scanned.existing.get(system.id), is_new)
        except StoreIOError as e:
            logger.error(f"{label} Failed to reconcile record {system.id}: {e}")
            ctx.stats.errors += 1
    queue.flush()

    # Phase D: files whose system record is gone
    for record_id, record in scanned.existing.items():
        if record_id in seen:
            continue
        if is_new:
            logger.debug(f"{label} Keeping {record.file_path}: collection is new this pass")
            continue
        logger.info(f"{label} Record {record_id} no longer exists; retiring {record.file_path}")
        if policy.retire(ctx, record):
            ctx.stats.deleted += 1
        else:
            ctx.stats.errors += 1

    # Phase E: new, unlinked files
    for record in scanned.new:
        _insert_new(ctx, policy, collection_id, record)


def _reconcile_record(
    ctx: PassContext,
    policy: CollectionPolicy,
    queue: BatchQueue,
    system: SystemRecord,
    file_record: Record | None,
    is_new: bool,
):
    logger = ctx.logger

    if system.deleted:
        if file_record is not None and not policy.retire(ctx, file_record):
            ctx.stats.errors += 1
            return
        logger.info(f"[{policy.collection}] Deleted in system store: {system.title!r}")
        queue.add(BatchOp("delete", system.id))
        ctx.stats.deleted += 1
        return

    if policy.supports_archive and (
        policy.is_done(system.title)
        or (
            file_record is not None
            and not file_record.is_stub
            and policy.is_done(file_record.title)
        )
    ):
        if file_record is not None and not policy.archive(ctx, file_record):
            ctx.stats.errors += 1
            return
        queue.add(BatchOp("delete", system.id))
        ctx.stats.archived += 1
        return

    if system.dirty:
        if file_record is not None and file_record.needs_update:
            # both sides changed: the file wins
            logger.info(f"[{policy.collection}] Conflict on {file_record.file_path}; file wins")
            _push_file(ctx, policy, queue, file_record)
        elif file_record is not None:
            _merge_system(ctx, policy, queue, system, file_record)
        else:
            _adopt(ctx, policy, queue, system)
        return

    if file_record is None:
        if system.id in ctx.vanished_ids and not is_new:
            logger.info(f"[{policy.collection}] File for {system.title!r} was removed; deleting")
            queue.add(BatchOp("delete", system.id))
            ctx.stats.deleted += 1
        else:
            _adopt(ctx, policy, queue, system)
        return

    if file_record.needs_update:
        _push_file(ctx, policy, queue, file_record)


def _push_file(ctx: PassContext, policy: CollectionPolicy, queue: BatchQueue, record: Record):
    """File side changed: copy its fields into the System Store."""
    policy.default_start(record, datetime.now())
    policy.normalize(record)
    queue.add(BatchOp("update", record.system_id, policy.to_fields(record, ctx.palette)))
    ctx.stats.modified += 1
    ctx.logger.debug(f"[{policy.collection}] Pushed {record.file_path}")
    if record.needs_rewrite or writer.needs_relocation(policy, record):
        if writer.save_record(ctx, policy, record) is None:
            ctx.stats.errors += 1


def _merge_system(
    ctx: PassContext,
    policy: CollectionPolicy,
    queue: BatchQueue,
    system: SystemRecord,
    file_record: Record,
):
    """System side changed: structured fields from the system, the rest from the file."""
    full = writer.load_full(ctx, policy, file_record)
    if full is None:
        ctx.logger.error(f"[{policy.collection}] Cannot read {file_record.file_path}; skipping")
        ctx.stats.errors += 1
        return
    merged = policy.from_system(system, base=full)
    policy.normalize(merged)
    fields = policy.to_fields(merged, ctx.palette) if merged.needs_rewrite else {}
    if writer.save_record(ctx, policy, merged) is None:
        ctx.stats.errors += 1
        return
    queue.add(BatchOp("update", system.id, fields))
    ctx.stats.modified += 1
    ctx.logger.debug(f"[{policy.collection}] Updated {merged.file_path} from system store")


def _adopt(ctx: PassContext, policy: CollectionPolicy, queue: BatchQueue, system: SystemRecord):
    """Write a brand-new file for a record that originated in the System Store."""
    record = policy.from_system(system)
    policy.normalize(record)
    normalized = record.needs_rewrite
    path = writer.save_record(ctx, policy, record)
    if path is None:
        ctx.stats.errors += 1
        return
    if system.dirty or normalized:
        fields = policy.to_fields(record, ctx.palette) if normalized else {}
        queue.add(BatchOp("update", system.id, fields))
    ctx.stats.added += 1
    ctx.logger.info(f"[{policy.collection}] Adopted {system.title!r} as {path}")


def _insert_new(ctx: PassContext, policy: CollectionPolicy, collection_id: int, record: Record):
    """Insert a new file's record, then write the new id back into the file."""
    policy.default_start(record, datetime.now())
    policy.normalize(record)
    try:
        new_id = ctx.store.insert(collection_id, policy.to_fields(record, ctx.palette))
    except StoreIOError as e:
        ctx.logger.error(f"[{policy.collection}] Insert failed for {record.file_path}: {e}")
        ctx.stats.errors += 1
        return

    source = record.file_path
    record.system_id = new_id
    if writer.save_record(ctx, policy, record) is None:
        ctx.logger.error(
            f"[{policy.collection}] Could not write id {new_id} into {source}; rolling back"
        )
        ctx.stats.errors += 1
        try:
            _rollback_insert(ctx, new_id)
        except RollbackError as e:
            ctx.logger.error(str(e))
        return
    ctx.stats.added += 1
    ctx.logger.info(f"[{policy.collection}] Created {record.title!r} from {source}")


def _rollback_insert(ctx: PassContext, record_id: int):
    try:
        ctx.store.delete(record_id)
    except StoreIOError as e:
        raise RollbackError(f"Compensating delete of record {record_id} failed: {e}") from e
