"""
Contact sync between a folder of .vcf files and the System Store.

Unlike calendar documents, contact files are rewritten wholesale, so change
detection compares a content hash instead of modification times.  Each cycle:

  1. export new/dirty system contacts to files (reverse sync)
  2. apply tombstones: delete the file and the record
  3. forward pass: insert/update/delete system contacts from the files
"""

import uuid

from md_calendar_sync.file_store import DocumentTree
from md_calendar_sync.models import Contact
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncStats
from md_calendar_sync.sync.batch import CONTACT_BATCH_SIZE
from md_calendar_sync.sync.batch import BatchQueue
from md_calendar_sync.sync.utils import CONFLICT_MARKER
from md_calendar_sync.sync.utils import compute_hash
from md_calendar_sync.sync.utils import sanitize_filename
from md_calendar_sync.system_store import ContactOp
from md_calendar_sync.system_store import ContactStore
from md_calendar_sync.vcard import display_name_for
from md_calendar_sync.vcard import parse_vcards
from md_calendar_sync.vcard import to_vcard

CONTACT_EXTENSION = ".vcf"


def contact_hash(contact: Contact) -> str:
    """Stable hash of the fields a contact file carries; list order does not matter."""
    return compute_hash(
        contact.first_name,
        contact.last_name,
        contact.display_name,
        "\x1e".join(sorted(contact.phones)),
        "\x1e".join(sorted(contact.emails)),
        contact.organization,
        contact.note,
    )


def generate_contact_filename(contact: Contact) -> str:
    base = sanitize_filename(display_name_for(contact))
    return f"{base}_{uuid.uuid4().hex[:8]}{CONTACT_EXTENSION}"


def run_contact_sync(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    store: ContactStore,
    tree: DocumentTree,
):
    root = config.contacts_root
    queue = BatchQueue(store.apply_contact_batch, stats, logger, size=CONTACT_BATCH_SIZE)

    logger.info("Exporting new and changed contacts...")
    _export_pending(stats, logger, store, tree, root)

    logger.info("Applying contact deletions...")
    _apply_tombstones(stats, logger, store, tree, root, queue)
    queue.flush()

    logger.info("Reading contact files...")
    _import_files(stats, logger, store, tree, root, queue)
    queue.flush()


def _export_pending(stats, logger, store: ContactStore, tree: DocumentTree, root):
    for contact in store.list_pending_contacts():
        is_new = contact.file_name is None
        name = contact.file_name or generate_contact_filename(contact)
        text = to_vcard(contact)
        existing = tree.child(root, name)
        handle = tree.write(
            root, name, text.encode("utf-8"), original=existing.handle if existing else None
        )
        if handle is None:
            stats.errors += 1
            continue

        # hash what the file will parse back to, so the forward pass sees no change
        parsed = parse_vcards(text)
        digest = contact_hash(parsed[0] if parsed else contact)
        store.mark_exported(contact.id, tree.store.name_of(handle), digest)
        if is_new:
            stats.added += 1
        else:
            stats.modified += 1
        logger.debug(f"Exported contact {contact.id} to {name}")


def _apply_tombstones(stats, logger, store: ContactStore, tree: DocumentTree, root, queue):
    for contact in store.list_deleted_contacts():
        if contact.file_name:
            info = tree.child(root, contact.file_name)
            if info is not None and not tree.delete(info.handle):
                stats.errors += 1
                continue
        queue.add(ContactOp("delete", contact_id=contact.id))
        stats.deleted += 1
        logger.info(f"Deleted contact {display_name_for(contact)!r}")


def _import_files(stats, logger, store: ContactStore, tree: DocumentTree, root, queue):
    by_file = {c.file_name: c for c in store.list_contacts() if c.file_name}
    seen: set[str] = set()

    for info in tree.list_children(root):
        name = info.name
        if info.is_directory or not name.endswith(CONTACT_EXTENSION) or CONFLICT_MARKER in name:
            continue
        seen.add(name)
        content = tree.read_text(info.handle)
        if content is None:
            stats.errors += 1
            continue
        parsed = parse_vcards(content)
        if not parsed:
            logger.warning(f"No contact found in {name}")
            continue
        if len(parsed) > 1:
            logger.debug(f"{name} holds {len(parsed)} contacts; using the first")
        contact = parsed[0]
        contact.file_name = name
        digest = contact_hash(contact)

        existing = by_file.get(name)
        if existing is None:
            queue.add(ContactOp("insert", contact=contact, stored_hash=digest))
            stats.added += 1
        elif existing.stored_hash != digest:
            queue.add(
                ContactOp("update", contact=contact, contact_id=existing.id, stored_hash=digest)
            )
            stats.modified += 1

    for name, existing in by_file.items():
        if name not in seen:
            logger.info(f"Contact file {name} is gone; deleting contact")
            queue.add(ContactOp("delete", contact_id=existing.id))
            stats.deleted += 1
