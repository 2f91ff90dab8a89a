"""
Stateless filename and hashing helpers.
"""

import hashlib
import re
from datetime import date

# Characters that are not allowed (or not portable) in file names.
_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*]')

# "2026-02-20_Dentist" -> ("2026-02-20", "Dentist")
_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})_(.*)$")

# Editors and sync tools leave "name~" backups; the title ignores the marker.
_BACKUP_SUFFIX_RE = re.compile(r"~\d*$")

CONFLICT_MARKER = ".sync-conflict-"
DOCUMENT_EXTENSION = ".md"


def sanitize_filename(name: str) -> str:
    """Replace unsafe characters and trim trailing dots; never returns an empty name."""
    cleaned = _UNSAFE_CHARS_RE.sub("-", name).strip().rstrip(".").strip()
    return cleaned or "Untitled"


def is_document_name(name: str) -> bool:
    return name.endswith(DOCUMENT_EXTENSION) and CONFLICT_MARKER not in name


def split_document_name(name: str) -> tuple[date | None, str]:
    """
    Derive ``(date prefix, title)`` from a document file name.

    ``2026-02-20_Team_sync.md`` gives ``(date(2026, 2, 20), "Team sync")``.
    """
    stem = name[: -len(DOCUMENT_EXTENSION)] if name.endswith(DOCUMENT_EXTENSION) else name
    stem = _BACKUP_SUFFIX_RE.sub("", stem)
    parsed_date = None
    match = _DATE_PREFIX_RE.match(stem)
    if match:
        try:
            parsed_date = date.fromisoformat(match.group(1))
            stem = match.group(2)
        except ValueError:
            pass
    return parsed_date, stem.replace("_", " ").strip()


def compute_hash(*parts: str) -> str:
    """SHA256 over the given parts, joined with a separator that cannot occur in them."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()
