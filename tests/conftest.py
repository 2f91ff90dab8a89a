"""
Shared pytest fixtures and document helpers.
"""

import logging
import os
from pathlib import Path

import pytest

from md_calendar_sync.db import MetadataCache
from md_calendar_sync.local_store import LocalSystemStore
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncStats
from tests.fake_store import FakeSystemStore


def make_doc(title: str = "Dentist", when: str = "2026-02-20 10:00", **extra) -> str:
    """Return a minimal delimited document; ``extra`` keys are written verbatim."""
    lines = ["---", f'reminder: "{when}"', f'title: "{title}"']
    for key, value in extra.items():
        lines.append(f"{key}: {value}")
    lines.append("---")
    return "\n".join(lines) + "\n"


def write_doc(folder: Path, name: str, content: str) -> Path:
    """Write ``content`` to ``folder/name`` (creating folders) and return the path."""
    path = folder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def bump_mtime(path: Path, seconds: int = 5) -> None:
    """Move a file's mtime forward so a same-tick rewrite still counts as a change."""
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def find_docs(folder: Path) -> list[Path]:
    """Every visible .md document below ``folder``, sorted."""
    return sorted(
        p
        for p in folder.rglob("*.md")
        if not any(part.startswith(".") for part in p.relative_to(folder).parts)
    )


@pytest.fixture
def cache_db(tmp_path):
    return tmp_path / "state" / "metadata-cache.db"


@pytest.fixture
def store_db(tmp_path):
    return tmp_path / "state" / "system-store.db"


@pytest.fixture
def metadata_cache(cache_db):
    with MetadataCache(cache_db) as cache:
        yield cache


@pytest.fixture
def calendar_root(tmp_path):
    root = tmp_path / "calendars"
    root.mkdir()
    return root


@pytest.fixture
def task_root(tmp_path):
    root = tmp_path / "tasks"
    root.mkdir()
    return root


@pytest.fixture
def contacts_root(tmp_path):
    root = tmp_path / "contacts"
    root.mkdir()
    return root


@pytest.fixture
def sync_config(cache_db, store_db, calendar_root, task_root, contacts_root):
    return SyncConfig(
        cache_db_path=cache_db,
        store_db_path=store_db,
        calendar_root=calendar_root,
        task_root=task_root,
        contacts_root=contacts_root,
        verbose=False,
        yes=True,
    )


@pytest.fixture
def local_store(store_db):
    with LocalSystemStore(store_db) as store:
        yield store


@pytest.fixture
def fake_store():
    return FakeSystemStore()


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
