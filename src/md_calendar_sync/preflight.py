"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import os
import sqlite3
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from md_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: SyncConfig, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Configured folders exist and are writable directories
    for root, label in (
        (cfg.calendar_root, "Calendar folder"),
        (cfg.task_root, "Task folder"),
        (cfg.contacts_root, "Contacts folder"),
    ):
        if root is None:
            continue
        if not root.exists():
            logger.error("%s does not exist: %s", label, root)
            issues.append((label, f"Not found: {root}", f"Create it with: mkdir -p {root}"))
        elif not root.is_dir():
            logger.error("%s is not a directory: %s", label, root)
            issues.append((label, f"Not a directory: {root}", "Point the option at a folder"))
        elif not os.access(root, os.W_OK):
            logger.error("%s is not writable: %s", label, root)
            issues.append((label, f"Read-only: {root}", f"Check permissions on {root}"))

    # 2. Cache and store databases readable + writable
    for db_path, label in (
        (cfg.cache_db_path, "Metadata cache"),
        (cfg.store_db_path, "System store"),
    ):
        issue = _check_database(db_path, label)
        if issue:
            issues.append(issue)

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _check_database(db_path: Path, label: str) -> tuple[str, str, str] | None:
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create %s directory %s: %s", label, db_path.parent, e)
        return (label, f"{db_path}: {e}", f"Check permissions on {db_path.parent}")

    if not db_path.exists():
        return None
    try:
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("SELECT 1")
            # BEGIN IMMEDIATE takes the write lock and needs a journal file beside the DB
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("%s not readable/writable (%s): %s", label, db_path, e)
        return (
            label,
            f"{db_path}: {e}",
            f"Check permissions on {db_path.parent} "
            f"(journal files must be creatable alongside the DB)",
        )
    return None


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
