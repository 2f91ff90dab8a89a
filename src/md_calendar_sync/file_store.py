"""
File Store access: a handle-based adapter plus the pass-scoped DocumentTree.

``FileStore`` implementations raise ``OSError`` on failure.  ``DocumentTree``
wraps one for the duration of a single pass: it caches directory listings,
turns failures into logged no-ops, and provides the atomic-replace write.
"""

import logging
import os
import shutil
import time
from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp_"


@dataclass
class DocumentInfo:
    """One entry of a directory listing."""

    handle: Any
    name: str
    is_directory: bool
    modified_at: int


class FileStore(ABC):
    """Adapter contract for the document tree the user points the engine at."""

    @abstractmethod
    def list_children(self, directory) -> list[DocumentInfo]: ...

    @abstractmethod
    def read(self, handle) -> bytes: ...

    @abstractmethod
    def create_directory(self, parent, name: str): ...

    @abstractmethod
    def create_file(self, parent, name: str, data: bytes = b""): ...

    @abstractmethod
    def rename(self, handle, new_name: str): ...

    @abstractmethod
    def move(self, handle, target_parent): ...

    @abstractmethod
    def delete(self, handle) -> None: ...

    @abstractmethod
    def modified_at(self, handle) -> int: ...

    @abstractmethod
    def exists(self, handle) -> bool: ...

    @abstractmethod
    def parent_of(self, handle): ...

    @abstractmethod
    def name_of(self, handle) -> str: ...


class LocalFileStore(FileStore):
    """FileStore over a local directory tree; handles are ``Path`` objects."""

    def list_children(self, directory: Path) -> list[DocumentInfo]:
        children = []
        with os.scandir(directory) as entries:
            for entry in entries:
                stat = entry.stat()
                children.append(
                    DocumentInfo(
                        handle=Path(entry.path),
                        name=entry.name,
                        is_directory=entry.is_dir(),
                        modified_at=stat.st_mtime_ns,
                    )
                )
        return children

    def read(self, handle: Path) -> bytes:
        return handle.read_bytes()

    def create_directory(self, parent: Path, name: str) -> Path:
        path = parent / name
        path.mkdir(exist_ok=True)
        return path

    def create_file(self, parent: Path, name: str, data: bytes = b"") -> Path:
        path = parent / name
        with open(path, "xb") as fh:
            fh.write(data)
        return path

    def rename(self, handle: Path, new_name: str) -> Path:
        target = handle.with_name(new_name)
        os.replace(handle, target)
        return target

    def move(self, handle: Path, target_parent: Path) -> Path:
        target = target_parent / handle.name
        if target.exists():
            raise FileExistsError(f"{target} already exists")
        return Path(shutil.move(str(handle), str(target)))

    def delete(self, handle: Path) -> None:
        if handle.is_dir():
            handle.rmdir()  # only empty directories
        else:
            handle.unlink()

    def modified_at(self, handle: Path) -> int:
        return handle.stat().st_mtime_ns

    def exists(self, handle: Path) -> bool:
        return handle.exists()

    def parent_of(self, handle: Path) -> Path:
        return handle.parent

    def name_of(self, handle: Path) -> str:
        return handle.name


class DocumentTree:
    """
    Pass-scoped view of a FileStore.

    Listings are cached until something under that directory changes.  Every
    mutating helper is best-effort: an ``OSError`` is logged and reported as
    ``None``/``False`` so the caller can skip just that record.
    """

    def __init__(self, store: FileStore):
        self.store = store
        self._listings: dict[Any, list[DocumentInfo]] = {}
        self.listing_errors = 0

    # ---- Listing cache ---- #

    def list_children(self, directory) -> list[DocumentInfo]:
        if directory not in self._listings:
            try:
                children = self.store.list_children(directory)
            except OSError as e:
                _logger.error(f"Cannot list {directory}: {e}")
                self.listing_errors += 1
                children = []
            self._listings[directory] = sorted(children, key=lambda info: info.name)
        return self._listings[directory]

    def invalidate(self, *directories):
        for directory in directories:
            self._listings.pop(directory, None)

    def child(self, directory, name: str) -> DocumentInfo | None:
        for info in self.list_children(directory):
            if info.name == name:
                return info
        return None

    def find(self, root, relative_path: str):
        """Resolve a ``a/b/c.md`` path under ``root`` to a handle, or None."""
        current = root
        for part in relative_path.split("/"):
            info = self.child(current, part)
            if info is None:
                return None
            current = info.handle
        return current

    # ---- Reads ---- #

    def read_text(self, handle) -> str | None:
        try:
            return self.store.read(handle).decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            _logger.error(f"Cannot read {handle}: {e}")
            return None

    def modified_at(self, handle) -> int | None:
        try:
            return self.store.modified_at(handle)
        except OSError as e:
            _logger.error(f"Cannot stat {handle}: {e}")
            return None

    def exists(self, handle) -> bool:
        try:
            return handle is not None and self.store.exists(handle)
        except OSError:
            return False

    # ---- Mutations ---- #

    def get_or_create_folder(self, parent, name: str):
        """Return the child folder ``name`` (case-insensitive match), creating it if absent."""
        for info in self.list_children(parent):
            if info.is_directory and info.name.lower() == name.lower():
                return info.handle
        try:
            handle = self.store.create_directory(parent, name)
        except OSError as e:
            _logger.error(f"Cannot create folder {name!r} in {parent}: {e}")
            return None
        self.invalidate(parent)
        return handle

    def folder_path(self, root, parts: list[str]):
        """
        Walk (creating as needed) ``parts`` below ``root``.

        Returns ``(handle, actual folder names)``; existing folders may differ
        in case from ``parts``.  ``(None, [])`` when a folder cannot be created.
        """
        current = root
        names = []
        for part in parts:
            current = self.get_or_create_folder(current, part)
            if current is None:
                return None, []
            names.append(self.store.name_of(current))
        return current, names

    def unique_name(self, folder, base: str, extension: str = ".md", keep=None) -> str:
        """
        Return ``base.md``, or ``base (n).md`` when that name is taken.

        A name held by ``keep`` (the file being rewritten) counts as free.
        """
        taken = {info.name: info.handle for info in self.list_children(folder)}
        candidate = f"{base}{extension}"
        counter = 1
        while candidate in taken and taken[candidate] != keep:
            candidate = f"{base} ({counter}){extension}"
            counter += 1
        return candidate

    def write(self, parent, name: str, data: bytes, original=None):
        """
        Atomically replace ``parent/name`` with ``data``.

        The content goes to a temporary sibling first; the previous target
        (``original`` if given) is then deleted and the temporary renamed into
        place.  If the final rename fails the temporary handle is returned so
        the content survives.  Returns None when nothing could be written.
        """
        temp_name = f"{TEMP_PREFIX}{time.time_ns()}_{name}"
        try:
            temp = self.store.create_file(parent, temp_name, data)
        except OSError as e:
            _logger.error(f"Cannot write {name!r} in {parent}: {e}")
            return None
        self.invalidate(parent)

        if original is not None:
            try:
                original_parent = self.store.parent_of(original)
                self.store.delete(original)
                self.invalidate(original_parent)
            except OSError as e:
                _logger.debug(f"Could not delete previous version {original}: {e}")
        else:
            existing = self.child(parent, name)
            if existing is not None:
                try:
                    self.store.delete(existing.handle)
                except OSError as e:
                    _logger.debug(f"Could not delete previous version {existing.handle}: {e}")

        try:
            handle = self.store.rename(temp, name)
        except OSError as e:
            _logger.error(f"Rename of {temp_name!r} to {name!r} failed, keeping temp file: {e}")
            handle = temp
        self.invalidate(parent)
        return handle

    def create_file(self, parent, name: str, data: bytes):
        try:
            handle = self.store.create_file(parent, name, data)
        except OSError as e:
            _logger.error(f"Cannot create {name!r} in {parent}: {e}")
            return None
        self.invalidate(parent)
        return handle

    def rename(self, handle, new_name: str):
        try:
            parent = self.store.parent_of(handle)
            renamed = self.store.rename(handle, new_name)
        except OSError as e:
            _logger.error(f"Cannot rename {handle} to {new_name!r}: {e}")
            return None
        self.invalidate(parent)
        return renamed

    def move(self, handle, target_parent):
        try:
            source_parent = self.store.parent_of(handle)
            moved = self.store.move(handle, target_parent)
        except OSError as e:
            _logger.warning(f"Cannot move {handle} to {target_parent}: {e}")
            return None
        self.invalidate(source_parent, target_parent)
        return moved

    def copy_into(self, handle, target_parent, name: str):
        """Copy a file's bytes into ``target_parent`` under a collision-free name."""
        try:
            data = self.store.read(handle)
        except OSError as e:
            _logger.error(f"Cannot read {handle} for copy: {e}")
            return None
        stem, dot, ext = name.rpartition(".")
        base, extension = (stem, dot + ext) if dot else (name, "")
        unique = self.unique_name(target_parent, base, extension)
        return self.create_file(target_parent, unique, data)

    def delete(self, handle) -> bool:
        try:
            parent = self.store.parent_of(handle)
            self.store.delete(handle)
        except OSError as e:
            _logger.error(f"Cannot delete {handle}: {e}")
            return False
        self.invalidate(parent, handle)
        return True
