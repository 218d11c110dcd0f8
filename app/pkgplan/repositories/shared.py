"""Package store shared by several consumers.

The store keeps a registry of the consumer records that use it in
``repositories.toml`` at its root:

    [[repository]]
    path = "../app/packages.toml"

Paths are stored relative to the store when possible. Whether a package
is still in use is answered by reading those records, not by keeping a
reference count, so hand edits to a record are honored.
"""

from __future__ import annotations

import logging
import os
import threading
import tomllib
from pathlib import Path
from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pkgplan.models.version import Version
from pkgplan.repositories.local import LocalPackageRepository
from pkgplan.repositories.reference import PackageReferenceFile, RecordError
from pkgplan.utils.tomlfile import read_toml, write_toml_atomic

logger = logging.getLogger(__name__)

REGISTRY_FILE_NAME = "repositories.toml"

_store_locks: dict[str, threading.RLock] = {}
_store_locks_guard = threading.Lock()


def _lock_for(root: Path) -> threading.RLock:
    """Return the lock serializing registry writes of a store."""
    key = os.path.normcase(os.path.abspath(root))
    with _store_locks_guard:
        lock = _store_locks.get(key)
        if lock is None:
            lock = _store_locks[key] = threading.RLock()
        return lock


class RegistryEntry(BaseModel):
    """Schema of one ``[[repository]]`` entry of the registry."""

    model_config = ConfigDict(extra="forbid")

    path: Annotated[str, Field(min_length=1, description="Path of a consumer record")]


class SharedPackageRepository(LocalPackageRepository):
    """A local package store with a registry of the consumers using it."""

    reserved_files: ClassVar[frozenset[str]] = frozenset({REGISTRY_FILE_NAME})

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self._lock = _lock_for(self.root)

    @property
    def registry_path(self) -> Path:
        return self.root / REGISTRY_FILE_NAME

    def _to_entry(self, path: Path) -> str:
        absolute = os.path.abspath(path)
        try:
            return Path(os.path.relpath(absolute, os.path.abspath(self.root))).as_posix()
        except ValueError:
            # Different drive, keep it absolute
            return Path(absolute).as_posix()

    def _to_path(self, entry: str) -> Path:
        return Path(os.path.normpath(self.root / entry))

    @staticmethod
    def _entry_key(entry: str) -> str:
        return entry.casefold()

    def _read_entries(self) -> tuple[list[str], bool]:
        """Read the raw registry entries.

        Returns:
            The valid entries and whether invalid ones were dropped.
        """
        if not self.registry_path.is_file():
            return [], False
        try:
            data = read_toml(self.registry_path)
        except (tomllib.TOMLDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable registry %s: %s", self.registry_path, e)
            return [], False

        raw_entries = data.get("repository", [])
        if not isinstance(raw_entries, list):
            return [], True

        entries: list[str] = []
        dirty = False
        for raw in raw_entries:
            try:
                entries.append(RegistryEntry.model_validate(raw).path)
            except ValidationError:
                logger.warning("Dropping invalid registry entry %r", raw)
                dirty = True
        return entries, dirty

    def _write_entries(self, entries: list[str]) -> None:
        entries = sorted(entries, key=self._entry_key)
        try:
            if entries:
                write_toml_atomic(
                    self.registry_path, {"repository": [{"path": e} for e in entries]}
                )
            else:
                self.registry_path.unlink(missing_ok=True)
        except OSError as e:
            raise RecordError(f"Failed to update registry {self.registry_path}: {e}") from e

    def _prune(self, entries: list[str]) -> tuple[list[str], bool]:
        """Drop entries that repeat an earlier one or point at a missing record."""
        kept: list[str] = []
        seen: set[str] = set()
        pruned = False
        for entry in entries:
            key = self._entry_key(self._to_entry(self._to_path(entry)))
            if key in seen:
                pruned = True
                continue
            if not self._to_path(entry).is_file():
                logger.warning("Pruning registry entry for missing record %s", entry)
                pruned = True
                continue
            seen.add(key)
            kept.append(entry)
        return kept, pruned

    def get_repository_paths(self) -> list[Path]:
        """Return the record paths of the registered consumers.

        Reads see the last saved registry without waiting for writers.
        Entries that are blank, point at a missing record or repeat an
        earlier entry are pruned, and the cleaned registry is saved.
        """
        entries, dirty = self._read_entries()
        kept, pruned = self._prune(entries)
        if dirty or pruned:
            with self._lock:
                # Re-read so a registration made meanwhile is not lost
                entries, _ = self._read_entries()
                self._write_entries(self._prune(entries)[0])
        return [self._to_path(e) for e in kept]

    def register_repository(self, path: Path) -> None:
        """Register a consumer record. Registering twice is a no-op."""
        entry = self._to_entry(path)
        with self._lock:
            entries, _ = self._read_entries()
            if any(self._entry_key(e) == self._entry_key(entry) for e in entries):
                return
            entries.append(entry)
            self._write_entries(entries)
        logger.info("Registered %s with %s", path, self.root)

    def unregister_repository(self, path: Path) -> None:
        """Unregister a consumer record. Unregistering twice is a no-op."""
        key = self._entry_key(self._to_entry(path))
        with self._lock:
            entries, _ = self._read_entries()
            remaining = [e for e in entries if self._entry_key(e) != key]
            if len(remaining) == len(entries):
                return
            self._write_entries(remaining)
        logger.info("Unregistered %s from %s", path, self.root)

    def is_referenced(
        self, package_id: str, version: Version, excluding: Path | None = None
    ) -> bool:
        """Check if any registered consumer references a package identity.

        Args:
            package_id: Package id (case-insensitive).
            version: Exact version.
            excluding: Record path of a consumer to leave out, typically
                the one asking.

        Returns:
            True if some other consumer record references the package.
        """
        excluded = self._entry_key(self._to_entry(excluding)) if excluding is not None else None
        for record_path in self.get_repository_paths():
            if excluded is not None and self._entry_key(self._to_entry(record_path)) == excluded:
                continue
            if PackageReferenceFile(record_path).entry_exists(package_id, version):
                return True
        return False
