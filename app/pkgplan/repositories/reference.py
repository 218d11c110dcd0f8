"""Consumer package records.

Every consumer of a shared package store (a project, a workspace) keeps a
small record of the packages it references, stored as ``packages.toml``:

    [[package]]
    id = "jQuery"
    version = "1.4.1"
    allowed_versions = "[1.4,2.0)"

Broken entries never make a record unreadable. They are dropped when the
record is loaded and the cleaned record is written back.
"""

from __future__ import annotations

import logging
import os
import threading
import tomllib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pkgplan.core.errors import MalformedRecordError, PackagePlanError
from pkgplan.models.package import PackageIdentity, PackageMetadata
from pkgplan.models.version import Version, VersionRange, parse_optional_version
from pkgplan.repositories.base import WritableRepository
from pkgplan.repositories.query import Query
from pkgplan.utils.tomlfile import read_toml, write_toml_atomic

if TYPE_CHECKING:
    from pkgplan.repositories.shared import SharedPackageRepository

logger = logging.getLogger(__name__)

RECORD_FILE_NAME = "packages.toml"


class RecordError(PackagePlanError):
    """Raised when a consumer record cannot be written or deleted."""


@dataclass(frozen=True, slots=True)
class PackageReference:
    """A package referenced by a consumer.

    Attributes:
        id: Package id.
        version: Referenced version.
        allowed_versions: Versions the consumer accepts on update, if restricted.
    """

    id: str
    version: Version
    allowed_versions: VersionRange | None = None

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.id, self.version)


class ReferenceEntry(BaseModel):
    """Schema of one ``[[package]]`` entry of a consumer record."""

    model_config = ConfigDict(extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Package id")]
    version: Annotated[str, Field(description="Referenced version")]
    allowed_versions: Annotated[
        str | None, Field(description="Versions accepted on update")
    ] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        """Reject ids made only of whitespace."""
        if not value.strip():
            msg = "Package id cannot be blank"
            raise ValueError(msg)
        return value

    @field_validator("version")
    @classmethod
    def validate_version(cls, value: str) -> str:
        """Reject missing or malformed versions."""
        if parse_optional_version(value) is None:
            msg = f"Invalid version: {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("allowed_versions")
    @classmethod
    def validate_allowed_versions(cls, value: str | None) -> str | None:
        """Validate that the constraint parses."""
        if value is not None:
            VersionRange.parse(value)
        return value

    def to_reference(self) -> PackageReference:
        return PackageReference(
            id=self.id,
            version=Version.parse(self.version),
            allowed_versions=(
                VersionRange.parse(self.allowed_versions) if self.allowed_versions else None
            ),
        )


def _reference_to_dict(reference: PackageReference) -> dict[str, Any]:
    data: dict[str, Any] = {"id": reference.id, "version": str(reference.version)}
    if reference.allowed_versions is not None:
        data["allowed_versions"] = str(reference.allowed_versions)
    return data


@dataclass(frozen=True, slots=True)
class _CachedRecord:
    mtime_ns: int
    size: int
    references: tuple[PackageReference, ...]


class ReferenceRecordCache:
    """Parsed consumer records keyed by path.

    An entry is reused as long as the file's modification time and size
    are unchanged, so repeated reads of an untouched record skip parsing.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _CachedRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Path) -> str:
        return os.path.normcase(os.path.abspath(path))

    @staticmethod
    def stat(path: Path) -> os.stat_result | None:
        """Return the file's status, or None if it can't be read."""
        try:
            return path.stat()
        except OSError:
            return None

    def get(
        self, path: Path, stat: os.stat_result | None = None
    ) -> tuple[PackageReference, ...] | None:
        """Return the cached references of a record, or None if stale or absent.

        Args:
            path: Record path.
            stat: Status of the record, taken now when None.
        """
        if stat is None:
            stat = self.stat(path)
            if stat is None:
                return None
        with self._lock:
            entry = self._entries.get(self._key(path))
        if entry is None or entry.mtime_ns != stat.st_mtime_ns or entry.size != stat.st_size:
            return None
        return entry.references

    def put(
        self,
        path: Path,
        references: tuple[PackageReference, ...],
        stat: os.stat_result | None = None,
    ) -> None:
        """Cache the references of a record.

        Args:
            path: Record path.
            references: Parsed references.
            stat: Status of the record taken before it was read. The
                current status is used when None.
        """
        if stat is None:
            stat = self.stat(path)
        if stat is None:
            self.invalidate(path)
            return
        with self._lock:
            self._entries[self._key(path)] = _CachedRecord(
                stat.st_mtime_ns, stat.st_size, references
            )

    def invalidate(self, path: Path) -> None:
        with self._lock:
            self._entries.pop(self._key(path), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Shared by every record file in the process
record_cache = ReferenceRecordCache()


class PackageReferenceFile:
    """Reads and writes a consumer record.

    Example:
        >>> record = PackageReferenceFile(project_dir / "packages.toml")
        >>> record.add_entry("jQuery", Version.parse("1.4.1"))
        >>> record.entry_exists("jquery", Version.parse("1.4.1"))
        True
    """

    def __init__(self, path: Path, cache: ReferenceRecordCache | None = None) -> None:
        self.path = Path(path)
        self._cache = cache if cache is not None else record_cache

    def exists(self) -> bool:
        return self.path.is_file()

    def get_references(self) -> list[PackageReference]:
        """Load the record's references.

        Malformed and duplicate entries are dropped with a warning and the
        cleaned record is saved. A missing record has no references.

        Returns:
            References in record order.
        """
        # Taken before reading, so a rewrite during the load leaves the entry stale
        stat = self._cache.stat(self.path)
        if stat is None:
            self._cache.invalidate(self.path)
            return self._load()

        cached = self._cache.get(self.path, stat)
        if cached is not None:
            return list(cached)

        references = self._load()
        self._cache.put(self.path, tuple(references), stat)
        return references

    def _load(self) -> list[PackageReference]:
        if not self.path.is_file():
            return []

        try:
            data = read_toml(self.path)
        except tomllib.TOMLDecodeError as e:
            logger.warning("Ignoring unreadable package record %s: %s", self.path, e)
            return []
        except OSError as e:
            logger.warning("Failed to read package record %s: %s", self.path, e)
            return []

        raw_entries = data.get("package", [])
        if not isinstance(raw_entries, list):
            raw_entries = []

        references: list[PackageReference] = []
        seen: set[PackageIdentity] = set()
        dirty = False
        for raw in raw_entries:
            try:
                reference = self._parse_entry(raw)
            except MalformedRecordError as e:
                logger.warning("Dropping entry: %s", e)
                dirty = True
                continue
            if reference.identity in seen:
                dirty = True
                continue
            seen.add(reference.identity)
            references.append(reference)

        if dirty:
            self._save(references)
        return references

    def _parse_entry(self, raw: Any) -> PackageReference:
        if not isinstance(raw, dict):
            raise MalformedRecordError(self.path, f"expected a table, got {raw!r}")
        try:
            return ReferenceEntry.model_validate(raw).to_reference()
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            raise MalformedRecordError(self.path, f"{raw!r}: {reason}") from e

    def _save(self, references: list[PackageReference]) -> None:
        try:
            if references:
                write_toml_atomic(
                    self.path, {"package": [_reference_to_dict(r) for r in references]}
                )
            else:
                self.path.unlink(missing_ok=True)
        except OSError as e:
            raise RecordError(f"Failed to update package record {self.path}: {e}") from e
        finally:
            self._cache.invalidate(self.path)

    def entry_exists(self, package_id: str, version: Version) -> bool:
        """Check if the record references an exact package identity."""
        identity = PackageIdentity(package_id, version)
        return any(r.identity == identity for r in self.get_references())

    def find_latest_entry(self, package_id: str) -> PackageReference | None:
        """Return the highest referenced version of a package id."""
        key = package_id.casefold()
        matches = [r for r in self.get_references() if r.id.casefold() == key]
        return max(matches, key=lambda r: r.version, default=None)

    def get_constraint(self, package_id: str) -> VersionRange | None:
        """Return the allowed versions recorded for a package id, if any."""
        entry = self.find_latest_entry(package_id)
        return entry.allowed_versions if entry is not None else None

    def add_entry(
        self,
        package_id: str,
        version: Version,
        allowed_versions: VersionRange | None = None,
    ) -> None:
        """Reference a package. Adding an existing reference is a no-op."""
        references = self.get_references()
        identity = PackageIdentity(package_id, version)
        if any(r.identity == identity for r in references):
            return
        references.append(PackageReference(package_id, version, allowed_versions))
        self._save(references)

    def delete_entry(self, package_id: str, version: Version) -> bool:
        """Remove a reference.

        Returns:
            True if the record became empty and was deleted.
        """
        identity = PackageIdentity(package_id, version)
        references = self.get_references()
        remaining = [r for r in references if r.identity != identity]
        if len(remaining) == len(references):
            return False
        self._save(remaining)
        return not remaining


class PackageReferenceRepository(WritableRepository):
    """A consumer's view of the shared store.

    Yields the referenced packages that exist in the store. Adding a
    package records a reference and registers the consumer with the store;
    removing the last reference deletes the record and unregisters it.
    """

    def __init__(self, record_path: Path, shared_repository: SharedPackageRepository) -> None:
        self.record = PackageReferenceFile(record_path)
        self.shared_repository = shared_repository
        # Allowed versions of removed references, kept for an in-place upgrade
        self._released: dict[str, VersionRange] = {}

    @property
    def record_path(self) -> Path:
        return self.record.path

    @property
    def source(self) -> str:
        return str(self.record.path)

    def references(self) -> list[PackageReference]:
        return self.record.get_references()

    def _referenced_packages(self) -> Iterator[PackageMetadata]:
        for reference in self.record.get_references():
            package = self.shared_repository.find_package(reference.id, reference.version)
            if package is None:
                logger.warning(
                    "Package %s referenced by %s is missing from the store",
                    reference.identity.full_name,
                    self.record.path,
                )
                continue
            yield package

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        packages = self._referenced_packages()
        if query is None:
            return packages
        return query.apply(packages)

    def exists(self, package_id: str, version: Version | None = None) -> bool:
        if version is None:
            return self.record.find_latest_entry(package_id) is not None
        return self.record.entry_exists(package_id, version)

    def add_package(self, package: PackageMetadata) -> None:
        allowed = self.record.get_constraint(package.id)
        if allowed is None:
            allowed = self._released.pop(package.id.casefold(), None)
        if allowed is not None and not allowed.satisfies(package.version):
            allowed = None
        self.record.add_entry(package.id, package.version, allowed)
        self.shared_repository.register_repository(self.record.path)

    def remove_package(self, package: PackageMetadata) -> None:
        allowed = self.record.get_constraint(package.id)
        if allowed is not None:
            self._released[package.id.casefold()] = allowed
        if self.record.delete_entry(package.id, package.version):
            self.shared_repository.unregister_repository(self.record.path)

    def get_constraint(self, package_id: str) -> VersionRange | None:
        return self.record.get_constraint(package_id)
