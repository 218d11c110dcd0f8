"""Folder-backed package repository.

A local repository is a directory of package manifests, one TOML file
per package version named ``<id>.<version>.toml``:

    id = "jQuery.UI"
    version = "1.8.0"
    description = "jQuery user interface widgets"

    [[dependencies]]
    id = "jQuery"
    version = "[1.4,2.0)"
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pkgplan.core.errors import PackagePlanError
from pkgplan.models.package import PackageDependency, PackageIdentity, PackageMetadata
from pkgplan.models.version import Version, VersionRange
from pkgplan.repositories.base import WritableRepository
from pkgplan.repositories.query import Query
from pkgplan.utils.tomlfile import read_toml, write_toml_atomic

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".toml"


class ManifestError(PackagePlanError):
    """Base exception for package manifest errors."""


class ManifestParseError(ManifestError):
    """Raised when a package manifest cannot be parsed or validated."""


class DependencyEntry(BaseModel):
    """A dependency as written in a package manifest.

    Attributes:
        id: Id of the required package.
        version: Version range text, or None for any version.
    """

    model_config = ConfigDict(extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Required package id")]
    version: Annotated[str | None, Field(description="Acceptable version range")] = None

    @field_validator("version")
    @classmethod
    def validate_range(cls, value: str | None) -> str | None:
        """Validate that the range text parses."""
        if value is not None:
            VersionRange.parse(value)
        return value


class PackageManifest(BaseModel):
    """Schema of a package manifest file.

    Attributes:
        id: Package id.
        version: Package version text.
        description: Optional description.
        dependencies: Declared dependencies.
    """

    model_config = ConfigDict(extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Package id")]
    version: Annotated[str, Field(description="Package version")]
    description: Annotated[str | None, Field(description="Package description")] = None
    dependencies: Annotated[
        list[DependencyEntry],
        Field(default_factory=list, description="Declared dependencies"),
    ]

    @field_validator("version")
    @classmethod
    def validate_version(cls, value: str) -> str:
        """Validate that the version text parses."""
        Version.parse(value)
        return value

    def to_metadata(self) -> PackageMetadata:
        """Convert the manifest to package metadata."""
        return PackageMetadata(
            id=self.id,
            version=Version.parse(self.version),
            dependencies=tuple(
                PackageDependency(
                    d.id, VersionRange.parse(d.version) if d.version is not None else None
                )
                for d in self.dependencies
            ),
            description=self.description,
        )


def manifest_to_dict(package: PackageMetadata) -> dict[str, Any]:
    """Convert package metadata to a dictionary for TOML serialization.

    Args:
        package: The package to convert.

    Returns:
        Dictionary ready for TOML serialization.
    """
    data: dict[str, Any] = {"id": package.id, "version": str(package.version)}
    if package.description:
        data["description"] = package.description
    if package.dependencies:
        data["dependencies"] = [
            {"id": d.id, **({"version": str(d.version_range)} if d.version_range else {})}
            for d in package.dependencies
        ]
    return data


def load_package_manifest(path: Path) -> PackageMetadata:
    """Load and validate a package manifest.

    Args:
        path: Path to the manifest file.

    Returns:
        The package described by the manifest.

    Raises:
        ManifestParseError: If the file is not valid TOML or fails validation.
        ManifestError: If the file cannot be read.
    """
    try:
        data = read_toml(path)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(f"Invalid TOML syntax in {path}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read manifest {path}: {e}") from e

    try:
        return PackageManifest.model_validate(data).to_metadata()
    except (ValidationError, ValueError) as e:
        raise ManifestParseError(f"Invalid manifest {path}: {e}") from e


class LocalPackageRepository(WritableRepository):
    """Repository backed by a directory of package manifests.

    Manifests that can't be parsed are skipped with a warning so one
    broken file doesn't hide the rest of the feed. A missing directory is
    an empty repository.
    """

    # File names in the root that are not package manifests
    reserved_files: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, root: Path) -> None:
        """Initialize the repository.

        Args:
            root: Directory holding the manifests.
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Return the directory holding the manifests."""
        return self._root

    @property
    def source(self) -> str:
        return str(self._root)

    def manifest_path(self, package_id: str, version: Version) -> Path:
        """Return the manifest path for a package identity."""
        return self._root / f"{package_id}.{version}{MANIFEST_SUFFIX}"

    def _manifest_files(self) -> list[Path]:
        if not self._root.is_dir():
            return []
        return sorted(
            p
            for p in self._root.glob(f"*{MANIFEST_SUFFIX}")
            if p.is_file() and p.name not in self.reserved_files
        )

    def _load_all(self) -> Iterator[tuple[Path, PackageMetadata]]:
        for path in self._manifest_files():
            try:
                yield path, load_package_manifest(path)
            except ManifestError as e:
                logger.warning("Skipping package manifest: %s", e)

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        packages = (package for _, package in self._load_all())
        if query is None:
            return packages
        return query.apply(packages)

    def find_package(
        self, package_id: str, version: Version | None = None
    ) -> PackageMetadata | None:
        if version is not None:
            path = self.manifest_path(package_id, version)
            if path.is_file():
                try:
                    package = load_package_manifest(path)
                except ManifestError as e:
                    logger.warning("Skipping package manifest: %s", e)
                else:
                    if package.identity == PackageIdentity(package_id, version):
                        return package
        return super().find_package(package_id, version)

    def exists(self, package_id: str, version: Version | None = None) -> bool:
        if version is not None and self.manifest_path(package_id, version).is_file():
            return True
        return super().exists(package_id, version)

    def add_package(self, package: PackageMetadata) -> None:
        """Write a manifest for a package.

        Raises:
            ManifestError: If the manifest cannot be written.
        """
        if self.exists(package.id, package.version):
            logger.debug("Package %s already in %s", package.full_name, self._root)
            return

        path = self.manifest_path(package.id, package.version)
        try:
            write_toml_atomic(path, manifest_to_dict(package))
        except OSError as e:
            raise ManifestError(f"Failed to write manifest {path}: {e}") from e
        logger.info("Added %s to %s", package.full_name, self._root)

    def remove_package(self, package: PackageMetadata) -> None:
        """Delete the manifest of a package.

        Raises:
            ManifestError: If the manifest cannot be deleted.
        """
        path = self.manifest_path(package.id, package.version)
        if not path.is_file():
            # File name casing may differ from the id we were given
            identity = package.identity
            path = next((p for p, pkg in self._load_all() if pkg.identity == identity), path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ManifestError(f"Failed to delete manifest {path}: {e}") from e
        logger.info("Removed %s from %s", package.full_name, self._root)
