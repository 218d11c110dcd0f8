"""Abstract base classes for package repositories.

This module defines the Repository interface that every package source
implements, plus the lookup operations derived from it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from pkgplan.models.package import PackageDependency, PackageMetadata
from pkgplan.models.version import Version, VersionRange
from pkgplan.repositories.query import Query, SortKey
from pkgplan.resolver.selection import select_dependency


class Repository(ABC):
    """Abstract base class for all package sources.

    A repository owns no package metadata itself; it passes queries
    through to whatever physical storage backs it and yields the
    results lazily, honoring the query's filters, ordering and paging.

    Example:
        >>> repo = LocalPackageRepository(Path("~/feeds/local"))
        >>> for pkg in repo.get_packages(Query().where_id("jQuery")):
        ...     print(pkg.full_name)
    """

    @property
    @abstractmethod
    def source(self) -> str:
        """Return a display name for this repository (path or URL)."""

    @abstractmethod
    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        """Yield the packages matching a query.

        Args:
            query: Query to apply. None yields every package, unordered.

        Yields:
            PackageMetadata for each match, in the query's order.
        """

    def count(self, query: Query | None = None) -> int:
        """Count the packages matching a query."""
        return sum(1 for _ in self.get_packages(query))

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        """Find every version of a package, lowest version first.

        Args:
            package_id: Package id (case-insensitive).

        Returns:
            List of matching packages.
        """
        query = Query().where_id(package_id).order_by(SortKey.VERSION)
        return list(self.get_packages(query))

    def find_packages(
        self, package_id: str, version_range: VersionRange | None = None
    ) -> list[PackageMetadata]:
        """Find the versions of a package within a range, highest first.

        Args:
            package_id: Package id (case-insensitive).
            version_range: Acceptable versions, or None for all.

        Returns:
            List of matching packages, highest version first.
        """
        packages = [
            p
            for p in self.find_packages_by_id(package_id)
            if version_range is None or version_range.satisfies(p.version)
        ]
        packages.sort(key=lambda p: p.version, reverse=True)
        return packages

    def find_package(
        self, package_id: str, version: Version | None = None
    ) -> PackageMetadata | None:
        """Find a package by id and exact version.

        Args:
            package_id: Package id (case-insensitive).
            version: Exact version. If None, the latest version is returned.

        Returns:
            The package, or None if it isn't in this repository.
        """
        version_range = VersionRange.exact(version) if version is not None else None
        packages = self.find_packages(package_id, version_range)
        return packages[0] if packages else None

    def exists(self, package_id: str, version: Version | None = None) -> bool:
        """Check if a package (optionally an exact version) is in this repository."""
        return self.find_package(package_id, version) is not None

    def resolve_dependency(
        self,
        dependency: PackageDependency,
        constraint: VersionRange | None = None,
    ) -> PackageMetadata | None:
        """Find the best package satisfying a dependency.

        Args:
            dependency: The dependency to resolve.
            constraint: Extra range imposed by the consumer, if any.

        Returns:
            The selected package, or None if nothing satisfies the dependency.
        """
        return select_dependency(self.find_packages_by_id(dependency.id), dependency, constraint)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source!r})"


class WritableRepository(Repository):
    """A repository packages can be added to and removed from."""

    @abstractmethod
    def add_package(self, package: PackageMetadata) -> None:
        """Add a package to this repository.

        Adding a package that already exists is a no-op.
        """

    @abstractmethod
    def remove_package(self, package: PackageMetadata) -> None:
        """Remove a package from this repository.

        Removing a package that doesn't exist is a no-op.
        """
