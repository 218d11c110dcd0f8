"""Package identity and metadata models.

This module defines the immutable descriptions of packages produced by
repositories: the (id, version) identity used as the primary key for
deduplication and graph traversal, and the metadata carrying the
declared dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pkgplan.models.version import Version, VersionRange


@dataclass(frozen=True, slots=True, eq=False)
class PackageIdentity:
    """Uniquely names an installable unit.

    Equality and hashing are case-insensitive on the id and exact on
    the version.

    Attributes:
        id: Package id (e.g. 'Newtonsoft.Json').
        version: Package version.
    """

    id: str
    version: Version

    def __post_init__(self) -> None:
        """Validate identity data after initialization."""
        if not self.id or not self.id.strip():
            msg = "Package id cannot be empty"
            raise ValueError(msg)

    @property
    def key(self) -> tuple[str, Version]:
        """Normalized (id, version) key used for equality and hashing."""
        return (self.id.casefold(), self.version)

    @property
    def full_name(self) -> str:
        """Return the display name, e.g. 'jQuery 1.4.1'."""
        return f"{self.id} {self.version}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True, slots=True)
class PackageDependency:
    """A dependency declared by a package.

    Attributes:
        id: Id of the required package.
        version_range: Acceptable versions, or None for any version.
    """

    id: str
    version_range: VersionRange | None = None

    def __post_init__(self) -> None:
        """Validate dependency data after initialization."""
        if not self.id or not self.id.strip():
            msg = "Dependency id cannot be empty"
            raise ValueError(msg)

    def satisfied_by(self, version: Version) -> bool:
        """Check if a version of the required package satisfies this dependency."""
        return self.version_range is None or self.version_range.satisfies(version)

    def matches_id(self, package_id: str) -> bool:
        """Check if this dependency refers to the given package id."""
        return self.id.casefold() == package_id.casefold()

    def __str__(self) -> str:
        if self.version_range is None:
            return self.id
        return f"{self.id} ({self.version_range.pretty()})"


@dataclass(frozen=True, slots=True, eq=False)
class PackageMetadata:
    """Immutable description of a package as yielded by a repository.

    Two metadata objects are equal when their identities are equal, so
    the same package yielded by different sources compares equal.

    Attributes:
        id: Package id.
        version: Package version.
        dependencies: Declared dependencies, in declaration order.
        description: Optional human-readable description.
    """

    id: str
    version: Version
    dependencies: tuple[PackageDependency, ...] = field(default=())
    description: str | None = field(default=None)

    def __post_init__(self) -> None:
        """Validate package data after initialization."""
        if not self.id or not self.id.strip():
            msg = "Package id cannot be empty"
            raise ValueError(msg)
        # Accept any iterable of dependencies but store an immutable tuple
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))

    @property
    def identity(self) -> PackageIdentity:
        """Return the (id, version) identity of this package."""
        return PackageIdentity(self.id, self.version)

    @property
    def full_name(self) -> str:
        """Return the display name, e.g. 'jQuery 1.4.1'."""
        return f"{self.id} {self.version}"

    def find_dependency(self, package_id: str) -> PackageDependency | None:
        """Find the dependency on a given package id, if declared.

        Args:
            package_id: Id of the required package (case-insensitive).

        Returns:
            The matching PackageDependency, or None.
        """
        for dependency in self.dependencies:
            if dependency.matches_id(package_id):
                return dependency
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageMetadata):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __str__(self) -> str:
        return self.full_name
