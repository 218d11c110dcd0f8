"""Exception hierarchy for pkgplan.

Every failure raised by the query engine and the dependency walker
derives from PackagePlanError and carries the implicated package
identity, so callers can render a diagnostic without parsing messages.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgplan.models.package import PackageDependency, PackageIdentity
    from pkgplan.models.version import Version


def _format_chain(chain: Iterable[PackageIdentity]) -> str:
    return " => ".join(identity.full_name for identity in chain)


class PackagePlanError(Exception):
    """Base exception for pkgplan errors."""


class SourceUnavailableError(PackagePlanError):
    """Raised when a repository fails to answer a query.

    Attributes:
        source: Display name of the failing repository.
        cause: The underlying exception.
    """

    def __init__(self, source: str, cause: BaseException) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"Package source '{source}' is unavailable: {cause}")


class MalformedRecordError(PackagePlanError):
    """Raised when a persisted record entry cannot be parsed.

    Loaders catch this per entry, drop the entry and keep going.

    Attributes:
        path: Path of the record file.
        reason: Why the entry was rejected.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed entry in {path}: {reason}")


class ResolutionError(PackagePlanError):
    """Base exception for failures while walking a dependency graph.

    Attributes:
        package: Identity of the package the failure is about.
        chain: Identities from the walk root down to the failure point.
    """

    def __init__(
        self,
        message: str,
        package: PackageIdentity,
        chain: Sequence[PackageIdentity] = (),
    ) -> None:
        self.package = package
        self.chain: tuple[PackageIdentity, ...] = tuple(chain)
        super().__init__(message)


class CycleDetectedError(ResolutionError):
    """Raised when the dependency graph contains a cycle.

    The chain holds the full cycle, ending with the package that closes it
    (e.g. A => B => A).
    """

    def __init__(self, chain: Sequence[PackageIdentity]) -> None:
        super().__init__(
            f"Circular dependency detected '{_format_chain(chain)}'",
            package=chain[-1],
            chain=chain,
        )

    @property
    def path(self) -> tuple[PackageIdentity, ...]:
        """Return the identities forming the cycle."""
        return self.chain


class NoCandidateError(ResolutionError):
    """Raised when no source offers a version satisfying a dependency.

    Attributes:
        dependency: The dependency that could not be resolved.
    """

    def __init__(
        self,
        dependency: PackageDependency,
        package: PackageIdentity,
        chain: Sequence[PackageIdentity] = (),
    ) -> None:
        self.dependency = dependency
        super().__init__(
            f"Unable to resolve dependency '{dependency}' required by {package.full_name}",
            package=package,
            chain=chain,
        )


class PackageConflictError(ResolutionError):
    """Raised when a package version conflicts with installed dependents.

    Attributes:
        conflicting: The installed (or already selected) identity it conflicts with.
        dependents: Identities that would break.
    """

    def __init__(
        self,
        package: PackageIdentity,
        conflicting: PackageIdentity,
        dependents: Sequence[PackageIdentity] = (),
        chain: Sequence[PackageIdentity] = (),
    ) -> None:
        self.conflicting = conflicting
        self.dependents: tuple[PackageIdentity, ...] = tuple(dependents)
        if self.dependents:
            names = ", ".join(d.full_name for d in self.dependents)
            message = (
                f"Updating '{conflicting.full_name}' to '{package.full_name}' failed. "
                f"Unable to find versions of '{names}' that are compatible with "
                f"'{package.full_name}'"
            )
        else:
            message = (
                f"'{package.full_name}' conflicts with '{conflicting.full_name}' "
                "selected earlier in the same walk"
            )
        super().__init__(message, package=package, chain=chain)


class NewerVersionReferencedError(ResolutionError):
    """Raised when installing would downgrade an already installed package."""

    def __init__(self, package: PackageIdentity, installed: PackageIdentity) -> None:
        self.installed = installed
        super().__init__(
            f"Already referencing a newer version of '{package.id}' ({installed.version})",
            package=package,
        )


class UnsafeUninstallError(ResolutionError):
    """Raised when a package is still in use and cannot be removed.

    Attributes:
        dependents: Identities that still need the package, if known.
    """

    def __init__(
        self,
        package: PackageIdentity,
        dependents: Sequence[PackageIdentity] = (),
        message: str | None = None,
    ) -> None:
        self.dependents: tuple[PackageIdentity, ...] = tuple(dependents)
        if message is None:
            message = (
                f"Unable to uninstall '{package.full_name}' because it is still "
                "referenced by another consumer of the shared store"
            )
        super().__init__(message, package=package)


class PackageHasDependentsError(UnsafeUninstallError):
    """Raised when installed packages still depend on the package to remove."""

    def __init__(self, package: PackageIdentity, dependents: Sequence[PackageIdentity]) -> None:
        if len(dependents) == 1:
            message = (
                f"Unable to uninstall '{package.full_name}' because "
                f"'{dependents[0].full_name}' depends on it"
            )
        else:
            names = ", ".join(d.full_name for d in dependents)
            message = (
                f"Unable to uninstall '{package.full_name}' because '{names}' depend on it"
            )
        super().__init__(package, dependents=dependents, message=message)


class UnknownPackageError(PackagePlanError):
    """Raised when a requested package can't be found.

    Attributes:
        package_id: The requested id.
        version: The requested version, if any.
        where: Display name of the repository that was searched.
    """

    def __init__(self, package_id: str, version: Version | None = None, where: str = "") -> None:
        self.package_id = package_id
        self.version = version
        self.where = where
        name = f"{package_id} {version}" if version is not None else package_id
        message = f"Unable to find package '{name}'"
        if where:
            message += f" in {where}"
        super().__init__(message)
