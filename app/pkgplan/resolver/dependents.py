"""Reverse dependency lookup over an installed package set."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Protocol

from pkgplan.models.package import PackageMetadata

if TYPE_CHECKING:
    from pkgplan.repositories.base import Repository


class DependentsResolver(Protocol):
    """Anything that can list the installed packages depending on a package."""

    def get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]: ...


class DependentsIndex:
    """Reverse dependency index of the packages in a repository.

    The index is built lazily on first use and reflects the repository
    at that moment. Call :meth:`refresh` after the repository changes.
    """

    def __init__(self, repository: Repository) -> None:
        self._repository = repository
        self._index: dict[str, list[PackageMetadata]] | None = None

    def refresh(self) -> None:
        """Drop the index so the next lookup rebuilds it."""
        self._index = None

    def _build(self) -> dict[str, list[PackageMetadata]]:
        index: dict[str, list[PackageMetadata]] = defaultdict(list)
        for package in self._repository.get_packages():
            for dependency in package.dependencies:
                index[dependency.id.casefold()].append(package)
        return index

    def get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        """Return the installed packages whose dependencies accept this package.

        Args:
            package: The package to look up.

        Returns:
            Dependents in repository order, excluding the package itself.
        """
        if self._index is None:
            self._index = self._build()
        dependents = []
        for candidate in self._index.get(package.id.casefold(), ()):
            if candidate == package:
                continue
            dependency = candidate.find_dependency(package.id)
            if dependency is not None and dependency.satisfied_by(package.version):
                dependents.append(candidate)
        return dependents
