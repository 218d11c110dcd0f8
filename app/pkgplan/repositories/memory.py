"""In-memory package repository."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from pkgplan.models.package import PackageMetadata
from pkgplan.repositories.base import WritableRepository
from pkgplan.repositories.query import Query


class InMemoryRepository(WritableRepository):
    """Repository backed by a list of packages.

    Useful as a scratch destination for a plan and for tests. Iteration
    works on a snapshot, so adding packages while a query is being
    consumed doesn't disturb it.
    """

    def __init__(self, packages: Iterable[PackageMetadata] = (), name: str = "(memory)") -> None:
        """Initialize the repository.

        Args:
            packages: Initial packages; duplicates by identity are dropped.
            name: Display name returned by :attr:`source`.
        """
        self._name = name
        self._lock = threading.Lock()
        self._packages: dict[PackageMetadata, PackageMetadata] = {}
        for package in packages:
            self._packages.setdefault(package, package)

    @property
    def source(self) -> str:
        return self._name

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        with self._lock:
            snapshot = list(self._packages.values())
        if query is None:
            return iter(snapshot)
        return query.apply(snapshot)

    def add_package(self, package: PackageMetadata) -> None:
        with self._lock:
            self._packages.setdefault(package, package)

    def remove_package(self, package: PackageMetadata) -> None:
        with self._lock:
            self._packages.pop(package, None)

    def __len__(self) -> int:
        return len(self._packages)
