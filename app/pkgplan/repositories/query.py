"""Query primitives for repositories.

A query is an immutable pipeline drawn from a closed set of steps:
filter by id, order, skip and take. Repositories interpret the steps
directly. The aggregate engine pushes filters and ordering down to each
source but keeps skip/take for the merged stream.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from itertools import islice
from typing import Any

from pkgplan.models.package import PackageMetadata


class SortKey(str, Enum):
    """Orderings supported by repositories.

    Attributes:
        ID: Package id (case-insensitive), then version.
        VERSION: Version, then package id.
    """

    ID = "id"
    VERSION = "version"


@dataclass(frozen=True, slots=True)
class FilterById:
    """Keep only packages with the given id (case-insensitive)."""

    package_id: str

    def matches(self, package: PackageMetadata) -> bool:
        """Check if a package passes this filter."""
        return package.id.casefold() == self.package_id.casefold()


@dataclass(frozen=True, slots=True)
class OrderBy:
    """Order packages by a sort key."""

    key: SortKey = SortKey.ID
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Skip:
    """Skip the first ``count`` packages."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            msg = f"Skip count must be non-negative, got {self.count}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Take:
    """Keep at most ``count`` packages."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            msg = f"Take count must be non-negative, got {self.count}"
            raise ValueError(msg)


QueryStep = FilterById | OrderBy | Skip | Take


@total_ordering
class _Descending:
    """Wrap a sort key to invert its ordering."""

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _Descending) and self.value == other.value

    def __lt__(self, other: _Descending) -> bool:
        return other.value < self.value

    def __hash__(self) -> int:
        return hash(self.value)


def sort_key_function(ordering: OrderBy) -> Callable[[PackageMetadata], Any]:
    """Build a key function implementing an ordering.

    The returned keys are hashable and totally ordered, so they can be
    used both for sorting and as priority-queue keys.

    Args:
        ordering: The ordering step.

    Returns:
        Function mapping a package to its sort key.
    """
    if ordering.key == SortKey.VERSION:

        def base(package: PackageMetadata) -> Any:
            return (package.version, package.id.casefold())
    else:

        def base(package: PackageMetadata) -> Any:
            return (package.id.casefold(), package.version)

    if not ordering.descending:
        return base
    return lambda package: _Descending(base(package))


@dataclass(frozen=True, slots=True)
class Query:
    """An immutable pipeline of query steps.

    Example:
        >>> query = Query().where_id("jQuery").order_by(SortKey.VERSION).skip(5).take(5)
        >>> query.pushdown()
        Query(steps=(FilterById(package_id='jQuery'), OrderBy(...)))
    """

    steps: tuple[QueryStep, ...] = ()

    def _append(self, step: QueryStep) -> Query:
        return Query(steps=(*self.steps, step))

    def where_id(self, package_id: str) -> Query:
        """Return a query that also filters by package id."""
        return self._append(FilterById(package_id))

    def order_by(self, key: SortKey = SortKey.ID, descending: bool = False) -> Query:
        """Return a query that also orders the results."""
        return self._append(OrderBy(key=key, descending=descending))

    def skip(self, count: int) -> Query:
        """Return a query that also skips ``count`` results."""
        return self._append(Skip(count))

    def take(self, count: int) -> Query:
        """Return a query that also limits the results to ``count``."""
        return self._append(Take(count))

    def pushdown(self) -> Query:
        """Return the part of the query a single source can apply on its own.

        Filters and orderings are kept, skip/take steps are dropped because
        a source's first N items are not the merged first N.
        """
        return Query(steps=tuple(s for s in self.steps if isinstance(s, FilterById | OrderBy)))

    def paging(self) -> tuple[Skip | Take, ...]:
        """Return the skip/take steps, in order."""
        return tuple(s for s in self.steps if isinstance(s, Skip | Take))

    def ordering(self) -> OrderBy | None:
        """Return the last ordering step, or None if the query is unordered."""
        for step in reversed(self.steps):
            if isinstance(step, OrderBy):
                return step
        return None

    def filters(self) -> tuple[FilterById, ...]:
        """Return the filter steps."""
        return tuple(s for s in self.steps if isinstance(s, FilterById))

    def apply(self, packages: Iterable[PackageMetadata]) -> Iterator[PackageMetadata]:
        """Evaluate the query in memory.

        Steps apply in the order they were added, so ``skip(2).where_id(x)``
        and ``where_id(x).skip(2)`` differ just as they would on a server.

        Args:
            packages: Unfiltered packages.

        Returns:
            Iterator over the query results.
        """
        result: Iterable[PackageMetadata] = packages
        for step in self.steps:
            result = _apply_step(step, result)
        return iter(result)


def apply_paging(
    packages: Iterable[PackageMetadata], steps: Iterable[Skip | Take]
) -> Iterator[PackageMetadata]:
    """Apply skip/take steps lazily to a stream of packages."""
    result: Iterable[PackageMetadata] = packages
    for step in steps:
        result = _apply_step(step, result)
    return iter(result)


def _apply_step(step: QueryStep, packages: Iterable[PackageMetadata]) -> Iterable[PackageMetadata]:
    if isinstance(step, FilterById):
        return (p for p in packages if step.matches(p))
    if isinstance(step, OrderBy):
        return sorted(packages, key=sort_key_function(step))
    if isinstance(step, Skip):
        return islice(packages, step.count, None)
    return islice(packages, step.count)
