"""Aggregate view over several package repositories.

The aggregate engine answers one query against N sources as if they were
a single repository. Filters and orderings are pushed down to every
source; each source's results are pulled through a buffered cursor and
combined with a k-way merge that drops adjacent duplicates. Skip and
take apply only to the merged stream, because a single source's first N
items are not the merged first N.

Example:
    >>> aggregate = AggregateRepository([local, remote], ignore_failing_repositories=True)
    >>> page = list(aggregate.query().where_id("jQuery").skip(10).take(10))
"""

from __future__ import annotations

import heapq
import logging
import threading
from collections import deque
from collections.abc import Callable, Generator, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pkgplan.core.errors import SourceUnavailableError
from pkgplan.models.package import PackageMetadata
from pkgplan.models.version import Version
from pkgplan.repositories.base import Repository
from pkgplan.repositories.query import OrderBy, Query, SortKey, apply_paging, sort_key_function

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 30

FailureCallback = Callable[[Repository, SourceUnavailableError], None]


class BufferedCursor:
    """Reads one repository's results in fixed-size windows.

    Each window is fetched by appending ``skip(offset).take(buffer_size)``
    to the pushed-down query, so a large or slow source is consumed
    incrementally. A window shorter than the buffer size means the source
    has nothing more to give.
    """

    def __init__(
        self, repository: Repository, query: Query, buffer_size: int = DEFAULT_BUFFER_SIZE
    ) -> None:
        if buffer_size < 1:
            msg = f"Buffer size must be at least 1, got {buffer_size}"
            raise ValueError(msg)
        self.repository = repository
        self._query = query
        self._buffer_size = buffer_size
        self._buffer: deque[PackageMetadata] = deque()
        self._offset = 0
        self._source_done = False
        self._closed = False

    @property
    def source(self) -> str:
        return self.repository.source

    @property
    def exhausted(self) -> bool:
        """True once every result has been popped or the cursor is closed."""
        return self._closed or (self._source_done and not self._buffer)

    def _fill(self) -> None:
        window_query = self._query.skip(self._offset).take(self._buffer_size)
        try:
            window = list(self.repository.get_packages(window_query))
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(self.source, e) from e

        logger.debug(
            "Fetched %d packages from %s at offset %d", len(window), self.source, self._offset
        )
        self._offset += len(window)
        self._buffer.extend(window)
        if len(window) < self._buffer_size:
            self._source_done = True

    def peek(self) -> PackageMetadata | None:
        """Return the next package without consuming it.

        Returns:
            The next package, or None when the cursor is exhausted.

        Raises:
            SourceUnavailableError: If the source fails to return a window.
        """
        if self._closed:
            return None
        if not self._buffer and not self._source_done:
            self._fill()
        return self._buffer[0] if self._buffer else None

    def pop(self) -> PackageMetadata:
        """Consume and return the next package.

        Raises:
            IndexError: If the cursor is exhausted.
            SourceUnavailableError: If the source fails to return a window.
        """
        package = self.peek()
        if package is None:
            msg = f"Cursor over {self.source} is exhausted"
            raise IndexError(msg)
        self._buffer.popleft()
        return package

    def close(self) -> None:
        """Release the buffered results. Further peeks return None."""
        self._closed = True
        self._buffer.clear()


class AggregateQuery:
    """A query over the merged, deduplicated results of several repositories.

    Instances are immutable; the builder methods return new queries.
    Iterating performs the merge lazily, and abandoning the iteration
    early releases every cursor.
    """

    def __init__(
        self,
        repositories: Iterable[Repository],
        query: Query | None = None,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        ignore_failing_repositories: bool = False,
        max_workers: int | None = None,
        on_failure: FailureCallback | None = None,
    ) -> None:
        """Initialize the query.

        Args:
            repositories: Sources to merge, in priority order.
            query: Query steps to apply to the merged view.
            buffer_size: Window size of each source's cursor.
            ignore_failing_repositories: Drop sources that fail instead of raising.
            max_workers: Upper bound on parallel source reads per merge step.
            on_failure: Called with each source dropped under the lenient policy.
        """
        self._repositories = tuple(repositories)
        self._query = query or Query()
        self._buffer_size = buffer_size
        self._ignore_failing = ignore_failing_repositories
        self._max_workers = max_workers
        self._on_failure = on_failure

    @property
    def query(self) -> Query:
        return self._query

    def _with(self, query: Query) -> AggregateQuery:
        return AggregateQuery(
            self._repositories,
            query,
            buffer_size=self._buffer_size,
            ignore_failing_repositories=self._ignore_failing,
            max_workers=self._max_workers,
            on_failure=self._on_failure,
        )

    def where_id(self, package_id: str) -> AggregateQuery:
        return self._with(self._query.where_id(package_id))

    def order_by(self, key: SortKey = SortKey.ID, descending: bool = False) -> AggregateQuery:
        return self._with(self._query.order_by(key, descending))

    def skip(self, count: int) -> AggregateQuery:
        return self._with(self._query.skip(count))

    def take(self, count: int) -> AggregateQuery:
        return self._with(self._query.take(count))

    def __iter__(self) -> Iterator[PackageMetadata]:
        return self._iterate()

    def _iterate(self) -> Iterator[PackageMetadata]:
        pushdown = self._query.pushdown()
        ordering = pushdown.ordering()
        if ordering is None:
            # The merge needs a total order to place duplicates next to each other
            ordering = OrderBy(SortKey.ID)
            pushdown = pushdown.order_by(ordering.key)

        merged = self._merge(pushdown, sort_key_function(ordering))
        try:
            yield from apply_paging(merged, self._query.paging())
        finally:
            merged.close()

    def _merge(
        self, query: Query, key: Callable[[PackageMetadata], Any]
    ) -> Generator[PackageMetadata, None, None]:
        cursors = [BufferedCursor(r, query, self._buffer_size) for r in self._repositories]
        if not cursors:
            return

        heap: list[Any] = []
        groups: dict[Any, deque[tuple[PackageMetadata, BufferedCursor]]] = {}
        pending = list(cursors)
        previous: PackageMetadata | None = None

        workers = min(self._max_workers or len(cursors), len(cursors))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pkgplan-aggregate")
        try:
            while True:
                if pending:
                    for cursor, head in self._peek_all(executor, pending):
                        head_key = key(head)
                        group = groups.get(head_key)
                        if group is None:
                            group = groups[head_key] = deque()
                            heapq.heappush(heap, head_key)
                        group.append((head, cursor))
                    pending = []

                if not heap:
                    break

                min_key = heap[0]
                group = groups[min_key]
                package, cursor = group.popleft()
                if not group:
                    heapq.heappop(heap)
                    del groups[min_key]

                cursor.pop()
                pending.append(cursor)

                if previous is not None and package == previous:
                    continue
                previous = package
                yield package
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            for cursor in cursors:
                cursor.close()

    def _peek_all(
        self, executor: ThreadPoolExecutor, cursors: list[BufferedCursor]
    ) -> list[tuple[BufferedCursor, PackageMetadata]]:
        """Peek every cursor in parallel and collect the available heads.

        A failing source never stops the other peeks of the same step. Under
        the strict policy the first failure is raised once all peeks are done.
        """
        futures = [executor.submit(cursor.peek) for cursor in cursors]
        heads: list[tuple[BufferedCursor, PackageMetadata]] = []
        error: SourceUnavailableError | None = None

        for cursor, future in zip(cursors, futures):
            try:
                head = future.result()
            except SourceUnavailableError as e:
                cursor.close()
                if not self._ignore_failing:
                    error = error or e
                    continue
                logger.warning("Ignoring failing package source: %s", e)
                if self._on_failure is not None:
                    self._on_failure(cursor.repository, e)
                continue
            if head is not None:
                heads.append((cursor, head))

        if error is not None:
            raise error
        return heads

    def count(self) -> int:
        """Count the packages matching the query's filters.

        This is the sum of each source's own count. Packages offered by more
        than one source are counted once per source, so the result is an
        upper bound suitable for paging, not an exact total.
        """
        query = self._query.pushdown()
        total = 0
        for repository in self._repositories:
            try:
                total += repository.count(query)
            except SourceUnavailableError as e:
                total += self._count_failed(repository, e)
            except Exception as e:
                error = SourceUnavailableError(repository.source, e)
                total += self._count_failed(repository, error)
        return total

    def _count_failed(self, repository: Repository, error: SourceUnavailableError) -> int:
        if not self._ignore_failing:
            raise error
        logger.warning("Ignoring failing package source: %s", error)
        if self._on_failure is not None:
            self._on_failure(repository, error)
        return 0


class AggregateRepository(Repository):
    """A repository presenting several sources as one.

    Under the lenient policy a source that fails once is remembered and
    left out of later queries.
    """

    def __init__(
        self,
        repositories: Iterable[Repository],
        *,
        ignore_failing_repositories: bool = False,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        max_workers: int | None = None,
    ) -> None:
        self._repositories = tuple(repositories)
        self.ignore_failing_repositories = ignore_failing_repositories
        self._buffer_size = buffer_size
        self._max_workers = max_workers
        self._failing: set[int] = set()
        self._lock = threading.Lock()

    @property
    def repositories(self) -> tuple[Repository, ...]:
        return self._repositories

    @property
    def source(self) -> str:
        return "aggregate(" + ", ".join(r.source for r in self._repositories) + ")"

    @property
    def failing_repositories(self) -> tuple[Repository, ...]:
        """Return the sources that failed and are skipped by later queries."""
        with self._lock:
            return tuple(r for r in self._repositories if id(r) in self._failing)

    def active_repositories(self) -> tuple[Repository, ...]:
        """Return the sources queries are sent to."""
        if not self.ignore_failing_repositories:
            return self._repositories
        with self._lock:
            return tuple(r for r in self._repositories if id(r) not in self._failing)

    def _record_failure(self, repository: Repository, error: SourceUnavailableError) -> None:
        with self._lock:
            self._failing.add(id(repository))

    def query(self, query: Query | None = None) -> AggregateQuery:
        """Return a query builder over the active sources."""
        return AggregateQuery(
            self.active_repositories(),
            query,
            buffer_size=self._buffer_size,
            ignore_failing_repositories=self.ignore_failing_repositories,
            max_workers=self._max_workers,
            on_failure=self._record_failure,
        )

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        return iter(self.query(query))

    def count(self, query: Query | None = None) -> int:
        return self.query(query).count()

    def find_package(
        self, package_id: str, version: Version | None = None
    ) -> PackageMetadata | None:
        """Find a package, scanning sources in order for an exact version.

        Without a version the latest version across all sources is returned.
        """
        if version is None:
            return super().find_package(package_id)

        for repository in self.active_repositories():
            try:
                package = _find_exact(repository, package_id, version)
            except SourceUnavailableError as error:
                if not self.ignore_failing_repositories:
                    raise
                logger.warning("Ignoring failing package source: %s", error)
                self._record_failure(repository, error)
                continue
            if package is not None:
                return package
        return None


def _find_exact(
    repository: Repository, package_id: str, version: Version
) -> PackageMetadata | None:
    try:
        return repository.find_package(package_id, version)
    except SourceUnavailableError:
        raise
    except Exception as e:
        raise SourceUnavailableError(repository.source, e) from e
