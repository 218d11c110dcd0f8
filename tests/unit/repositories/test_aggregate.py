"""Unit tests for the aggregate query engine.

Tests for k-way merging, deduplication, query pushdown and the
handling of failing sources.
"""

from collections.abc import Iterator

import pytest
from pkgplan.core.errors import SourceUnavailableError
from pkgplan.models.package import PackageMetadata
from pkgplan.models.version import Version
from pkgplan.repositories.aggregate import AggregateQuery, AggregateRepository, BufferedCursor
from pkgplan.repositories.base import Repository
from pkgplan.repositories.memory import InMemoryRepository
from pkgplan.repositories.query import FilterById, OrderBy, Query, Skip, SortKey, Take

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_package(
    package_id: str, version: str = "1.0", description: str | None = None
) -> PackageMetadata:
    """Create a test package."""
    return PackageMetadata(package_id, Version.parse(version), description=description)


class RecordingRepository(InMemoryRepository):
    """In-memory repository that remembers every query it answers."""

    def __init__(self, packages, name: str = "recording") -> None:
        super().__init__(packages, name=name)
        self.queries: list[Query] = []

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        self.queries.append(query or Query())
        return super().get_packages(query)


class FailingRepository(Repository):
    """Repository whose every query fails."""

    def __init__(self, name: str = "broken") -> None:
        self.name = name
        self.calls = 0

    @property
    def source(self) -> str:
        return self.name

    def get_packages(self, query: Query | None = None) -> Iterator[PackageMetadata]:
        self.calls += 1
        raise OSError("connection refused")


def _interleaved_sources(count: int = 3, per_source: int = 10) -> list[RecordingRepository]:
    """Spread Pkg00..PkgNN round-robin over several sources."""
    total = count * per_source
    return [
        RecordingRepository(
            [_make_package(f"Pkg{n:02d}") for n in range(total) if n % count == i],
            name=f"source-{i}",
        )
        for i in range(count)
    ]


# ---------------------------------------------------------------------------
# BufferedCursor
# ---------------------------------------------------------------------------


class TestBufferedCursor:
    """Tests for BufferedCursor."""

    def test_reads_in_windows(self) -> None:
        """Each fill asks the source for one window past the current offset."""
        repo = RecordingRepository([_make_package(f"P{i}") for i in range(5)])
        cursor = BufferedCursor(repo, Query().order_by(SortKey.ID), buffer_size=2)

        ids = []
        while (package := cursor.peek()) is not None:
            ids.append(cursor.pop().id)
            assert package.id == ids[-1]

        assert ids == ["P0", "P1", "P2", "P3", "P4"]
        assert [q.paging() for q in repo.queries] == [
            (Skip(0), Take(2)),
            (Skip(2), Take(2)),
            (Skip(4), Take(2)),
        ]
        assert cursor.exhausted

    def test_full_last_window_needs_one_more_fetch(self) -> None:
        """A source ends only when a window comes back short."""
        repo = RecordingRepository([_make_package(f"P{i}") for i in range(4)])
        cursor = BufferedCursor(repo, Query().order_by(SortKey.ID), buffer_size=2)
        while cursor.peek() is not None:
            cursor.pop()
        assert len(repo.queries) == 3

    def test_pop_when_exhausted(self) -> None:
        cursor = BufferedCursor(InMemoryRepository(), Query())
        with pytest.raises(IndexError):
            cursor.pop()

    def test_wraps_source_errors(self) -> None:
        cursor = BufferedCursor(FailingRepository(), Query())
        with pytest.raises(SourceUnavailableError, match="broken") as exc_info:
            cursor.peek()
        assert isinstance(exc_info.value.cause, OSError)

    def test_closed_cursor_yields_nothing(self) -> None:
        cursor = BufferedCursor(InMemoryRepository([_make_package("A")]), Query())
        cursor.close()
        assert cursor.peek() is None
        assert cursor.exhausted

    def test_buffer_size_validated(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            BufferedCursor(InMemoryRepository(), Query(), buffer_size=0)


# ---------------------------------------------------------------------------
# AggregateQuery
# ---------------------------------------------------------------------------


class TestAggregateMerge:
    """Tests for merging several sources."""

    def test_merged_stream_is_globally_ordered(self) -> None:
        sources = _interleaved_sources()
        result = list(AggregateQuery(sources, buffer_size=4))
        assert [p.id for p in result] == [f"Pkg{n:02d}" for n in range(30)]

    def test_paging_applies_to_merged_stream(self) -> None:
        """skip(5).take(5) over 3x10 interleaved items yields global items 6-10."""
        sources = _interleaved_sources()
        query = AggregateQuery(sources, buffer_size=3).order_by(SortKey.ID).skip(5).take(5)
        assert [p.id for p in query] == ["Pkg05", "Pkg06", "Pkg07", "Pkg08", "Pkg09"]

    def test_skip_and_take_are_not_pushed_down(self) -> None:
        """Sources see the filter and ordering, but only window paging."""
        sources = _interleaved_sources()
        query = AggregateQuery(sources, buffer_size=4).where_id("Pkg04").skip(1).take(1)
        list(query)

        for source in sources:
            assert source.queries
            for seen in source.queries:
                assert seen.pushdown() == Query(
                    steps=(FilterById("Pkg04"), OrderBy(SortKey.ID))
                )
                assert seen.paging()[0] == Skip(0)
                assert seen.paging()[1] == Take(4)

    def test_duplicates_across_sources_appear_once(self) -> None:
        first = InMemoryRepository([_make_package("A"), _make_package("B"), _make_package("C")])
        second = InMemoryRepository([_make_package("b"), _make_package("C"), _make_package("D")])
        result = list(AggregateQuery([first, second]))
        assert [p.id.upper() for p in result] == ["A", "B", "C", "D"]

    def test_different_versions_are_kept(self) -> None:
        first = InMemoryRepository([_make_package("A", "1.0")])
        second = InMemoryRepository([_make_package("A", "2.0")])
        assert len(list(AggregateQuery([first, second]))) == 2

    def test_descending_version_order(self) -> None:
        first = InMemoryRepository([_make_package("A", "1.0"), _make_package("A", "3.0")])
        second = InMemoryRepository([_make_package("A", "2.0"), _make_package("A", "3.0")])
        query = AggregateQuery([first, second]).order_by(SortKey.VERSION, descending=True)
        assert [str(p.version) for p in query] == ["3.0.0", "2.0.0", "1.0.0"]

    def test_no_sources(self) -> None:
        assert list(AggregateQuery([])) == []

    def test_merge_is_lazy(self) -> None:
        """Taking the first result reads a single window from each source."""
        sources = _interleaved_sources()
        iterator = iter(AggregateQuery(sources, buffer_size=2).take(1))
        assert next(iterator).id == "Pkg00"
        assert [len(s.queries) for s in sources] == [1, 1, 1]

    def test_abandoned_iteration_can_be_closed(self) -> None:
        """Closing the iterator releases the cursors, so no source is read again."""
        sources = _interleaved_sources()
        iterator = iter(AggregateQuery(sources, buffer_size=2))
        next(iterator)
        iterator.close()
        with pytest.raises(StopIteration):
            next(iterator)
        assert [len(s.queries) for s in sources] == [1, 1, 1]

    def test_filtered_results_match_merged_source_results(self) -> None:
        """Filtering the merged view equals merging each source's filtered results."""
        sources = [
            InMemoryRepository(
                [_make_package("Foo", "1.0"), _make_package("Bar"), _make_package("Foo", "2.0")]
            ),
            InMemoryRepository(
                [_make_package("foo", "2.0"), _make_package("FOO", "3.0"), _make_package("Baz")]
            ),
            InMemoryRepository([_make_package("Foo", "1.5"), _make_package("Foo", "1.0")]),
        ]
        expected: list[PackageMetadata] = []
        for source in sources:
            for package in source.get_packages(Query().where_id("Foo")):
                if package not in expected:
                    expected.append(package)
        expected.sort(key=lambda p: (p.id.casefold(), p.version))

        result = list(AggregateQuery(sources, buffer_size=2).where_id("Foo"))

        assert result == expected
        assert [str(p.version) for p in result] == ["1.0.0", "1.5.0", "2.0.0", "3.0.0"]
        paged = AggregateQuery(sources, buffer_size=2).where_id("Foo").skip(1).take(2)
        assert list(paged) == expected[1:3]

    def test_builders_are_immutable(self) -> None:
        base = AggregateQuery([InMemoryRepository([_make_package("A")])])
        base.where_id("missing")
        assert len(list(base)) == 1

    def test_max_workers_limits_parallelism(self) -> None:
        sources = _interleaved_sources()
        result = list(AggregateQuery(sources, buffer_size=5, max_workers=1))
        assert len(result) == 30


class TestAggregateFailures:
    """Tests for strict and lenient handling of failing sources."""

    def test_strict_policy_raises(self) -> None:
        good = InMemoryRepository([_make_package("A")])
        with pytest.raises(SourceUnavailableError, match="broken"):
            list(AggregateQuery([good, FailingRepository()]))

    def test_lenient_policy_skips_failing_source(self) -> None:
        good = InMemoryRepository([_make_package("A"), _make_package("B")])
        failed: list[str] = []

        query = AggregateQuery(
            [good, FailingRepository()],
            ignore_failing_repositories=True,
            on_failure=lambda repo, error: failed.append(repo.source),
        )

        assert [p.id for p in query] == ["A", "B"]
        assert failed == ["broken"]

    def test_count_strict(self) -> None:
        with pytest.raises(SourceUnavailableError):
            AggregateQuery([FailingRepository()]).count()

    def test_count_lenient(self) -> None:
        good = InMemoryRepository([_make_package("A")])
        query = AggregateQuery([good, FailingRepository()], ignore_failing_repositories=True)
        assert query.count() == 1


# ---------------------------------------------------------------------------
# AggregateRepository
# ---------------------------------------------------------------------------


class TestAggregateRepository:
    """Tests for AggregateRepository."""

    def test_count_sums_sources(self) -> None:
        """Counting doesn't deduplicate across sources."""
        first = InMemoryRepository([_make_package("A"), _make_package("B")])
        second = InMemoryRepository([_make_package("B")])
        aggregate = AggregateRepository([first, second])

        assert aggregate.count() == 3
        assert len(list(aggregate.get_packages())) == 2

    def test_failing_source_is_remembered(self) -> None:
        """Under the lenient policy a failed source is left out of later queries."""
        broken = FailingRepository()
        aggregate = AggregateRepository(
            [InMemoryRepository([_make_package("A")]), broken], ignore_failing_repositories=True
        )

        assert [p.id for p in aggregate.get_packages()] == ["A"]
        assert aggregate.failing_repositories == (broken,)
        assert broken not in aggregate.active_repositories()

        calls = broken.calls
        list(aggregate.get_packages())
        assert broken.calls == calls

    def test_strict_repository_keeps_all_sources(self) -> None:
        broken = FailingRepository()
        aggregate = AggregateRepository([broken])
        with pytest.raises(SourceUnavailableError):
            list(aggregate.get_packages())
        assert aggregate.active_repositories() == (broken,)

    def test_find_package_exact_prefers_first_source(self) -> None:
        first = InMemoryRepository([_make_package("A", "1.0", description="first")])
        second = InMemoryRepository([_make_package("A", "1.0", description="second")])
        package = AggregateRepository([first, second]).find_package("A", Version(1))
        assert package is not None
        assert package.description == "first"

    def test_find_package_exact_skips_failing_source(self) -> None:
        second = InMemoryRepository([_make_package("A", "1.0")])
        aggregate = AggregateRepository(
            [FailingRepository(), second], ignore_failing_repositories=True
        )
        assert aggregate.find_package("A", Version(1)) is not None
        assert len(aggregate.failing_repositories) == 1

    def test_find_package_exact_strict_raises(self) -> None:
        aggregate = AggregateRepository([FailingRepository()])
        with pytest.raises(SourceUnavailableError):
            aggregate.find_package("A", Version(1))

    def test_find_latest_across_sources(self) -> None:
        first = InMemoryRepository([_make_package("A", "1.0")])
        second = InMemoryRepository([_make_package("A", "2.0")])
        package = AggregateRepository([first, second]).find_package("A")
        assert package is not None
        assert package.version == Version(2)

    def test_source(self) -> None:
        aggregate = AggregateRepository([InMemoryRepository(name="one"), FailingRepository()])
        assert aggregate.source == "aggregate(one, broken)"
