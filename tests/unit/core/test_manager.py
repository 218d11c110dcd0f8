"""Unit tests for the package and project managers.

The managers are exercised against a real shared store in a temporary
directory, with an in-memory repository as the package source.
"""

from pathlib import Path

import pytest
from pkgplan.core.errors import UnknownPackageError, UnsafeUninstallError
from pkgplan.core.manager import PackageManager, ProjectManager
from pkgplan.models.package import PackageDependency, PackageMetadata
from pkgplan.models.version import Version, VersionRange
from pkgplan.repositories.memory import InMemoryRepository
from pkgplan.repositories.reference import PackageReferenceRepository
from pkgplan.repositories.shared import SharedPackageRepository

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_package(package_id: str, version: str = "1.0", *deps: str) -> PackageMetadata:
    """Create a test package; deps are 'Id' or 'Id@range'."""
    dependencies = []
    for dep in deps:
        dep_id, _, version_range = dep.partition("@")
        dependencies.append(
            PackageDependency(dep_id, VersionRange.parse(version_range) if version_range else None)
        )
    return PackageMetadata(package_id, Version.parse(version), dependencies)


def _plan(operations) -> list[str]:
    return [str(op) for op in operations]


@pytest.fixture
def store(tmp_path: Path) -> SharedPackageRepository:
    return SharedPackageRepository(tmp_path / "store")


def _manager(
    store: SharedPackageRepository, source: list[PackageMetadata], **options
) -> PackageManager:
    return PackageManager(
        InMemoryRepository(source, name="source"),
        store,
        is_referenced=lambda identity: store.is_referenced(identity.id, identity.version),
        **options,
    )


def _consumer(tmp_path: Path, name: str, store: SharedPackageRepository):
    return PackageReferenceRepository(tmp_path / name / "packages.toml", store)


# ---------------------------------------------------------------------------
# PackageManager
# ---------------------------------------------------------------------------


class TestPackageManagerInstall:
    """Tests for installing into the store."""

    def test_install_with_dependencies(self, store: SharedPackageRepository) -> None:
        """Dependencies are written to the store before the package."""
        a = _make_package("A", "1.0", "B")
        b = _make_package("B", "1.0")
        manager = _manager(store, [a, b])

        results = manager.install_package("A")

        assert [str(r.operation) for r in results] == ["+B 1.0.0", "+A 1.0.0"]
        assert all(r.success for r in results)
        assert store.exists("A", Version.parse("1.0"))
        assert store.exists("B", Version.parse("1.0"))

    def test_install_specific_version(self, store: SharedPackageRepository) -> None:
        manager = _manager(store, [_make_package("A", "1.0"), _make_package("A", "2.0")])

        manager.install_package("A", Version.parse("1.0"))

        assert [p.full_name for p in store.get_packages()] == ["A 1.0.0"]

    def test_install_latest_by_default(self, store: SharedPackageRepository) -> None:
        manager = _manager(store, [_make_package("A", "1.0"), _make_package("A", "2.0")])
        assert _plan(manager.plan_install("A")) == ["+A 2.0.0"]

    def test_versions_live_side_by_side(self, store: SharedPackageRepository) -> None:
        """Installing an older version keeps the newer one in the store."""
        store.add_package(_make_package("A", "2.0"))
        manager = _manager(store, [_make_package("A", "1.0")])

        manager.install_package("A", Version.parse("1.0"))

        assert store.exists("A", Version.parse("1.0"))
        assert store.exists("A", Version.parse("2.0"))

    def test_unknown_package(self, store: SharedPackageRepository) -> None:
        manager = _manager(store, [_make_package("A", "1.0")])

        with pytest.raises(UnknownPackageError, match="in source"):
            manager.plan_install("A", Version.parse("3.0"))

    def test_dry_run_changes_nothing(self, store: SharedPackageRepository) -> None:
        """In dry-run mode operations are planned but not applied."""
        manager = _manager(store, [_make_package("A", "1.0")], dry_run=True)

        assert manager.install_package("A") == []
        assert list(store.get_packages()) == []

    def test_ignore_dependencies(self, store: SharedPackageRepository) -> None:
        manager = _manager(store, [_make_package("A", "1.0", "B")])
        assert _plan(manager.plan_install("A", ignore_dependencies=True)) == ["+A 1.0.0"]


class TestPackageManagerUninstall:
    """Tests for removing from the store."""

    def test_uninstall_with_dependencies(self, store: SharedPackageRepository) -> None:
        store.add_package(_make_package("A", "1.0", "B"))
        store.add_package(_make_package("B", "1.0"))
        manager = _manager(store, [])

        manager.uninstall_package("A", remove_dependencies=True)

        assert list(store.get_packages()) == []

    def test_uninstall_unknown(self, store: SharedPackageRepository) -> None:
        with pytest.raises(UnknownPackageError):
            _manager(store, []).plan_uninstall("A")

    def test_referenced_dependency_stays_in_store(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        """A dependency another consumer references is not removed."""
        a = _make_package("A", "1.0", "B")
        b = _make_package("B", "1.0")
        store.add_package(a)
        store.add_package(b)
        _consumer(tmp_path, "app2", store).add_package(b)
        manager = _manager(store, [])

        assert _plan(manager.plan_uninstall("A", remove_dependencies=True)) == ["-A 1.0.0"]

    def test_referenced_root_is_unsafe(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        b = _make_package("B", "1.0")
        store.add_package(b)
        _consumer(tmp_path, "app2", store).add_package(b)
        manager = _manager(store, [])

        with pytest.raises(UnsafeUninstallError):
            manager.plan_uninstall("B")
        assert _plan(manager.plan_uninstall("B", force=True)) == ["-B 1.0.0"]


class TestPackageManagerUpdate:
    """Tests for updating a stored package."""

    def test_update_replaces_version_and_dependencies(
        self, store: SharedPackageRepository
    ) -> None:
        store.add_package(_make_package("A", "1.0", "B@[1.0]"))
        store.add_package(_make_package("B", "1.0"))
        source = [
            _make_package("A", "2.0", "B@[2.0]"),
            _make_package("B", "1.0"),
            _make_package("B", "2.0"),
        ]
        manager = _manager(store, source)

        plan = manager.plan_update("A")

        assert _plan(plan) == ["-A 1.0.0", "-B 1.0.0", "+B 2.0.0", "+A 2.0.0"]
        manager.apply(plan)
        assert sorted(p.full_name for p in store.get_packages()) == ["A 2.0.0", "B 2.0.0"]

    def test_update_keeps_version_another_consumer_references(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        """The old version stays in the store while a consumer still references it."""
        a1 = _make_package("A", "1.0")
        store.add_package(a1)
        consumer = _consumer(tmp_path, "app2", store)
        consumer.add_package(a1)
        manager = _manager(store, [_make_package("A", "1.0"), _make_package("A", "2.0")])

        plan = manager.plan_update("A")

        assert _plan(plan) == ["+A 2.0.0"]
        manager.apply(plan)
        assert store.exists("A", Version.parse("1.0"))
        assert store.exists("A", Version.parse("2.0"))
        assert [p.full_name for p in consumer.get_packages()] == ["A 1.0.0"]

    def test_update_keeps_dependency_another_consumer_references(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        """A replaced dependency is kept when another consumer references it."""
        b1 = _make_package("B", "1.0")
        store.add_package(_make_package("A", "1.0", "B@[1.0]"))
        store.add_package(b1)
        _consumer(tmp_path, "app2", store).add_package(b1)
        source = [_make_package("A", "2.0", "B@[2.0]"), b1, _make_package("B", "2.0")]
        manager = _manager(store, source)

        plan = manager.plan_update("A")

        assert _plan(plan) == ["-A 1.0.0", "+B 2.0.0", "+A 2.0.0"]
        manager.apply(plan)
        assert sorted(p.full_name for p in store.get_packages()) == [
            "A 2.0.0",
            "B 1.0.0",
            "B 2.0.0",
        ]

    def test_already_up_to_date(self, store: SharedPackageRepository) -> None:
        store.add_package(_make_package("A", "2.0"))
        manager = _manager(store, [_make_package("A", "1.0"), _make_package("A", "2.0")])

        assert manager.plan_update("A") == []

    def test_update_not_installed(self, store: SharedPackageRepository) -> None:
        with pytest.raises(UnknownPackageError):
            _manager(store, [_make_package("A", "1.0")]).plan_update("A")


# ---------------------------------------------------------------------------
# ProjectManager
# ---------------------------------------------------------------------------


class TestProjectManager:
    """Tests for managing one consumer of the shared store."""

    def test_install_references_and_stores(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        a = _make_package("A", "1.0", "B")
        b = _make_package("B", "1.0")
        consumer = _consumer(tmp_path, "app1", store)
        project = ProjectManager(_manager(store, [a, b]), consumer)

        project.install_package("A")

        assert [r.identity.full_name for r in consumer.references()] == ["B 1.0.0", "A 1.0.0"]
        assert store.exists("A") and store.exists("B")
        assert store.get_repository_paths() == [consumer.record_path]

    def test_uninstall_keeps_packages_other_consumers_use(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        """Consumer 1 drops A and B, but B stays in the store for consumer 2."""
        a = _make_package("A", "1.0", "B")
        b = _make_package("B", "1.0")
        store.add_package(a)
        store.add_package(b)
        consumer1 = _consumer(tmp_path, "app1", store)
        consumer1.add_package(b)
        consumer1.add_package(a)
        consumer2 = _consumer(tmp_path, "app2", store)
        consumer2.add_package(b)
        project = ProjectManager(_manager(store, []), consumer1)

        results = project.uninstall_package("A", remove_dependencies=True)

        assert [str(r.operation) for r in results] == ["-A 1.0.0", "-B 1.0.0"]
        assert not store.exists("A")
        assert store.exists("B")
        assert not consumer1.record_path.exists()
        assert store.get_repository_paths() == [consumer2.record_path]

    def test_uninstall_unreferenced(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        project = ProjectManager(_manager(store, []), _consumer(tmp_path, "app1", store))
        with pytest.raises(UnknownPackageError):
            project.plan_uninstall("A")

    def test_update_within_allowed_versions(
        self, store: SharedPackageRepository, tmp_path: Path
    ) -> None:
        """Update picks the highest version the record allows and keeps the constraint."""
        allowed = VersionRange.parse("[1.0,2.0)")
        store.add_package(_make_package("A", "1.0"))
        consumer = _consumer(tmp_path, "app1", store)
        consumer.record.add_entry("A", Version.parse("1.0"), allowed)
        store.register_repository(consumer.record_path)
        source = [_make_package("A", v) for v in ("1.0", "1.5", "2.0")]
        project = ProjectManager(_manager(store, source), consumer)

        plan = project.plan_update("A")

        assert _plan(plan) == ["-A 1.0.0", "+A 1.5.0"]
        project.apply(plan)
        assert [r.identity.full_name for r in consumer.references()] == ["A 1.5.0"]
        assert consumer.get_constraint("A") == allowed
        assert not store.exists("A", Version.parse("1.0"))

    def test_dry_run(self, store: SharedPackageRepository, tmp_path: Path) -> None:
        consumer = _consumer(tmp_path, "app1", store)
        project = ProjectManager(
            _manager(store, [_make_package("A", "1.0")], dry_run=True), consumer
        )

        assert project.install_package("A") == []
        assert not consumer.record_path.exists()
