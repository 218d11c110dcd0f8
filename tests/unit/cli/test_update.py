"""Unit tests for update command."""

from pathlib import Path

import pytest
from pkgplan.cli.main import app
from pkgplan.models.package import PackageMetadata
from pkgplan.models.version import Version
from pkgplan.repositories.local import LocalPackageRepository
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture
def feed(tmp_path: Path) -> LocalPackageRepository:
    """Source feed with two versions of A."""
    repository = LocalPackageRepository(tmp_path / "feed")
    repository.add_package(PackageMetadata("A", Version.parse("1.0")))
    repository.add_package(PackageMetadata("A", Version.parse("2.0")))
    return repository


def _invoke(config: Path, *args: str):
    return runner.invoke(app, ["--config", str(config), *args])


class TestUpdateCommand:
    """Tests for the update command."""

    def test_updates_to_latest(
        self, config_path: Path, feed: LocalPackageRepository, tmp_path: Path
    ) -> None:
        """The new version replaces the installed one."""
        _invoke(config_path, "install", "A", "--version", "1.0")

        result = _invoke(config_path, "update", "A")

        assert result.exit_code == 0
        store = LocalPackageRepository(tmp_path / "store")
        assert [p.full_name for p in store.get_packages()] == ["A 2.0.0"]

    def test_already_up_to_date(self, config_path: Path, feed: LocalPackageRepository) -> None:
        _invoke(config_path, "install", "A")

        result = _invoke(config_path, "update", "A")

        assert result.exit_code == 0
        assert "A is already up to date." in result.output

    def test_not_installed(self, config_path: Path, feed: LocalPackageRepository) -> None:
        result = _invoke(config_path, "update", "A")

        assert result.exit_code == 1
        assert "Unable to find package 'A'" in result.output

    def test_dry_run(
        self, config_path: Path, feed: LocalPackageRepository, tmp_path: Path
    ) -> None:
        _invoke(config_path, "install", "A", "--version", "1.0")

        result = _invoke(config_path, "update", "A", "--dry-run")

        assert result.exit_code == 0
        store = LocalPackageRepository(tmp_path / "store")
        assert [p.full_name for p in store.get_packages()] == ["A 1.0.0"]
