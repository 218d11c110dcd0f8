"""Unit tests for Rich formatting helpers."""

import logging

from pkgplan.core.executor import OperationResult
from pkgplan.models.operation import install_operation, uninstall_operation
from pkgplan.models.package import PackageDependency, PackageMetadata
from pkgplan.models.version import Version, VersionRange
from pkgplan.utils.formatting import (
    THEME,
    configure_logging,
    create_operations_table,
    create_package_table,
    create_results_table,
)
from rich.console import Console
from rich.logging import RichHandler


def _make_package(package_id: str = "jQuery", version: str = "1.4.4") -> PackageMetadata:
    """Create a test package."""
    return PackageMetadata(package_id, Version.parse(version))


def _render(table) -> str:
    console = Console(theme=THEME, width=120, record=True)
    console.print(table)
    return console.export_text()


class TestCreatePackageTable:
    """Tests for create_package_table function."""

    def test_rows(self) -> None:
        package = PackageMetadata(
            "jQuery.UI",
            Version.parse("1.8.2"),
            (PackageDependency("jQuery", VersionRange.parse("[1.4,2.0)")),),
            description="Widgets",
        )

        text = _render(create_package_table([package]))

        assert "jQuery.UI" in text
        assert "1.8.2" in text
        assert "jQuery (>= 1.4.0 && < 2.0.0)" in text
        assert "Widgets" in text

    def test_placeholders_for_missing_values(self) -> None:
        table = create_package_table([_make_package()])
        assert table.row_count == 1
        assert "-" in _render(table)


class TestCreateOperationsTable:
    """Tests for create_operations_table function."""

    def test_numbered_in_plan_order(self) -> None:
        operations = [
            uninstall_operation(_make_package("A")),
            install_operation(_make_package("B")),
        ]

        text = _render(create_operations_table(operations))

        assert "Planned Operations" in text
        assert text.index("-uninstall") < text.index("+install")

    def test_dry_run_title(self) -> None:
        table = create_operations_table([], dry_run=True)
        assert table.title == "Planned Operations (Dry Run)"


class TestCreateResultsTable:
    """Tests for create_results_table function."""

    def test_failure_message_is_escaped(self) -> None:
        """Error text containing markup brackets is shown literally."""
        result = OperationResult(
            install_operation(_make_package()), success=False, error="bad [range]"
        )

        text = _render(create_results_table([result]))

        assert "FAIL" in text
        assert "bad [range]" in text

    def test_success(self) -> None:
        result = OperationResult(install_operation(_make_package()), success=True)
        assert "OK" in _render(create_results_table([result]))


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_levels(self) -> None:
        logger = logging.getLogger("pkgplan")

        configure_logging(verbose=True)
        assert logger.level == logging.DEBUG

        configure_logging(verbose=True, quiet=True)
        assert logger.level == logging.ERROR

        configure_logging()
        assert logger.level == logging.WARNING

    def test_single_handler(self) -> None:
        """Reconfiguring replaces the Rich handler instead of stacking them."""
        configure_logging()
        configure_logging()

        handlers = logging.getLogger("pkgplan").handlers
        assert sum(isinstance(h, RichHandler) for h in handlers) == 1
