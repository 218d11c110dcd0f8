"""Shared types and utilities for CLI commands.

This module builds the repositories and managers used by the commands
from the loaded settings, and turns pkgplan failures into CLI errors.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

import typer

from pkgplan.core.config import Settings, SettingsError, load_settings
from pkgplan.core.errors import PackagePlanError
from pkgplan.core.executor import OperationResult
from pkgplan.core.manager import PackageManager, ProjectManager
from pkgplan.models.operation import Operation
from pkgplan.models.version import Version
from pkgplan.repositories.aggregate import AggregateRepository
from pkgplan.repositories.local import LocalPackageRepository
from pkgplan.repositories.query import SortKey
from pkgplan.repositories.reference import PackageReferenceRepository
from pkgplan.repositories.shared import SharedPackageRepository
from pkgplan.utils.formatting import (
    console,
    create_results_table,
    print_error,
    print_info,
    print_success,
)


class SortChoice(str, Enum):
    """Available orderings for search results."""

    ID = "id"
    VERSION = "version"

    def to_key(self) -> SortKey:
        return SortKey(self.value)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Report pkgplan and settings failures and exit with code 1."""
    try:
        yield
    except (PackagePlanError, SettingsError) as e:
        print_error(str(e))
        raise typer.Exit(code=1) from None


def get_settings(ctx: typer.Context) -> Settings:
    """Load the settings named by the global --config option."""
    config_path: Path | None = (ctx.obj or {}).get("config")
    with cli_errors():
        return load_settings(config_path)


def parse_version_option(value: str | None) -> Version | None:
    """Parse a --version option value.

    Raises:
        typer.BadParameter: If the value is not a valid version.
    """
    if value is None:
        return None
    try:
        return Version.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--version") from None


def get_source_repository(settings: Settings) -> AggregateRepository:
    """Build the aggregate view over the enabled package sources.

    Args:
        settings: Loaded settings.

    Returns:
        AggregateRepository over one LocalPackageRepository per enabled source.
    """
    sources = [LocalPackageRepository(s.resolved_path) for s in settings.enabled_sources()]
    return AggregateRepository(
        sources,
        ignore_failing_repositories=settings.aggregate.ignore_failing_repositories,
        buffer_size=settings.aggregate.buffer_size,
        max_workers=settings.aggregate.max_workers,
    )


def get_package_manager(settings: Settings, dry_run: bool = False) -> PackageManager:
    """Build a manager for the shared store.

    Packages referenced by a registered consumer record are kept on uninstall.
    """
    store = SharedPackageRepository(settings.effective_store_path)
    return _package_manager(settings, store, dry_run)


def _package_manager(
    settings: Settings, store: SharedPackageRepository, dry_run: bool
) -> PackageManager:
    return PackageManager(
        get_source_repository(settings),
        store,
        is_referenced=lambda identity: store.is_referenced(identity.id, identity.version),
        throw_on_conflicts=settings.resolver.throw_on_conflicts,
        dry_run=dry_run,
    )


def get_project_manager(
    settings: Settings, record_path: Path, dry_run: bool = False
) -> ProjectManager:
    """Build a manager for one consumer record of the shared store."""
    store = SharedPackageRepository(settings.effective_store_path)
    package_manager = _package_manager(settings, store, dry_run)
    return ProjectManager(package_manager, PackageReferenceRepository(record_path, store))


def report_plan(operations: list[Operation], results: list[OperationResult], dry_run: bool) -> None:
    """Print the outcome of a planned and applied command.

    Raises:
        typer.Exit: With code 1 if an operation failed.
    """
    if dry_run:
        print_info("Dry run: no changes were made.")
        return

    console.print(create_results_table(results))
    failed = [r for r in results if r.failed]
    if failed:
        print_error(f"{len(failed)} of {len(operations)} operation(s) failed.")
        raise typer.Exit(code=1)
    print_success(f"Applied {len(results)} operation(s).")
