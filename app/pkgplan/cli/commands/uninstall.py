"""Uninstall command implementation.

Removes a package from the shared store, or from a consumer record when
--record is given.
"""

from pathlib import Path
from typing import Annotated

import typer

from pkgplan.cli.types import (
    cli_errors,
    get_package_manager,
    get_project_manager,
    get_settings,
    parse_version_option,
    report_plan,
)
from pkgplan.utils.formatting import console, create_operations_table, print_info


def uninstall(
    ctx: typer.Context,
    package_id: Annotated[str, typer.Argument(help="Id of the package to remove.")],
    version: Annotated[
        str | None,
        typer.Option(
            "--version",
            help="Exact version to remove (default: latest installed).",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Remove the package even if other packages depend on it.",
        ),
    ] = False,
    remove_dependencies: Annotated[
        bool,
        typer.Option(
            "--remove-dependencies",
            help="Also remove dependencies nothing else needs.",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show the plan without applying it.",
        ),
    ] = False,
    record: Annotated[
        Path | None,
        typer.Option(
            "--record",
            "-r",
            help="Consumer record to remove the package from.",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Remove an installed package.

    Packages are removed before their dependencies. A package still
    referenced by a consumer record stays in the store.

    Examples:
        pkgplan uninstall jQuery.UI --remove-dependencies
        pkgplan uninstall jQuery --force --dry-run
    """
    settings = get_settings(ctx)
    target = parse_version_option(version)

    with cli_errors():
        if record is not None:
            manager = get_project_manager(settings, record, dry_run=dry_run)
        else:
            manager = get_package_manager(settings, dry_run=dry_run)
        operations = manager.plan_uninstall(
            package_id, target, force=force, remove_dependencies=remove_dependencies
        )
        if not operations:
            print_info("Nothing to remove.")
            return

        console.print(create_operations_table(operations, dry_run=dry_run))
        results = manager.apply(operations)

    report_plan(operations, results, dry_run)
