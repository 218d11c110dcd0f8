"""Update command implementation."""

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


def update(
    ctx: typer.Context,
    package_id: Annotated[str, typer.Argument(help="Id of the package to update.")],
    version: Annotated[
        str | None,
        typer.Option(
            "--version",
            help="Version to update to (default: latest allowed).",
        ),
    ] = None,
    no_dependencies: Annotated[
        bool,
        typer.Option(
            "--no-dependencies",
            help="Don't update dependencies.",
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
            help="Consumer record whose reference is updated.",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Update an installed package to a newer version.

    With --record the reference is upgraded in place, within the
    versions the record allows.

    Examples:
        pkgplan update jQuery
        pkgplan update jQuery --version 2.0.0 --record ./packages.toml
    """
    settings = get_settings(ctx)
    target = parse_version_option(version)

    with cli_errors():
        if record is not None:
            manager = get_project_manager(settings, record, dry_run=dry_run)
        else:
            manager = get_package_manager(settings, dry_run=dry_run)
        operations = manager.plan_update(
            package_id, target, update_dependencies=not no_dependencies
        )
        if not operations:
            print_info(f"{package_id} is already up to date.")
            return

        console.print(create_operations_table(operations, dry_run=dry_run))
        results = manager.apply(operations)

    report_plan(operations, results, dry_run)
