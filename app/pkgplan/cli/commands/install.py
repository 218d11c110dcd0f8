"""Install command implementation.

Installs a package and its dependencies into the shared store, or adds
them to a consumer record when --record is given.
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


def install(
    ctx: typer.Context,
    package_id: Annotated[str, typer.Argument(help="Id of the package to install.")],
    version: Annotated[
        str | None,
        typer.Option(
            "--version",
            help="Exact version to install (default: latest).",
        ),
    ] = None,
    ignore_dependencies: Annotated[
        bool,
        typer.Option(
            "--ignore-dependencies",
            help="Install the package without its dependencies.",
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
            help="Consumer record to add the package to.",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Install a package and its dependencies.

    Dependencies are installed before the packages that need them.

    Examples:
        pkgplan install jQuery.UI
        pkgplan install jQuery --version 1.4.4 --dry-run
        pkgplan install jQuery.UI --record ./packages.toml
    """
    settings = get_settings(ctx)
    target = parse_version_option(version)
    ignore = ignore_dependencies or settings.resolver.ignore_dependencies

    with cli_errors():
        if record is not None:
            manager = get_project_manager(settings, record, dry_run=dry_run)
        else:
            manager = get_package_manager(settings, dry_run=dry_run)
        operations = manager.plan_install(package_id, target, ignore_dependencies=ignore)
        if not operations:
            print_info(f"{package_id} is already installed.")
            return

        console.print(create_operations_table(operations, dry_run=dry_run))
        results = manager.apply(operations)

    report_plan(operations, results, dry_run)
