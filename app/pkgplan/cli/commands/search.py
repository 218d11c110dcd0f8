"""Search command implementation.

Lists packages from the merged view of all enabled sources.
"""

from typing import Annotated

import typer

from pkgplan.cli.types import SortChoice, cli_errors, get_settings, get_source_repository
from pkgplan.utils.formatting import console, create_package_table, print_info, print_warning

app = typer.Typer(
    help="Search packages across all sources.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def search(
    ctx: typer.Context,
    package_id: Annotated[
        str | None,
        typer.Option(
            "--id",
            "-i",
            help="Only show versions of this package (case-insensitive).",
        ),
    ] = None,
    sort: Annotated[
        SortChoice,
        typer.Option(
            "--sort",
            "-s",
            help="Order results by package id or by version.",
            case_sensitive=False,
        ),
    ] = SortChoice.ID,
    descending: Annotated[
        bool,
        typer.Option(
            "--descending",
            "-d",
            help="Reverse the order.",
        ),
    ] = False,
    skip: Annotated[
        int,
        typer.Option(
            "--skip",
            help="Skip this many results.",
            min=0,
        ),
    ] = 0,
    take: Annotated[
        int | None,
        typer.Option(
            "--take",
            "-n",
            help="Show at most this many results.",
            min=0,
        ),
    ] = None,
    count: Annotated[
        bool,
        typer.Option(
            "--count",
            help="Only print the number of matching packages.",
        ),
    ] = False,
) -> None:
    """Search packages across all enabled sources.

    Results from every source are merged into one ordered list in which
    a package found in several sources appears once.

    Examples:
        pkgplan search                      # All packages, by id
        pkgplan search --id jQuery          # All versions of jQuery
        pkgplan search --skip 20 --take 10  # Third page of ten
        pkgplan search --sort version -d    # Newest versions first
    """
    if ctx.invoked_subcommand is not None:
        return

    settings = get_settings(ctx)
    if not settings.enabled_sources():
        print_warning("No package sources are configured.")
        return

    repository = get_source_repository(settings)
    query = repository.query()
    if package_id:
        query = query.where_id(package_id)
    query = query.order_by(sort.to_key(), descending=descending)

    with cli_errors():
        if count:
            # Sources are counted independently, so duplicates count once per source
            typer.echo(str(query.count()))
            return

        if skip:
            query = query.skip(skip)
        if take is not None:
            query = query.take(take)
        packages = list(query)

    for failing in repository.failing_repositories:
        print_warning(f"Source skipped: {failing.source}")

    if not packages:
        print_info("No packages found.")
        return

    console.print(create_package_table(packages))
