"""Sources command implementation.

Lists the configured package sources and the shared store.
"""

import typer
from rich.table import Table

from pkgplan.cli.types import get_settings
from pkgplan.utils.formatting import console, print_info

app = typer.Typer(
    help="List configured package sources.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def sources(ctx: typer.Context) -> None:
    """List configured package sources, in priority order."""
    if ctx.invoked_subcommand is not None:
        return

    settings = get_settings(ctx)
    print_info(f"Package store: {settings.effective_store_path}")
    if not settings.sources:
        print_info("No package sources are configured.")
        return

    table = Table(
        title="Package Sources", show_header=True, header_style="header", border_style="border"
    )
    table.add_column("Name", no_wrap=True)
    table.add_column("Path")
    table.add_column("Status", justify="center")

    for source in settings.sources:
        if not source.enabled:
            status = "[muted]disabled[/muted]"
        elif source.resolved_path.is_dir():
            status = "[success]ok[/success]"
        else:
            status = "[warning]missing[/warning]"
        table.add_row(source.name, str(source.resolved_path), status)

    console.print(table)
