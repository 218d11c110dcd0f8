"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from pathlib import Path
from typing import Annotated

import typer

from pkgplan import __version__
from pkgplan.cli.commands import install, search, sources, uninstall, update
from pkgplan.utils.formatting import configure_logging

# Create main Typer app
app = typer.Typer(
    name="pkgplan",
    help="Plan and apply package installs across several package sources.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"pkgplan version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Settings file (default: ~/.config/pkgplan/config.toml).",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """pkgplan - Plan and apply package installs across several package sources.

    Sources are merged into one ordered, deduplicated view. Installs and
    removals are planned against a shared package store before anything
    is changed.
    """
    configure_logging(verbose=verbose, quiet=quiet)

    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config"] = config


# Register commands
app.add_typer(search.app, name="search")
app.add_typer(sources.app, name="sources")
app.command(name="install")(install.install)
app.command(name="uninstall")(uninstall.uninstall)
app.command(name="update")(update.update)


if __name__ == "__main__":
    app()
