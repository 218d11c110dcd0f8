"""Rich console formatting utilities.

Provides consistent formatting for CLI output using Rich.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

if TYPE_CHECKING:
    from pkgplan.core.executor import OperationResult
    from pkgplan.models.operation import Operation
    from pkgplan.models.package import PackageMetadata

THEME = Theme(
    {
        "text": "default",
        "muted": "grey62",
        "header": "bold #69B9A1",
        "border": "#29526d",
        "success": "#03b971",
        "warning": "#f5b332",
        "error": "#f53263",
        "info": "#0ec1c8",
        "added": "#c1ff62",
        "removed": "#f53263",
    }
)

# Shared console instances
console = Console(theme=THEME)
err_console = Console(theme=THEME, stderr=True)


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route pkgplan log records to stderr through Rich.

    Args:
        verbose: Show debug records.
        quiet: Only show errors. Takes precedence over ``verbose``.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    logger = logging.getLogger("pkgplan")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_time=False, show_path=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)


def create_package_table(packages: Iterable[PackageMetadata], title: str = "Packages") -> Table:
    """Create a table listing packages.

    Args:
        packages: Packages to list, in display order.
        title: Table title.

    Returns:
        Rich Table with one row per package.
    """
    table = Table(title=title, show_header=True, header_style="header", border_style="border")
    table.add_column("Package", no_wrap=True)
    table.add_column("Version", style="muted")
    table.add_column("Dependencies")
    table.add_column("Description", style="text", overflow="ellipsis")

    for package in packages:
        dependencies = ", ".join(str(d) for d in package.dependencies) or "-"
        table.add_row(package.id, str(package.version), dependencies, package.description or "-")
    return table


def create_operations_table(operations: Iterable[Operation], dry_run: bool = False) -> Table:
    """Create a table of planned operations, in application order.

    Args:
        operations: Planned operations.
        dry_run: Whether this is a dry-run.

    Returns:
        Rich Table configured for operation display.
    """
    title = "Planned Operations (Dry Run)" if dry_run else "Planned Operations"
    table = Table(title=title, show_header=True, header_style="header", border_style="border")
    table.add_column("#", justify="right", style="muted")
    table.add_column("Action", width=10)
    table.add_column("Package", no_wrap=True)
    table.add_column("Version", style="muted")

    for index, operation in enumerate(operations, start=1):
        if operation.is_install:
            action = "[added]+install[/added]"
        else:
            action = "[removed]-uninstall[/removed]"
        table.add_row(str(index), action, operation.package.id, str(operation.package.version))
    return table


def create_results_table(results: Iterable[OperationResult]) -> Table:
    """Create a table of applied operations.

    Args:
        results: Results from applying a plan.

    Returns:
        Rich Table configured for results display.
    """
    table = Table(title="Results", show_header=True, header_style="header", border_style="border")
    table.add_column("Status", width=8, justify="center")
    table.add_column("Operation", no_wrap=True)
    table.add_column("Message")

    for result in results:
        if result.success:
            status = "[success]OK[/success]"
            message = ""
        else:
            status = "[error]FAIL[/error]"
            message = escape(result.error or "Unknown error")
        table.add_row(status, str(result.operation), f"[muted]{message}[/muted]")
    return table


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")
