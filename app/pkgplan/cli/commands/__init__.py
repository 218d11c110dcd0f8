"""CLI commands for pkgplan.

This package contains all subcommand implementations.
"""

from pkgplan.cli.commands import install, search, sources, uninstall, update

__all__ = ["install", "search", "sources", "uninstall", "update"]
