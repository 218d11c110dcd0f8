"""Command-line interface for pkgplan."""

from pkgplan.cli.main import app

__all__ = ["app"]
