"""pkgplan - dependency resolution and multi-source package queries."""

__version__ = "0.1.0"
