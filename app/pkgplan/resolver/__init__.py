"""Dependency resolution for pkgplan.

This module exports the walker, its strategies and the version selection
helpers.
"""

from pkgplan.resolver.dependents import DependentsIndex, DependentsResolver
from pkgplan.resolver.selection import select_dependency, select_latest, select_safe_version
from pkgplan.resolver.walker import (
    ConstraintProvider,
    InstallStrategy,
    PackageMarker,
    PackageWalker,
    UninstallStrategy,
    VisitState,
    WalkStrategy,
)

__all__ = [
    "ConstraintProvider",
    "DependentsIndex",
    "DependentsResolver",
    "InstallStrategy",
    "PackageMarker",
    "PackageWalker",
    "UninstallStrategy",
    "VisitState",
    "WalkStrategy",
    "select_dependency",
    "select_latest",
    "select_safe_version",
]
