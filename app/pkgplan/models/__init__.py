"""Data models for pkgplan.

This module exports the core value types used throughout the application.
"""

from pkgplan.models.operation import (
    Operation,
    OperationAction,
    install_operation,
    reduce_operations,
    uninstall_operation,
)
from pkgplan.models.package import PackageDependency, PackageIdentity, PackageMetadata
from pkgplan.models.version import Version, VersionRange, parse_optional_version

__all__ = [
    "Operation",
    "OperationAction",
    "PackageDependency",
    "PackageIdentity",
    "PackageMetadata",
    "Version",
    "VersionRange",
    "install_operation",
    "parse_optional_version",
    "reduce_operations",
    "uninstall_operation",
]
