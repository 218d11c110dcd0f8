"""Utility modules for pkgplan.

This module exports commonly used utility functions.
"""

from pkgplan.utils.formatting import (
    configure_logging,
    console,
    create_operations_table,
    create_package_table,
    create_results_table,
    err_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from pkgplan.utils.tomlfile import read_toml, write_toml_atomic

__all__ = [
    "configure_logging",
    "console",
    "create_operations_table",
    "create_package_table",
    "create_results_table",
    "err_console",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "read_toml",
    "write_toml_atomic",
]
