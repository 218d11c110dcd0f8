"""XDG-compliant path management for pkgplan.

This module provides standardized paths following the XDG Base Directory
Specification for configuration and package storage.

XDG defaults:
- Config: ~/.config/pkgplan/
- Data: ~/.local/share/pkgplan/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "pkgplan"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/pkgplan/ (or XDG_CONFIG_HOME/pkgplan/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_data_dir() -> Path:
    """Get the data directory path.

    Returns:
        Path to ~/.local/share/pkgplan/ (or XDG_DATA_HOME/pkgplan/).
    """
    return _get_xdg_dir("XDG_DATA_HOME", ".local/share")


def get_config_path() -> Path:
    """Get the default settings file path.

    Returns:
        Path to ~/.config/pkgplan/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_default_store_path() -> Path:
    """Get the default shared package store.

    Returns:
        Path to ~/.local/share/pkgplan/packages.
    """
    return get_data_dir() / "packages"
