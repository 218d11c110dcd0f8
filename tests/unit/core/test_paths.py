"""Unit tests for XDG path management.

Tests for the paths module that provides XDG-compliant directory paths.
"""

import os
from pathlib import Path
from unittest.mock import patch

from pkgplan.core.paths import (
    APP_NAME,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_default_store_path,
)


class TestGetConfigDir:
    """Tests for get_config_dir function."""

    def test_default_config_dir(self) -> None:
        """get_config_dir returns default path when XDG_CONFIG_HOME not set."""
        with patch.dict(os.environ):
            os.environ.pop("XDG_CONFIG_HOME", None)

            result = get_config_dir()
            expected = Path.home() / ".config" / APP_NAME

        assert result == expected

    def test_respects_xdg_config_home(self, tmp_path: Path) -> None:
        """get_config_dir respects XDG_CONFIG_HOME environment variable."""
        with patch.dict(os.environ, {"XDG_CONFIG_HOME": str(tmp_path)}):
            result = get_config_dir()

        assert result == tmp_path / APP_NAME

    def test_empty_variable_falls_back_to_home(self) -> None:
        """An empty XDG_CONFIG_HOME is treated as unset."""
        with patch.dict(os.environ, {"XDG_CONFIG_HOME": ""}):
            result = get_config_dir()
            expected = Path.home() / ".config" / APP_NAME

        assert result == expected


class TestGetDataDir:
    """Tests for get_data_dir function."""

    def test_default_data_dir(self) -> None:
        """get_data_dir returns default path when XDG_DATA_HOME not set."""
        with patch.dict(os.environ):
            os.environ.pop("XDG_DATA_HOME", None)

            result = get_data_dir()
            expected = Path.home() / ".local" / "share" / APP_NAME

        assert result == expected

    def test_respects_xdg_data_home(self, tmp_path: Path) -> None:
        """get_data_dir respects XDG_DATA_HOME environment variable."""
        with patch.dict(os.environ, {"XDG_DATA_HOME": str(tmp_path)}):
            result = get_data_dir()

        assert result == tmp_path / APP_NAME


class TestConveniencePaths:
    """Tests for convenience path functions."""

    def test_get_config_path(self, xdg_home: Path) -> None:
        """get_config_path returns config.toml in config dir."""
        assert get_config_path() == xdg_home / ".config" / APP_NAME / "config.toml"

    def test_get_default_store_path(self, xdg_home: Path) -> None:
        """get_default_store_path returns packages/ in data dir."""
        expected = xdg_home / ".local" / "share" / APP_NAME / "packages"
        assert get_default_store_path() == expected
