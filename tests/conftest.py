"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from pkgplan.repositories.reference import record_cache


@pytest.fixture(autouse=True)
def clear_record_cache() -> Iterator[None]:
    """Start and finish every test with an empty record cache."""
    record_cache.clear()
    yield
    record_cache.clear()


@pytest.fixture
def xdg_home(tmp_path: Path) -> Iterator[Path]:
    """Point every XDG base directory into a temporary home."""
    home = tmp_path / "home"
    env = {
        "XDG_CONFIG_HOME": str(home / ".config"),
        "XDG_DATA_HOME": str(home / ".local" / "share"),
    }
    with patch.dict(os.environ, env):
        yield home


@pytest.fixture
def sample_manifest() -> str:
    """Sample package manifest content."""
    return """id = "jQuery.UI"
version = "1.8.2"
description = "jQuery user interface widgets"

[[dependencies]]
id = "jQuery"
version = "[1.4,2.0)"
"""


@pytest.fixture
def sample_record() -> str:
    """Sample consumer record content."""
    return """[[package]]
id = "jQuery"
version = "1.4.4"

[[package]]
id = "jQuery.UI"
version = "1.8.2"
allowed_versions = "[1.8,1.9)"
"""


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Settings with one source in tmp/feed and the store in tmp/store."""
    path = tmp_path / "config.toml"
    path.write_text(
        f'store_path = "{tmp_path / "store"}"\n'
        "\n"
        "[[sources]]\n"
        'name = "feed"\n'
        f'path = "{tmp_path / "feed"}"\n'
    )
    return path
