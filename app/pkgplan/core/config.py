"""Settings for pkgplan.

This module provides the settings model and I/O functions. Settings
name the package sources, the shared store and the defaults used by the
aggregate engine and the resolver.

Settings are stored in ~/.config/pkgplan/config.toml:

    store_path = "~/.local/share/pkgplan/packages"

    [[sources]]
    name = "local"
    path = "~/feeds/local"

    [aggregate]
    ignore_failing_repositories = true
"""

import tomllib
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from pkgplan.core.paths import get_config_path, get_default_store_path
from pkgplan.utils.tomlfile import read_toml, write_toml_atomic


class SourceConfig(BaseModel):
    """A package source.

    Attributes:
        name: Display name, unique among sources.
        path: Directory of package manifests.
        enabled: Whether the source takes part in queries.
    """

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1, description="Source name")]
    path: Annotated[Path, Field(description="Directory of package manifests")]
    enabled: Annotated[bool, Field(description="Whether the source is queried")] = True

    @property
    def resolved_path(self) -> Path:
        """Return the source path with ~ expanded."""
        return self.path.expanduser()


class AggregateConfig(BaseModel):
    """Settings of the aggregate query engine.

    Attributes:
        buffer_size: Packages fetched from a source per window.
        ignore_failing_repositories: Keep going with the remaining sources
            when one fails.
        max_workers: Upper bound on parallel source reads. None means one
            worker per source.
    """

    model_config = ConfigDict(extra="forbid")

    buffer_size: Annotated[int, Field(ge=1, le=1000, description="Window size (1-1000)")] = 30
    ignore_failing_repositories: Annotated[
        bool, Field(description="Skip sources that fail")
    ] = False
    max_workers: Annotated[int | None, Field(ge=1, description="Parallel source reads")] = None


class ResolverConfig(BaseModel):
    """Settings of the dependency walker.

    Attributes:
        throw_on_conflicts: Fail on cycles and conflicts instead of logging them.
        ignore_dependencies: Install packages without their dependencies.
    """

    model_config = ConfigDict(extra="forbid")

    throw_on_conflicts: Annotated[bool, Field(description="Fail on conflicts")] = True
    ignore_dependencies: Annotated[bool, Field(description="Skip dependencies")] = False


class Settings(BaseModel):
    """Complete pkgplan settings."""

    model_config = ConfigDict(extra="forbid")

    sources: Annotated[
        list[SourceConfig],
        Field(default_factory=list, description="Package sources, in priority order"),
    ]
    store_path: Annotated[Path | None, Field(description="Shared package store")] = None
    aggregate: Annotated[
        AggregateConfig, Field(default_factory=AggregateConfig, description="Query engine")
    ]
    resolver: Annotated[
        ResolverConfig, Field(default_factory=ResolverConfig, description="Dependency walker")
    ]

    @model_validator(mode="after")
    def validate_unique_sources(self) -> "Settings":
        """Validate that source names are unique."""
        names = [s.name.casefold() for s in self.sources]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            msg = f"Duplicate source names: {sorted(duplicates)}"
            raise ValueError(msg)
        return self

    @property
    def effective_store_path(self) -> Path:
        """Return the configured store, or the default one."""
        if self.store_path is not None:
            return self.store_path.expanduser()
        return get_default_store_path()

    def enabled_sources(self) -> list[SourceConfig]:
        """Return the sources that take part in queries."""
        return [s for s in self.sources if s.enabled]


class SettingsError(Exception):
    """Base exception for settings errors."""


class SettingsParseError(SettingsError):
    """Raised when the settings file cannot be parsed."""


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from a TOML file.

    Args:
        path: Path to the settings file. If None, uses the default path.

    Returns:
        Validated Settings. A missing file yields the default settings.

    Raises:
        SettingsParseError: If the TOML syntax is invalid.
        SettingsError: If the file can't be read or doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        return Settings()

    try:
        data = read_toml(config_path)
    except tomllib.TOMLDecodeError as e:
        raise SettingsParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise SettingsError(f"Failed to read settings: {e}") from e

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings content: {e}") from e


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Save settings to a TOML file atomically.

    Args:
        settings: The settings to save.
        path: Path to save to. If None, uses the default path.

    Returns:
        Path where the settings were saved.

    Raises:
        SettingsError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    try:
        return write_toml_atomic(config_path, _settings_to_dict(settings))
    except OSError as e:
        raise SettingsError(f"Failed to write settings: {e}") from e


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings to a dictionary for TOML serialization.

    None values are left out since TOML has no null.
    """
    return settings.model_dump(mode="json", exclude_none=True)
