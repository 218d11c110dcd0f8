"""TOML file helpers shared by the file-backed stores."""

import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import tomli_w


def read_toml(path: Path) -> dict[str, Any]:
    """Read a TOML document.

    Raises:
        OSError: If the file cannot be read.
        tomllib.TOMLDecodeError: If the TOML syntax is invalid.
    """
    with open(path, "rb") as f:
        return tomllib.load(f)


def write_toml_atomic(path: Path, data: dict[str, Any]) -> Path:
    """Write a TOML document atomically.

    The document is written to a temporary file in the same directory and
    then moved into place with os.replace(). The temporary file is
    cleaned up on failure.

    Args:
        path: Destination path. Parent directories are created.
        data: Document to serialize.

    Returns:
        The destination path.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(path))
    except OSError:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise

    return path
