"""Version and version range value types.

Versions are four-part numeric tuples (major, minor, build, revision)
with total ordering. Version ranges are predicates over versions with
optional inclusive/exclusive bounds on either side.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_COMPARATOR_PATTERN = re.compile(r"^(>=|<=|==|=|>|<)\s*(\S+)$")


@dataclass(frozen=True, slots=True, order=True)
class Version:
    """A four-part numeric package version.

    Missing components are zero, so ``1.0`` and ``1.0.0.0`` are equal.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        build: Build (patch) number.
        revision: Revision number.
    """

    major: int
    minor: int = 0
    build: int = 0
    revision: int = 0

    def __post_init__(self) -> None:
        """Validate version components after initialization."""
        for part in (self.major, self.minor, self.build, self.revision):
            if part < 0:
                msg = f"Version components must be non-negative, got {self.as_tuple()}"
                raise ValueError(msg)

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a version from its text form.

        Args:
            text: Version text with 1 to 4 dot separated numbers (e.g. "1.2.3").

        Returns:
            Parsed Version.

        Raises:
            ValueError: If the text is not a valid version.
        """
        value = text.strip() if isinstance(text, str) else ""
        parts = value.split(".")
        if not value or len(parts) > 4 or not all(p.isdigit() for p in parts):
            msg = f"Invalid version string: {text!r}"
            raise ValueError(msg)
        return cls(*(int(p) for p in parts))

    def as_tuple(self) -> tuple[int, int, int, int]:
        """Return the version as a (major, minor, build, revision) tuple."""
        return (self.major, self.minor, self.build, self.revision)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.build}"
        if self.revision:
            text += f".{self.revision}"
        return text


def parse_optional_version(text: str | None) -> Version | None:
    """Parse a version, returning None for missing or malformed text.

    Args:
        text: Version text, possibly None or empty.

    Returns:
        Parsed Version, or None if the text is absent or invalid.
    """
    if not text:
        return None
    try:
        return Version.parse(text)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class VersionRange:
    """A range of acceptable versions.

    A range with no bounds matches every version.

    Attributes:
        min_version: Lower bound, or None for unbounded.
        min_inclusive: Whether the lower bound itself is accepted.
        max_version: Upper bound, or None for unbounded.
        max_inclusive: Whether the upper bound itself is accepted.
    """

    min_version: Version | None = None
    min_inclusive: bool = True
    max_version: Version | None = None
    max_inclusive: bool = False

    def __post_init__(self) -> None:
        """Validate that the bounds describe a non-empty range."""
        if self.min_version is None or self.max_version is None:
            return
        if self.min_version > self.max_version:
            msg = f"Range minimum {self.min_version} is above maximum {self.max_version}"
            raise ValueError(msg)
        exclusive = not (self.min_inclusive and self.max_inclusive)
        if exclusive and self.min_version == self.max_version:
            msg = f"Range with an exclusive bound cannot have equal bounds ({self.min_version})"
            raise ValueError(msg)

    @classmethod
    def any(cls) -> VersionRange:
        """Return a range that matches every version."""
        return cls()

    @classmethod
    def exact(cls, version: Version) -> VersionRange:
        """Return a range matching exactly one version."""
        return cls(
            min_version=version,
            min_inclusive=True,
            max_version=version,
            max_inclusive=True,
        )

    @classmethod
    def safe_range(cls, version: Version) -> VersionRange:
        """Return the range of bug-fix releases of a version.

        The safe range starts at ``version`` and stays below the next
        minor version, i.e. ``[version, major.minor+1)``.
        """
        return cls(
            min_version=version,
            min_inclusive=True,
            max_version=Version(version.major, version.minor + 1),
            max_inclusive=False,
        )

    @classmethod
    def parse(cls, text: str) -> VersionRange:
        """Parse a version range.

        Accepted forms:
            - ``1.0``: inclusive minimum version
            - ``[1.0]``, ``[1.0,2.0)``, ``(,2.0]``, ``(1.0,)``: interval notation
            - ``>=1.0, <2.0``: comma separated comparators
            - ``*``: any version

        Args:
            text: Range text.

        Returns:
            Parsed VersionRange.

        Raises:
            ValueError: If the text is not a valid range.
        """
        value = text.strip() if isinstance(text, str) else ""
        if not value:
            msg = "Version range cannot be empty"
            raise ValueError(msg)

        if value == "*":
            return cls()

        try:
            return cls(min_version=Version.parse(value), min_inclusive=True)
        except ValueError:
            pass

        if value[0] in "[(":
            return cls._parse_interval(value)
        return cls._parse_comparators(value)

    @classmethod
    def _parse_interval(cls, value: str) -> VersionRange:
        if len(value) < 3 or value[-1] not in "])":
            msg = f"Invalid version range: {value!r}"
            raise ValueError(msg)

        min_inclusive = value[0] == "["
        max_inclusive = value[-1] == "]"
        parts = value[1:-1].split(",")
        if len(parts) > 2 or all(not p.strip() for p in parts):
            msg = f"Invalid version range: {value!r}"
            raise ValueError(msg)

        # A single part is used for both bounds: "[1.0]" means exactly 1.0
        min_text = parts[0].strip()
        max_text = parts[1].strip() if len(parts) == 2 else min_text

        return cls(
            min_version=Version.parse(min_text) if min_text else None,
            min_inclusive=min_inclusive,
            max_version=Version.parse(max_text) if max_text else None,
            max_inclusive=max_inclusive,
        )

    @classmethod
    def _parse_comparators(cls, value: str) -> VersionRange:
        min_version: Version | None = None
        min_inclusive = True
        max_version: Version | None = None
        max_inclusive = False

        for clause in value.split(","):
            match = _COMPARATOR_PATTERN.match(clause.strip())
            if match is None:
                msg = f"Invalid version range: {value!r}"
                raise ValueError(msg)
            operator, version = match.group(1), Version.parse(match.group(2))
            if operator in ("==", "="):
                min_version, min_inclusive = version, True
                max_version, max_inclusive = version, True
            elif operator.startswith(">"):
                min_version, min_inclusive = version, operator == ">="
            else:
                max_version, max_inclusive = version, operator == "<="

        return cls(
            min_version=min_version,
            min_inclusive=min_inclusive,
            max_version=max_version,
            max_inclusive=max_inclusive,
        )

    @property
    def is_exact(self) -> bool:
        """Check if the range matches exactly one version."""
        return (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.min_inclusive
            and self.max_inclusive
        )

    def satisfies(self, version: Version) -> bool:
        """Check if a version falls within this range.

        Args:
            version: Version to test.

        Returns:
            True if the version respects both bounds.
        """
        if self.min_version is not None:
            if self.min_inclusive:
                if version < self.min_version:
                    return False
            elif version <= self.min_version:
                return False

        if self.max_version is not None:
            if self.max_inclusive:
                if version > self.max_version:
                    return False
            elif version >= self.max_version:
                return False

        return True

    def __contains__(self, version: object) -> bool:
        return isinstance(version, Version) and self.satisfies(version)

    def pretty(self) -> str:
        """Return a human readable description of the range."""
        if self.is_exact:
            return f"= {self.min_version}"

        clauses: list[str] = []
        if self.min_version is not None:
            clauses.append(f"{'>=' if self.min_inclusive else '>'} {self.min_version}")
        if self.max_version is not None:
            clauses.append(f"{'<=' if self.max_inclusive else '<'} {self.max_version}")
        return " && ".join(clauses) if clauses else "any version"

    def __str__(self) -> str:
        if self.min_version is None and self.max_version is None:
            return "*"
        if self.min_version is not None and self.max_version is None and self.min_inclusive:
            return str(self.min_version)
        if self.is_exact:
            return f"[{self.min_version}]"

        lower = "[" if self.min_inclusive else "("
        upper = "]" if self.max_inclusive else ")"
        min_text = str(self.min_version) if self.min_version is not None else ""
        max_text = str(self.max_version) if self.max_version is not None else ""
        return f"{lower}{min_text},{max_text}{upper}"
