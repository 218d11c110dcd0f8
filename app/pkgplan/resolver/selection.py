"""Version selection for dependency resolution.

When several versions satisfy a dependency we take the highest build and
revision of the lowest major.minor line. That is the version closest to
what the dependency's author tested against, but still includes bug-fix
releases published since.
"""

from __future__ import annotations

from collections.abc import Iterable

from pkgplan.models.package import PackageDependency, PackageMetadata
from pkgplan.models.version import VersionRange


def select_safe_version(candidates: Iterable[PackageMetadata]) -> PackageMetadata | None:
    """Pick the highest version of the lowest (major, minor) group.

    Example:
        Candidates 1.0.0, 1.0.1, 1.1.0 and 2.0.0 select 1.0.1.

    Args:
        candidates: Packages that all satisfy the dependency.

    Returns:
        The selected package, or None if there are no candidates.
    """
    best: PackageMetadata | None = None
    for candidate in candidates:
        if best is None:
            best = candidate
            continue
        line = (candidate.version.major, candidate.version.minor)
        best_line = (best.version.major, best.version.minor)
        if line < best_line or (line == best_line and candidate.version > best.version):
            best = candidate
    return best


def select_latest(candidates: Iterable[PackageMetadata]) -> PackageMetadata | None:
    """Pick the highest version among the candidates."""
    return max(candidates, key=lambda p: p.version, default=None)


def select_dependency(
    candidates: Iterable[PackageMetadata],
    dependency: PackageDependency,
    constraint: VersionRange | None = None,
) -> PackageMetadata | None:
    """Select the package that best satisfies a dependency.

    Candidates whose id doesn't match the dependency are ignored. With a
    version range the safe version is selected; without one the latest
    version wins.

    Args:
        candidates: Packages offered by a repository.
        dependency: The dependency being resolved.
        constraint: Extra range imposed by the consumer (e.g. allowed versions).

    Returns:
        The selected package, or None if nothing qualifies.
    """
    matching = [
        c
        for c in candidates
        if dependency.matches_id(c.id)
        and dependency.satisfied_by(c.version)
        and (constraint is None or constraint.satisfies(c.version))
    ]
    if dependency.version_range is not None:
        return select_safe_version(matching)
    return select_latest(matching)
