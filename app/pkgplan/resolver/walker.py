"""Dependency graph walker.

One walker drives both install and uninstall planning. The strategy it
is given decides how dependencies are resolved, which ones are skipped
and what operation each visited package contributes; the traversal,
cycle detection and visit bookkeeping are shared.

Install walks emit dependencies before their dependents. Uninstall walks
emit dependents before their dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Protocol

from pkgplan.core.errors import (
    CycleDetectedError,
    NewerVersionReferencedError,
    NoCandidateError,
    PackageConflictError,
    PackageHasDependentsError,
    UnsafeUninstallError,
)
from pkgplan.models.operation import (
    Operation,
    OperationAction,
    install_operation,
    reduce_operations,
    uninstall_operation,
)
from pkgplan.models.package import PackageDependency, PackageIdentity, PackageMetadata
from pkgplan.resolver.dependents import DependentsIndex, DependentsResolver

if TYPE_CHECKING:
    from pkgplan.models.version import VersionRange
    from pkgplan.repositories.base import Repository

logger = logging.getLogger(__name__)

ReferenceCheck = Callable[[PackageIdentity], bool]


class ConstraintProvider(Protocol):
    """Supplies extra version constraints for package ids (e.g. allowed versions)."""

    def get_constraint(self, package_id: str) -> VersionRange | None: ...


class VisitState(IntEnum):
    """Walk state of a package."""

    NOT_VISITED = 0
    VISITING = 1
    VISITED = 2


class PackageMarker:
    """Tracks the visit state of every package seen during a walk.

    Identities are interned into slots the first time they are seen; the
    state of each slot lives in a list indexed by slot. The marker also
    keeps the path of packages currently being visited, which is the
    chain reported when a cycle is found.
    """

    def __init__(self) -> None:
        self._slots: dict[PackageIdentity, int] = {}
        self._identities: list[PackageIdentity] = []
        self._states: list[VisitState] = []
        self._path: list[int] = []

    def intern(self, identity: PackageIdentity) -> int:
        """Return the slot of an identity, allocating one if needed."""
        slot = self._slots.get(identity)
        if slot is None:
            slot = len(self._identities)
            self._slots[identity] = slot
            self._identities.append(identity)
            self._states.append(VisitState.NOT_VISITED)
        return slot

    def state(self, identity: PackageIdentity) -> VisitState:
        slot = self._slots.get(identity)
        return VisitState.NOT_VISITED if slot is None else self._states[slot]

    def is_visited(self, identity: PackageIdentity) -> bool:
        return self.state(identity) == VisitState.VISITED

    def is_cycle(self, identity: PackageIdentity) -> bool:
        """Check if the identity is on the current path."""
        return self.state(identity) == VisitState.VISITING

    def contains(self, identity: PackageIdentity) -> bool:
        """Check if the identity has been reached by this walk."""
        return self.state(identity) != VisitState.NOT_VISITED

    def mark_visiting(self, identity: PackageIdentity) -> None:
        slot = self.intern(identity)
        self._states[slot] = VisitState.VISITING
        self._path.append(slot)

    def mark_visited(self, identity: PackageIdentity) -> None:
        slot = self.intern(identity)
        self._states[slot] = VisitState.VISITED
        if self._path and self._path[-1] == slot:
            self._path.pop()

    @property
    def path(self) -> tuple[PackageIdentity, ...]:
        """Return the identities currently being visited, root first."""
        return tuple(self._identities[slot] for slot in self._path)

    @property
    def depth(self) -> int:
        return len(self._path)


@dataclass(frozen=True)
class InstallStrategy:
    """Plan the installation of a package into a local repository.

    Attributes:
        local_repository: Where packages are installed.
        source_repository: Where missing packages come from.
        dependents_resolver: Reverse dependency lookup over the local
            repository. Defaults to an index of ``local_repository``.
        constraint_provider: Narrows the versions a dependency may resolve to.
        ignore_dependencies: Only install the package itself.
        throw_on_conflicts: Raise on cycles and conflicts instead of logging.
        side_by_side: Allow several versions of a package to be installed at
            once. Without it an installed version is upgraded in place, and
            installing an older version is refused.
        is_referenced: Whether an identity is still referenced outside this
            walk. An upgrade keeps such old versions and dependencies
            installed instead of removing them.
    """

    local_repository: Repository
    source_repository: Repository
    dependents_resolver: DependentsResolver | None = None
    constraint_provider: ConstraintProvider | None = None
    ignore_dependencies: bool = False
    throw_on_conflicts: bool = True
    side_by_side: bool = False
    is_referenced: ReferenceCheck | None = None


@dataclass(frozen=True)
class UninstallStrategy:
    """Plan the removal of a package from a repository.

    Attributes:
        repository: The repository packages are removed from.
        dependents_resolver: Reverse dependency lookup over ``repository``.
            Defaults to an index of ``repository``.
        remove_dependencies: Also remove dependencies nothing else needs.
        force: Remove the package even if other packages depend on it or
            another consumer still references it.
        throw_on_conflicts: Raise when the package has dependents instead of
            continuing. Cycles are raised or ignored the same way.
        is_referenced: Whether an identity is still referenced outside this
            walk, e.g. by another consumer of a shared store.
    """

    repository: Repository
    dependents_resolver: DependentsResolver | None = None
    remove_dependencies: bool = False
    force: bool = False
    throw_on_conflicts: bool = True
    is_referenced: ReferenceCheck | None = None


WalkStrategy = InstallStrategy | UninstallStrategy


class PackageWalker:
    """Walks a package's dependency graph and plans the operations for it.

    Example:
        >>> walker = PackageWalker(InstallStrategy(local, aggregate))
        >>> [str(op) for op in walker.resolve_operations(package)]
        ['+C 1.0.0', '+B 1.0.0', '+A 1.0.0']
    """

    def __init__(self, strategy: WalkStrategy) -> None:
        self._strategy = strategy
        if isinstance(strategy, InstallStrategy):
            repository = strategy.local_repository
        else:
            repository = strategy.repository
        self._dependents = strategy.dependents_resolver or DependentsIndex(repository)
        self._reset()

    def _reset(self) -> None:
        self._marker = PackageMarker()
        self._operations: list[Operation] = []
        self._selected: dict[str, PackageMetadata] = {}
        self._skipped: dict[PackageIdentity, tuple[PackageIdentity, ...]] = {}

    @property
    def strategy(self) -> WalkStrategy:
        return self._strategy

    @property
    def skipped_packages(self) -> dict[PackageIdentity, tuple[PackageIdentity, ...]]:
        """Dependencies left in place by the last uninstall walk, with what still uses them."""
        return dict(self._skipped)

    def resolve_operations(self, package: PackageMetadata) -> list[Operation]:
        """Walk a package and return the operations needed for it.

        Args:
            package: The root package to install or uninstall.

        Returns:
            Operations in the order they must be applied, with opposing
            install/uninstall pairs of the same package removed.

        Raises:
            ResolutionError: If the walk hits a cycle, a conflict, a missing
                dependency or an unsafe removal under the strategy's policy.
        """
        self._reset()
        self._walk(package)

        if isinstance(self._strategy, UninstallStrategy):
            operations = list(reversed(self._operations))
            self._log_skipped(operations)
        else:
            operations = self._operations
        return reduce_operations(operations)

    @property
    def _ignore_dependencies(self) -> bool:
        if isinstance(self._strategy, InstallStrategy):
            return self._strategy.ignore_dependencies
        return not self._strategy.remove_dependencies

    def _walk(self, package: PackageMetadata) -> None:
        identity = package.identity
        if self._marker.is_visited(identity):
            return

        self._before_walk(package)
        self._marker.mark_visiting(identity)

        if not self._ignore_dependencies:
            for dependency in package.dependencies:
                resolved = self._resolve_dependency(package, dependency)
                if resolved is None or self._skip_resolved(package, resolved):
                    continue

                if self._marker.is_cycle(resolved.identity):
                    if self._strategy.throw_on_conflicts:
                        raise CycleDetectedError([*self._marker.path, resolved.identity])
                    logger.debug(
                        "Ignoring circular dependency %s => %s",
                        package.full_name,
                        resolved.full_name,
                    )
                    continue

                self._walk(resolved)

        self._marker.mark_visited(identity)
        self._after_walk(package)

    def _before_walk(self, package: PackageMetadata) -> None:
        match self._strategy:
            case InstallStrategy() as strategy:
                self._before_install(strategy, package)
            case UninstallStrategy() as strategy:
                self._before_uninstall(strategy, package)

    def _resolve_dependency(
        self, package: PackageMetadata, dependency: PackageDependency
    ) -> PackageMetadata | None:
        match self._strategy:
            case InstallStrategy() as strategy:
                return self._resolve_for_install(strategy, package, dependency)
            case UninstallStrategy() as strategy:
                resolved = strategy.repository.resolve_dependency(dependency)
                if resolved is None:
                    logger.warning(
                        "Unable to locate dependency '%s' of %s, skipping",
                        dependency,
                        package.full_name,
                    )
                return resolved

    def _skip_resolved(self, package: PackageMetadata, resolved: PackageMetadata) -> bool:
        match self._strategy:
            case InstallStrategy() as strategy:
                return self._install_conflicts(strategy, resolved)
            case UninstallStrategy() as strategy:
                return self._still_needed(strategy, resolved)

    def _after_walk(self, package: PackageMetadata) -> None:
        match self._strategy:
            case InstallStrategy() as strategy:
                self._after_install(strategy, package)
            case UninstallStrategy():
                self._operations.append(uninstall_operation(package))

    # Install walk

    def _before_install(self, strategy: InstallStrategy, package: PackageMetadata) -> None:
        self._selected.setdefault(package.id.casefold(), package)
        if strategy.side_by_side or strategy.local_repository.exists(package.id, package.version):
            return

        installed = strategy.local_repository.find_package(package.id)
        if installed is None:
            return

        # Dependents of the installed version must accept the new one
        pending_removal = {
            op.identity for op in self._operations if op.action == OperationAction.UNINSTALL
        }
        incompatible = [
            dependent
            for dependent in self._dependents.get_dependents(installed)
            if dependent.identity not in pending_removal
            and not _accepts(dependent, package)
        ]
        if incompatible:
            raise PackageConflictError(
                package.identity,
                installed.identity,
                dependents=[d.identity for d in incompatible],
                chain=self._marker.path,
            )
        if package.version < installed.version:
            raise NewerVersionReferencedError(package.identity, installed.identity)

        logger.debug("Upgrading %s to %s", installed.full_name, package.version)
        if strategy.is_referenced is not None and strategy.is_referenced(installed.identity):
            logger.info("Keeping %s installed, it is still referenced", installed.full_name)
            return
        old_version_walker = PackageWalker(
            UninstallStrategy(
                repository=strategy.local_repository,
                dependents_resolver=self._dependents,
                remove_dependencies=not strategy.ignore_dependencies,
                force=False,
                throw_on_conflicts=False,
                is_referenced=strategy.is_referenced,
            )
        )
        for operation in old_version_walker.resolve_operations(installed):
            if operation not in self._operations:
                self._operations.append(operation)

    def _resolve_for_install(
        self,
        strategy: InstallStrategy,
        package: PackageMetadata,
        dependency: PackageDependency,
    ) -> PackageMetadata:
        constraint = None
        if strategy.constraint_provider is not None:
            constraint = strategy.constraint_provider.get_constraint(dependency.id)

        selected = self._selected.get(dependency.id.casefold())
        if (
            selected is not None
            and dependency.satisfied_by(selected.version)
            and (constraint is None or constraint.satisfies(selected.version))
        ):
            return selected

        resolved = strategy.local_repository.resolve_dependency(dependency, constraint)
        if resolved is None:
            resolved = strategy.source_repository.resolve_dependency(dependency, constraint)
        if resolved is None:
            raise NoCandidateError(dependency, package.identity, chain=self._marker.path)
        logger.debug("Resolved '%s' to %s", dependency, resolved.full_name)
        return resolved

    def _install_conflicts(self, strategy: InstallStrategy, resolved: PackageMetadata) -> bool:
        selected = self._selected.get(resolved.id.casefold())
        if selected is None or selected == resolved:
            return False
        if strategy.throw_on_conflicts:
            raise PackageConflictError(
                resolved.identity,
                selected.identity,
                chain=[*self._marker.path, resolved.identity],
            )
        logger.warning(
            "Skipping %s because %s was already selected", resolved.full_name, selected.full_name
        )
        return True

    def _after_install(self, strategy: InstallStrategy, package: PackageMetadata) -> None:
        if not strategy.local_repository.exists(package.id, package.version):
            self._operations.append(install_operation(package))
            return
        # Already installed, so drop any removal planned for it earlier in the walk
        identity = package.identity
        for index, operation in enumerate(self._operations):
            if operation.is_uninstall and operation.identity == identity:
                del self._operations[index]
                break

    # Uninstall walk

    def _before_uninstall(self, strategy: UninstallStrategy, package: PackageMetadata) -> None:
        is_root = self._marker.depth == 0
        if (
            is_root
            and not strategy.force
            and strategy.is_referenced is not None
            and strategy.is_referenced(package.identity)
        ):
            raise UnsafeUninstallError(package.identity)

        dependents = self._external_dependents(package)
        if not dependents:
            return
        names = ", ".join(d.full_name for d in dependents)
        if strategy.force:
            logger.warning(
                "Removing %s will break packages that depend on it: %s", package.full_name, names
            )
        elif strategy.throw_on_conflicts:
            raise PackageHasDependentsError(package.identity, [d.identity for d in dependents])
        else:
            logger.debug("Removing %s although %s depend on it", package.full_name, names)

    def _still_needed(self, strategy: UninstallStrategy, resolved: PackageMetadata) -> bool:
        if strategy.is_referenced is not None and strategy.is_referenced(resolved.identity):
            self._skipped[resolved.identity] = ()
            return True
        dependents = self._external_dependents(resolved)
        if dependents and not strategy.force:
            self._skipped[resolved.identity] = tuple(d.identity for d in dependents)
            return True
        return False

    def _external_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        """Return the dependents of a package that this walk isn't already removing."""
        connected: dict[PackageIdentity, bool] = {}
        return [
            d
            for d in self._dependents.get_dependents(package)
            if not self._is_connected(d, connected)
        ]

    def _is_connected(
        self, package: PackageMetadata, memo: dict[PackageIdentity, bool]
    ) -> bool:
        """Check if a package only exists to serve packages in this walk."""
        identity = package.identity
        if self._marker.contains(identity):
            return True
        if identity in memo:
            return memo[identity]

        # Provisional answer while the dependents graph is being explored
        memo[identity] = False
        dependents = self._dependents.get_dependents(package)
        result = bool(dependents) and all(self._is_connected(d, memo) for d in dependents)
        memo[identity] = result
        return result

    def _log_skipped(self, operations: list[Operation]) -> None:
        removed = {op.identity for op in operations}
        for identity, dependents in self._skipped.items():
            if identity in removed:
                continue
            if dependents:
                logger.warning(
                    "Skipped %s because it is in use by %s",
                    identity.full_name,
                    ", ".join(d.full_name for d in dependents),
                )
            else:
                logger.warning(
                    "Skipped %s because it is still referenced by another consumer",
                    identity.full_name,
                )


def _accepts(dependent: PackageMetadata, package: PackageMetadata) -> bool:
    dependency = dependent.find_dependency(package.id)
    return dependency is None or dependency.satisfied_by(package.version)
