"""Package and project managers.

PackageManager plans and applies operations against a package store.
ProjectManager does the same for one consumer of a shared store: its
record gains and loses references, and a package only leaves the store
once no consumer references it anymore.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from pkgplan.core.errors import UnknownPackageError
from pkgplan.core.executor import OperationResult, execute_operations
from pkgplan.models.operation import Operation
from pkgplan.models.package import PackageIdentity, PackageMetadata
from pkgplan.models.version import Version
from pkgplan.repositories.base import Repository, WritableRepository
from pkgplan.repositories.reference import PackageReferenceRepository
from pkgplan.resolver.dependents import DependentsIndex, DependentsResolver
from pkgplan.resolver.walker import InstallStrategy, PackageWalker, UninstallStrategy

logger = logging.getLogger(__name__)


class PackageManager:
    """Installs, removes and updates packages in a local store.

    Example:
        >>> manager = PackageManager(aggregate, LocalPackageRepository(store))
        >>> for result in manager.install_package("jQuery.UI"):
        ...     print(result.operation, result.success)
    """

    def __init__(
        self,
        source_repository: Repository,
        local_repository: WritableRepository,
        *,
        dependents: DependentsResolver | None = None,
        is_referenced: Callable[[PackageIdentity], bool] | None = None,
        throw_on_conflicts: bool = True,
        dry_run: bool = False,
    ) -> None:
        """Initialize the manager.

        Args:
            source_repository: Where packages are installed from.
            local_repository: The store packages are installed into.
            dependents: Reverse dependency lookup over the store. A fresh
                index of the store is used for each plan when None.
            is_referenced: Whether a stored package is still referenced by
                a consumer; such packages are kept on uninstall.
            throw_on_conflicts: Fail on cycles and conflicts instead of logging them.
            dry_run: Plan and log operations without applying them.
        """
        self.source_repository = source_repository
        self.local_repository = local_repository
        self._dependents = dependents
        self.is_referenced = is_referenced
        self.throw_on_conflicts = throw_on_conflicts
        self.dry_run = dry_run

    def _dependents_resolver(self) -> DependentsResolver:
        return self._dependents or DependentsIndex(self.local_repository)

    def find_available(self, package_id: str, version: Version | None) -> PackageMetadata:
        """Find a package in the source, the latest version when none is given."""
        package = self.source_repository.find_package(package_id, version)
        if package is None:
            raise UnknownPackageError(package_id, version, self.source_repository.source)
        return package

    def find_installed(self, package_id: str, version: Version | None) -> PackageMetadata:
        """Find a package in the store, the latest version when none is given."""
        package = self.local_repository.find_package(package_id, version)
        if package is None:
            raise UnknownPackageError(package_id, version, self.local_repository.source)
        return package

    def plan_install(
        self,
        package_id: str,
        version: Version | None = None,
        ignore_dependencies: bool = False,
    ) -> list[Operation]:
        """Plan the installation of a package and its dependencies.

        Several versions of a package may live in the store side by side,
        so installing a version never removes another.

        Args:
            package_id: Package id.
            version: Exact version, or None for the latest.
            ignore_dependencies: Only install the package itself.

        Returns:
            Operations in the order they must be applied.

        Raises:
            UnknownPackageError: If the source has no such package.
            ResolutionError: If the walk fails.
        """
        package = self.find_available(package_id, version)
        logger.info("Attempting to install %s", package.full_name)
        walker = PackageWalker(
            InstallStrategy(
                local_repository=self.local_repository,
                source_repository=self.source_repository,
                dependents_resolver=self._dependents_resolver(),
                ignore_dependencies=ignore_dependencies,
                throw_on_conflicts=self.throw_on_conflicts,
                side_by_side=True,
            )
        )
        return walker.resolve_operations(package)

    def plan_uninstall(
        self,
        package_id: str,
        version: Version | None = None,
        force: bool = False,
        remove_dependencies: bool = False,
    ) -> list[Operation]:
        """Plan the removal of an installed package.

        Args:
            package_id: Package id.
            version: Exact version, or None for the latest installed.
            force: Remove it even if other packages depend on it.
            remove_dependencies: Also remove dependencies nothing else needs.

        Returns:
            Operations in the order they must be applied.

        Raises:
            UnknownPackageError: If the package isn't installed.
            ResolutionError: If removing the package is unsafe.
        """
        package = self.find_installed(package_id, version)
        logger.info("Attempting to uninstall %s", package.full_name)
        walker = PackageWalker(
            UninstallStrategy(
                repository=self.local_repository,
                dependents_resolver=self._dependents_resolver(),
                remove_dependencies=remove_dependencies,
                force=force,
                throw_on_conflicts=self.throw_on_conflicts,
                is_referenced=self.is_referenced,
            )
        )
        return walker.resolve_operations(package)

    def plan_update(
        self,
        package_id: str,
        version: Version | None = None,
        update_dependencies: bool = True,
    ) -> list[Operation]:
        """Plan the update of an installed package.

        The new version is installed and the old one removed, along with
        the old dependencies the new version no longer needs.

        Args:
            package_id: Package id.
            version: Target version, or None for the latest available.
            update_dependencies: Also update dependencies as required.

        Returns:
            Operations in the order they must be applied. Empty when the
            installed version is already the latest.

        Raises:
            UnknownPackageError: If the package isn't installed or available.
            ResolutionError: If the update conflicts with installed packages.
        """
        installed = self.find_installed(package_id, None)
        package = self.find_available(package_id, version)
        if version is None and package.version <= installed.version:
            logger.info("%s is already up to date", installed.full_name)
            return []

        logger.info("Updating %s to %s", installed.full_name, package.version)
        walker = PackageWalker(
            InstallStrategy(
                local_repository=self.local_repository,
                source_repository=self.source_repository,
                dependents_resolver=self._dependents_resolver(),
                ignore_dependencies=not update_dependencies,
                throw_on_conflicts=self.throw_on_conflicts,
                is_referenced=self.is_referenced,
            )
        )
        return walker.resolve_operations(package)

    def install_package(
        self,
        package_id: str,
        version: Version | None = None,
        ignore_dependencies: bool = False,
    ) -> list[OperationResult]:
        """Install a package and its dependencies into the store."""
        return self.apply(self.plan_install(package_id, version, ignore_dependencies))

    def uninstall_package(
        self,
        package_id: str,
        version: Version | None = None,
        force: bool = False,
        remove_dependencies: bool = False,
    ) -> list[OperationResult]:
        """Remove a package from the store."""
        return self.apply(
            self.plan_uninstall(package_id, version, force, remove_dependencies)
        )

    def update_package(
        self,
        package_id: str,
        version: Version | None = None,
        update_dependencies: bool = True,
    ) -> list[OperationResult]:
        """Update an installed package."""
        return self.apply(self.plan_update(package_id, version, update_dependencies))

    def apply(self, operations: Sequence[Operation]) -> list[OperationResult]:
        """Apply planned operations to the store, in order.

        Returns:
            One result per applied operation. Empty in dry-run mode.
        """
        if self.dry_run:
            for operation in operations:
                logger.info("Would apply %s", operation)
            return []
        return execute_operations(operations, self)

    def install(self, package: PackageMetadata) -> None:
        if self.local_repository.exists(package.id, package.version):
            logger.info("%s is already installed", package.full_name)
            return
        self.local_repository.add_package(package)

    def uninstall(self, package: PackageMetadata) -> None:
        self.local_repository.remove_package(package)


class ProjectManager:
    """Manages the packages one consumer references from a shared store."""

    def __init__(
        self,
        package_manager: PackageManager,
        reference_repository: PackageReferenceRepository,
    ) -> None:
        """Initialize the manager.

        Args:
            package_manager: Manager of the shared store. Its source is used
                to find packages and its store receives them.
            reference_repository: The consumer's record.
        """
        self.package_manager = package_manager
        self.reference_repository = reference_repository

    @property
    def dry_run(self) -> bool:
        return self.package_manager.dry_run

    def _find_referenced(self, package_id: str, version: Version | None) -> PackageMetadata:
        package = self.reference_repository.find_package(package_id, version)
        if package is None:
            raise UnknownPackageError(package_id, version, self.reference_repository.source)
        return package

    def _install_walker(self, ignore_dependencies: bool) -> PackageWalker:
        return PackageWalker(
            InstallStrategy(
                local_repository=self.reference_repository,
                source_repository=self.package_manager.source_repository,
                dependents_resolver=DependentsIndex(self.reference_repository),
                constraint_provider=self.reference_repository,
                ignore_dependencies=ignore_dependencies,
                throw_on_conflicts=self.package_manager.throw_on_conflicts,
            )
        )

    def plan_install(
        self,
        package_id: str,
        version: Version | None = None,
        ignore_dependencies: bool = False,
    ) -> list[Operation]:
        """Plan adding a package and its dependencies to the consumer.

        A package the consumer already references at an older version is
        upgraded in place.
        """
        package = self.package_manager.find_available(package_id, version)
        logger.info(
            "Attempting to add %s to %s", package.full_name, self.reference_repository.source
        )
        return self._install_walker(ignore_dependencies).resolve_operations(package)

    def plan_uninstall(
        self,
        package_id: str,
        version: Version | None = None,
        force: bool = False,
        remove_dependencies: bool = False,
    ) -> list[Operation]:
        """Plan removing a package from the consumer."""
        package = self._find_referenced(package_id, version)
        logger.info(
            "Attempting to remove %s from %s", package.full_name, self.reference_repository.source
        )
        walker = PackageWalker(
            UninstallStrategy(
                repository=self.reference_repository,
                dependents_resolver=DependentsIndex(self.reference_repository),
                remove_dependencies=remove_dependencies,
                force=force,
                throw_on_conflicts=self.package_manager.throw_on_conflicts,
            )
        )
        return walker.resolve_operations(package)

    def plan_update(
        self,
        package_id: str,
        version: Version | None = None,
        update_dependencies: bool = True,
    ) -> list[Operation]:
        """Plan updating a referenced package.

        Without an explicit version the highest available version within the
        consumer's allowed versions is used.
        """
        installed = self._find_referenced(package_id, None)
        if version is not None:
            package = self.package_manager.find_available(package_id, version)
        else:
            constraint = self.reference_repository.get_constraint(package_id)
            candidates = self.package_manager.source_repository.find_packages(
                package_id, constraint
            )
            if not candidates:
                raise UnknownPackageError(
                    package_id, None, self.package_manager.source_repository.source
                )
            package = candidates[0]
            if package.version <= installed.version:
                logger.info("%s is already up to date", installed.full_name)
                return []

        logger.info("Updating %s to %s", installed.full_name, package.version)
        return self._install_walker(not update_dependencies).resolve_operations(package)

    def install_package(
        self,
        package_id: str,
        version: Version | None = None,
        ignore_dependencies: bool = False,
    ) -> list[OperationResult]:
        return self.apply(self.plan_install(package_id, version, ignore_dependencies))

    def uninstall_package(
        self,
        package_id: str,
        version: Version | None = None,
        force: bool = False,
        remove_dependencies: bool = False,
    ) -> list[OperationResult]:
        return self.apply(
            self.plan_uninstall(package_id, version, force, remove_dependencies)
        )

    def update_package(
        self,
        package_id: str,
        version: Version | None = None,
        update_dependencies: bool = True,
    ) -> list[OperationResult]:
        return self.apply(self.plan_update(package_id, version, update_dependencies))

    def apply(self, operations: Sequence[Operation]) -> list[OperationResult]:
        """Apply planned operations to the consumer and the store, in order."""
        if self.dry_run:
            for operation in operations:
                logger.info("Would apply %s", operation)
            return []
        return execute_operations(operations, self)

    def install(self, package: PackageMetadata) -> None:
        # The store needs the package before the record can reference it
        self.package_manager.install(package)
        self.reference_repository.add_package(package)

    def uninstall(self, package: PackageMetadata) -> None:
        self.reference_repository.remove_package(package)
        shared = self.reference_repository.shared_repository
        if shared.is_referenced(package.id, package.version):
            logger.info("Keeping %s in the store, it is still referenced", package.full_name)
            return
        self.package_manager.uninstall(package)
