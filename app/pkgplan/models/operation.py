"""Operation models for resolved package changes.

A walk produces an ordered list of operations. The order is part of the
contract: installing in list order satisfies every prerequisite, and
uninstalling in list order removes dependents before their dependencies.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from pkgplan.models.package import PackageIdentity, PackageMetadata


class OperationAction(str, Enum):
    """Type of package operation.

    Attributes:
        INSTALL: Add the package to the destination.
        UNINSTALL: Remove the package from the destination.
    """

    INSTALL = "install"
    UNINSTALL = "uninstall"

    @property
    def opposite(self) -> OperationAction:
        """Return the action that cancels this one."""
        if self is OperationAction.INSTALL:
            return OperationAction.UNINSTALL
        return OperationAction.INSTALL


@dataclass(frozen=True, slots=True)
class Operation:
    """A single install or uninstall of a package.

    Attributes:
        action: Whether the package is installed or uninstalled.
        package: The package the operation applies to.
    """

    action: OperationAction
    package: PackageMetadata

    @property
    def identity(self) -> PackageIdentity:
        """Return the identity of the package this operation applies to."""
        return self.package.identity

    @property
    def is_install(self) -> bool:
        """Check if this is an install operation."""
        return self.action == OperationAction.INSTALL

    @property
    def is_uninstall(self) -> bool:
        """Check if this is an uninstall operation."""
        return self.action == OperationAction.UNINSTALL

    def __str__(self) -> str:
        sign = "+" if self.is_install else "-"
        return f"{sign}{self.package.full_name}"


def install_operation(package: PackageMetadata) -> Operation:
    """Create an install operation for a package."""
    return Operation(action=OperationAction.INSTALL, package=package)


def uninstall_operation(package: PackageMetadata) -> Operation:
    """Create an uninstall operation for a package."""
    return Operation(action=OperationAction.UNINSTALL, package=package)


def reduce_operations(operations: Iterable[Operation]) -> list[Operation]:
    """Calculate the canonical list of operations.

    Every install of a package identity cancels one uninstall of the same
    identity (and vice versa), so a batch such as ``[-Foo 1.0, +Foo 1.0]``
    reduces to ``[]``. The relative order of the remaining operations is
    preserved.

    Args:
        operations: Operations in execution order.

    Returns:
        Operations left after cancelling opposing pairs.
    """
    ops = list(operations)

    pending: dict[tuple[OperationAction, PackageIdentity], deque[int]] = defaultdict(deque)
    for index, op in enumerate(ops):
        pending[(op.action, op.identity)].append(index)

    cancelled: set[int] = set()
    for index, op in enumerate(ops):
        if index in cancelled:
            continue
        opposing = pending.get((op.action.opposite, op.identity))
        if not opposing:
            continue
        cancelled.add(opposing.popleft())
        pending[(op.action, op.identity)].remove(index)
        cancelled.add(index)

    return [op for index, op in enumerate(ops) if index not in cancelled]
