"""Operation application.

The walker only plans. Applying a plan is the job of an operation sink,
which receives each operation strictly in plan order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from pkgplan.core.errors import PackagePlanError
from pkgplan.models.operation import Operation
from pkgplan.models.package import PackageMetadata

logger = logging.getLogger(__name__)


class OperationSink(Protocol):
    """Applies install and uninstall operations."""

    def install(self, package: PackageMetadata) -> None: ...

    def uninstall(self, package: PackageMetadata) -> None: ...


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Result of applying one operation.

    Attributes:
        operation: The operation that was applied.
        success: Whether it was applied.
        error: Error message if it failed.
    """

    operation: Operation
    success: bool
    error: str | None = None

    @property
    def failed(self) -> bool:
        """Check if the operation failed."""
        return not self.success


def execute_operations(
    operations: Iterable[Operation],
    sink: OperationSink,
    stop_on_error: bool = True,
) -> list[OperationResult]:
    """Apply operations in order.

    Args:
        operations: Planned operations, in the order they must be applied.
        sink: Where the operations are applied.
        stop_on_error: Stop at the first failure. Later operations may
            depend on the failed one, so this is the default.

    Returns:
        One result per attempted operation.
    """
    results: list[OperationResult] = []
    for operation in operations:
        try:
            if operation.is_install:
                sink.install(operation.package)
            else:
                sink.uninstall(operation.package)
        except (PackagePlanError, OSError) as e:
            logger.warning("Failed to apply %s: %s", operation, e)
            results.append(OperationResult(operation, success=False, error=str(e)))
            if stop_on_error:
                break
            continue
        logger.info("Applied %s", operation)
        results.append(OperationResult(operation, success=True))
    return results
