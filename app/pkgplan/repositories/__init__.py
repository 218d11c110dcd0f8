"""Package repositories.

This module exports the repository interface, the query primitives and
the concrete package sources.
"""

from pkgplan.repositories.aggregate import AggregateQuery, AggregateRepository, BufferedCursor
from pkgplan.repositories.base import Repository, WritableRepository
from pkgplan.repositories.local import LocalPackageRepository
from pkgplan.repositories.memory import InMemoryRepository
from pkgplan.repositories.query import FilterById, OrderBy, Query, Skip, SortKey, Take
from pkgplan.repositories.reference import (
    PackageReference,
    PackageReferenceFile,
    PackageReferenceRepository,
)
from pkgplan.repositories.shared import SharedPackageRepository

__all__ = [
    "AggregateQuery",
    "AggregateRepository",
    "BufferedCursor",
    "FilterById",
    "InMemoryRepository",
    "LocalPackageRepository",
    "OrderBy",
    "PackageReference",
    "PackageReferenceFile",
    "PackageReferenceRepository",
    "Query",
    "Repository",
    "SharedPackageRepository",
    "Skip",
    "SortKey",
    "Take",
    "WritableRepository",
]
