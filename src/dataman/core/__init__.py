"""
Core module - Configuration, errors, record types, and predicates.
"""

from dataman.core.config import settings
from dataman.core.errors import (
    DataManagerError,
    FaultError,
    MergeError,
    MigrationError,
    RecordValidationError,
    ResolutionError,
    StoreError,
)
from dataman.core.predicate import ComparisonOperator, Predicate, build_predicate, build_sort
from dataman.core.types import ChangeSet, FetchRequest, ManagedRecord, ObjectID

__all__ = [
    "settings",
    "DataManagerError",
    "FaultError",
    "MergeError",
    "MigrationError",
    "RecordValidationError",
    "ResolutionError",
    "StoreError",
    "ComparisonOperator",
    "Predicate",
    "build_predicate",
    "build_sort",
    "ChangeSet",
    "FetchRequest",
    "ManagedRecord",
    "ObjectID",
]
