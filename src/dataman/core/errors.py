"""
Error taxonomy for dataman.

None of these cross the public context API: operations turn them into
empty results, completion arguments, or error log lines.
"""

from pydantic import ValidationError


class DataManagerError(Exception):
    """Base class for all dataman errors."""


class ResolutionError(DataManagerError):
    """An entity, field, or object identifier could not be resolved."""


class StoreError(DataManagerError):
    """The backing store could not be opened, read, or written."""


class MigrationError(StoreError):
    """The store schema differs and cannot be migrated automatically."""


class MergeError(DataManagerError):
    """A child change set does not apply to its parent context."""


class RecordValidationError(DataManagerError):
    """A pending record failed validation while saving."""
    
    def __init__(self, entity: str, error: ValidationError):
        self.entity = entity
        self.error = error
        super().__init__(f"{entity}: {error}")


class FaultError(DataManagerError, AttributeError):
    """A fault's values could not be loaded from its context."""
