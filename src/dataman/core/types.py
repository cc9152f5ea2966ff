"""
Core type definitions for dataman.

- ObjectID: store-wide identity of a record, valid in every context
- ManagedRecord: base class for typed entity records
- ChangeSet: pending edits moved between contexts by save
- FetchRequest: a query against one entity
"""

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Mapping
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from dataman.core.errors import FaultError, ResolutionError
from dataman.core.predicate import Predicate, SortKey, build_predicate, build_sort

if TYPE_CHECKING:
    from dataman.context.managed import ManagedContext


URI_SCHEME = "dataman"


class _Missing:
    """Marker for a field with no value loaded."""
    
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


# ============================================
# Identity
# ============================================

class ObjectID(BaseModel):
    """Opaque, immutable identifier of a record."""
    
    model_config = ConfigDict(frozen=True)
    
    entity: str
    key: UUID = Field(default_factory=uuid4)
    
    @property
    def uri(self) -> str:
        return f"{URI_SCHEME}://{self.entity}/{self.key}"
    
    @classmethod
    def parse(cls, uri: str) -> "ObjectID":
        """Parse the `dataman://<Entity>/<uuid>` form back into an ObjectID."""
        prefix = f"{URI_SCHEME}://"
        if not uri.startswith(prefix):
            raise ResolutionError(f"Not an object URI: {uri}")
        entity, _, key = uri[len(prefix):].partition("/")
        try:
            return cls(entity=entity, key=UUID(key))
        except ValueError as e:
            raise ResolutionError(f"Not an object URI: {uri}") from e
    
    def __str__(self) -> str:
        return self.uri


# ============================================
# Records
# ============================================

class ManagedRecord(BaseModel):
    """
    Base class for entity records.
    
    Subclasses name their entity explicitly:
    
        class Person(ManagedRecord):
            __entity__ = "Person"
            name: str
            age: int | None = None
    
    A record owned by a context routes field assignment through that
    context's queue so the change is tracked (and undoable). A record
    returned as a fault carries only its identity; its values are loaded
    the first time a field is read or written.
    """
    
    model_config = ConfigDict(validate_assignment=True)
    
    __entity__: ClassVar[str] = ""
    
    _object_id: ObjectID | None = PrivateAttr(default=None)
    _context: Any = PrivateAttr(default=None)
    _fault: bool = PrivateAttr(default=False)
    _batch: Any = PrivateAttr(default=None)
    
    # ==========================================
    # Identity and state
    # ==========================================
    
    @property
    def object_id(self) -> ObjectID | None:
        """Identifier, assigned when the record is inserted into a context."""
        return self._object_id
    
    @property
    def context(self) -> "ManagedContext | None":
        """The context that owns this record's live state."""
        return self._context
    
    @property
    def is_fault(self) -> bool:
        return self._fault
    
    @property
    def is_inserted(self) -> bool:
        return self._context is not None and self._context.is_inserted(self)
    
    @property
    def is_updated(self) -> bool:
        return self._context is not None and self._context.is_updated(self)
    
    @property
    def is_deleted(self) -> bool:
        return self._context is not None and self._context.is_deleted(self)
    
    @property
    def has_changes(self) -> bool:
        """Pending insert, update, or delete in the owning context."""
        return self.is_inserted or self.is_updated or self.is_deleted
    
    # ==========================================
    # Attribute access
    # ==========================================
    
    def __getattr__(self, name: str) -> Any:
        if name in type(self).model_fields and self._fault:
            self._fire_fault()
            try:
                return self.__dict__[name]
            except KeyError:
                raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}") from None
        return super().__getattr__(name)
    
    def __setattr__(self, name: str, value: Any) -> None:
        if name not in type(self).model_fields or self._context is None:
            super().__setattr__(name, value)
            return
        self._context._set_field(self, name, value)
    
    def _apply_field(self, name: str, value: Any) -> None:
        """Validated assignment that bypasses change tracking."""
        super().__setattr__(name, value)
    
    def _fire_fault(self) -> None:
        if self._context is None:
            raise FaultError(f"{self._object_id} is a fault with no context to load it from")
        self._context._fulfill_fault(self)
    
    def _hydrate(self, values: Mapping[str, Any]) -> None:
        self.__dict__.clear()
        self.__dict__.update(values)
        self._fault = False
        self._batch = None
    
    def _turn_into_fault(self) -> None:
        self.__dict__.clear()
        self._fault = True
    
    def _field_values(self) -> dict[str, Any]:
        """Deep copy of the loaded field values."""
        return copy.deepcopy(dict(self.__dict__))


# ============================================
# Change sets
# ============================================

@dataclass
class ChangeSet:
    """
    Pending edits of one context.
    
    Inserted entries carry every field; updated entries carry only the
    fields that changed; deleted entries carry nothing but the identity.
    """
    
    inserted: dict[ObjectID, dict[str, Any]] = field(default_factory=dict)
    updated: dict[ObjectID, dict[str, Any]] = field(default_factory=dict)
    deleted: set[ObjectID] = field(default_factory=set)
    
    def is_empty(self) -> bool:
        return not (self.inserted or self.updated or self.deleted)
    
    def __len__(self) -> int:
        return len(self.inserted) + len(self.updated) + len(self.deleted)


# ============================================
# Fetch requests
# ============================================

class FetchRequest(BaseModel):
    """A query against one entity. Pagination fields are None when unset."""
    
    entity: str
    predicate: Predicate | None = None
    sort: list[SortKey] = Field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    batch_size: int | None = None
    returns_faults: bool = True
    returns_distinct: bool = False
    
    @classmethod
    def build(
        cls,
        entity: str,
        filter: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        sort: Mapping[str, bool] | Iterable[tuple[str, bool]] | None = None,
        batch: int = 0,
        limit: int = 0,
        offset: int = 0,
        fault: bool = True,
        distinct: bool = False,
    ) -> "FetchRequest":
        """Build a request from fetch arguments. Only positive pagination values apply."""
        return cls(
            entity=entity,
            predicate=build_predicate(filter),
            sort=build_sort(sort),
            limit=limit if limit > 0 else None,
            offset=offset if offset > 0 else None,
            batch_size=batch if batch > 0 else None,
            returns_faults=fault,
            returns_distinct=distinct,
        )
    
    @property
    def field_names(self) -> list[str]:
        """Every field the request refers to."""
        names = self.predicate.fields if self.predicate else []
        return names + [key.field for key in self.sort]
