"""
Managed Context - a serialized editing session over the object graph.

Every context owns a single-worker queue. All reads and writes of its
pending change set run on that queue, so at most one unit of work touches
a context at a time while sibling, parent, and child contexts run
independently.

A context sees its own pending edits layered over its parent's view,
which in turn is layered over the parent's parent, down to the backing
store at the root. `save()` moves pending edits one level up per hop,
each hop dispatched onto the next context's queue, until the root
persists them to the store.

Reads (`fetch`, `assign`, `insert`) block until the queue runs them.
Writes and lifecycle operations (`save`, `delete`, `rollback`, ...) are
queued and return a Future; an optional completion callback fires when
they finish.

Lock order: a context only ever waits on its ancestors' queues, never on
its descendants'.
"""

import copy
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from itertools import count
from typing import Any, Callable, Iterable, Mapping, TypeVar

from pydantic import ValidationError

from dataman.context.undo import UndoManager
from dataman.core.config import get_logger
from dataman.core.errors import (
    FaultError,
    MergeError,
    RecordValidationError,
    ResolutionError,
    StoreError,
)
from dataman.core.predicate import Predicate, SortKey
from dataman.core.types import MISSING, ChangeSet, FetchRequest, ManagedRecord, ObjectID
from dataman.storage.errorlog import ErrorLog
from dataman.storage.registry import EntityRegistry
from dataman.storage.store import BackingStore

logger = get_logger("context.managed")

R = TypeVar("R")
T = TypeVar("T", bound=ManagedRecord)

Completion = Callable[[], None]
SaveCompletion = Callable[[Exception | None], None]
EntityRef = type[ManagedRecord] | str
Filter = Mapping[str, Any] | Iterable[tuple[str, Any]]
Sort = Mapping[str, bool] | Iterable[tuple[str, bool]]

_context_numbers = count(1)


class ManagedContext:
    """
    A queue-confined editing session.

    A root context (no parent) is the only one connected to the backing
    store. Create children with `sub_manager`; a child holds a reference
    to its parent, not the other way round.
    """
    
    def __init__(
        self,
        parent: "ManagedContext | None" = None,
        *,
        store: BackingStore | None = None,
        registry: EntityRegistry | None = None,
        error_log: ErrorLog | None = None,
        name: str | None = None,
    ):
        if parent is None and registry is None:
            raise ValueError("A root context needs an entity registry")
        self.parent = parent
        self.registry = registry or parent.registry
        self.error_log = error_log or (parent.error_log if parent else ErrorLog())
        self.name = name or f"context-{next(_context_numbers)}"
        self.undo_manager = UndoManager()
        
        self._store = store if parent is None else None
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"dataman.{self.name}",
        )
        weakref.finalize(self, self._executor.shutdown, wait=False)
        self._worker: threading.Thread | None = None
        
        self._registered: dict[ObjectID, ManagedRecord] = {}
        self._snapshots: dict[ObjectID, dict[str, Any]] = {}
        self._changed_keys: dict[ObjectID, set[str]] = {}
        self._inserted: dict[ObjectID, ManagedRecord] = {}
        self._updated: dict[ObjectID, ManagedRecord] = {}
        self._deleted: dict[ObjectID, ManagedRecord] = {}
    
    def __repr__(self) -> str:
        parent = self.parent.name if self.parent else None
        return f"<ManagedContext {self.name} parent={parent}>"
    
    @property
    def is_root(self) -> bool:
        return self.parent is None
    
    @property
    def store(self) -> BackingStore | None:
        """The backing store at the root of this context's chain."""
        context = self
        while context.parent is not None:
            context = context.parent
        return context._store
    
    @property
    def sub_manager(self) -> "ManagedContext":
        """A new child context with its own queue."""
        return ManagedContext(parent=self)
    
    # ==========================================
    # Queue primitives
    # ==========================================
    
    def _perform(self, block: Callable[[], R]) -> R:
        self._worker = threading.current_thread()
        with self.undo_manager.grouping():
            return block()
    
    def sync(self, block: Callable[[], R]) -> R:
        """
        Run `block` on this context's queue and wait for its result.

        Called from the queue itself, the block runs inline. Exceptions
        raised by the block propagate to the caller.
        """
        if threading.current_thread() is self._worker:
            return block()
        return self._executor.submit(self._perform, block).result()
    
    def submit(self, block: Callable[[], R]) -> "Future[R]":
        """Queue `block` on this context and return immediately."""
        return self._executor.submit(self._perform, block)
    
    def shutdown(self, wait: bool = True) -> None:
        """Stop the queue once queued work has run."""
        self._executor.shutdown(wait=wait)
    
    def _lifecycle(self, operation: str, block: Callable[[], None], complete: Completion | None) -> "Future[None]":
        """Queue a lifecycle step. Errors are logged, the completion always fires."""
        def task() -> None:
            try:
                block()
            except Exception as e:
                self.error_log.error(operation, e)
            if complete is not None:
                complete()
        return self.submit(task)
    
    # ==========================================
    # Record bookkeeping (queue only)
    # ==========================================
    
    def _register(self, record: ManagedRecord, oid: ObjectID, values: dict[str, Any] | None) -> None:
        record._object_id = oid
        record._context = self
        self._registered[oid] = record
        if values is not None:
            self._snapshots[oid] = copy.deepcopy(values)
    
    def _forget(self, oid: ObjectID) -> None:
        record = self._registered.pop(oid, None)
        self._snapshots.pop(oid, None)
        self._changed_keys.pop(oid, None)
        if record is not None:
            record._context = None
    
    def _materialize(
        self,
        record_class: type[ManagedRecord],
        oid: ObjectID,
        values: dict[str, Any],
        fault: bool,
    ) -> ManagedRecord:
        """This context's instance for `oid`, created or refreshed from `values`."""
        record = self._registered.get(oid)
        if record is not None:
            clean = oid not in self._inserted and oid not in self._updated and oid not in self._deleted
            if clean and not (record.is_fault and fault):
                record._hydrate(copy.deepcopy(values))
                self._snapshots[oid] = copy.deepcopy(values)
            return record
        
        record = record_class.model_construct()
        if fault:
            record._turn_into_fault()
            self._register(record, oid, None)
        else:
            record._hydrate(copy.deepcopy(values))
            self._register(record, oid, values)
        return record
    
    def _resolve(self, oid: ObjectID) -> ManagedRecord:
        """This context's instance for `oid`. Raises ResolutionError if it doesn't exist."""
        record = self._registered.get(oid)
        if record is not None:
            return record
        values = self._parent_values([oid]).get(oid)
        if values is None:
            raise ResolutionError(f"No object with id {oid}")
        return self._materialize(self.registry.resolve(oid.entity), oid, values, fault=False)
    
    def _own(self, record: ManagedRecord) -> ManagedRecord:
        """The instance of `record` that belongs to this context."""
        if record.context is self:
            return record
        if record.object_id is None:
            raise ResolutionError(f"{type(record).__name__} record has no object id")
        return self._resolve(record.object_id)
    
    def _settle(self, oid: ObjectID) -> None:
        """Drop an update whose changed fields are all back to their committed values."""
        record = self._updated.get(oid)
        snapshot = self._snapshots.get(oid)
        if record is None or snapshot is None:
            return
        keys = self._changed_keys.get(oid, set())
        if all(record.__dict__.get(key, MISSING) == snapshot.get(key, MISSING) for key in keys):
            self._updated.pop(oid, None)
            self._changed_keys.pop(oid, None)
    
    # ==========================================
    # Field changes and faults
    # ==========================================
    
    def _set_field(self, record: ManagedRecord, name: str, value: Any) -> None:
        """Assign a field of a record owned by this context, on this queue."""
        def block() -> None:
            if record.is_fault:
                self._fulfill_fault(record)
            old = record.__dict__.get(name, MISSING)
            record._apply_field(name, value)
            new = record.__dict__.get(name, MISSING)
            self._note_change(record, name)
            self.undo_manager.register(
                lambda: self._restore_field(record, name, old),
                lambda: self._restore_field(record, name, new),
            )
        self.sync(block)
    
    def _note_change(self, record: ManagedRecord, name: str) -> None:
        oid = record.object_id
        if oid is None or oid in self._inserted or record.context is not self:
            return
        self._updated[oid] = record
        self._changed_keys.setdefault(oid, set()).add(name)
        self._settle(oid)
    
    def _restore_field(self, record: ManagedRecord, name: str, value: Any) -> None:
        if value is MISSING:
            record.__dict__.pop(name, None)
        else:
            record._apply_field(name, value)
        self._note_change(record, name)
    
    def _fulfill_fault(self, record: ManagedRecord) -> None:
        """Load a fault's values (and its fetch batch's) from the parent view."""
        def block() -> None:
            if not record.is_fault:
                return
            batch = [member for member in (record._batch or [record]) if member.is_fault and member.context is self]
            if not any(member is record for member in batch):
                batch.append(record)
            found = self._parent_values([member.object_id for member in batch])
            for member in batch:
                values = found.get(member.object_id)
                if values is not None:
                    member._hydrate(copy.deepcopy(values))
                    self._snapshots[member.object_id] = copy.deepcopy(values)
            if record.is_fault:
                raise FaultError(f"Cannot fulfill fault for {record.object_id}: object no longer exists")
        self.sync(block)
    
    # ==========================================
    # Views (queue only)
    # ==========================================
    
    def _parent_values(self, oids: list[ObjectID]) -> dict[ObjectID, dict[str, Any]]:
        """Current values of `oids` as the parent (or the store) sees them."""
        if self.parent is None:
            return self._store.load_objects(oids) if self._store else {}
        parent = self.parent
        return parent.sync(lambda: parent._values_for(oids))
    
    def _values_for(self, oids: list[ObjectID]) -> dict[ObjectID, dict[str, Any]]:
        """Current values of `oids` as this context sees them."""
        result: dict[ObjectID, dict[str, Any]] = {}
        missing: list[ObjectID] = []
        for oid in oids:
            if oid in self._deleted:
                continue
            record = self._inserted.get(oid) or self._updated.get(oid)
            if record is not None:
                result[oid] = record._field_values()
            else:
                missing.append(oid)
        if missing:
            result.update(self._parent_values(missing))
        return result
    
    def _matching(self, entity: str, predicate: Predicate | None) -> dict[ObjectID, dict[str, Any]]:
        """Every record of `entity` this context sees that matches `predicate`."""
        if self.parent is None:
            base = self._store.load(entity, predicate) if self._store else {}
        else:
            parent = self.parent
            base = parent.sync(lambda: parent._matching(entity, predicate))
        
        def matches(values: dict[str, Any]) -> bool:
            return predicate is None or predicate.matches(values)
        
        result: dict[ObjectID, dict[str, Any]] = {}
        for oid, values in base.items():
            if oid in self._deleted:
                continue
            if oid in self._updated:
                values = self._updated[oid]._field_values()
                if not matches(values):
                    continue
            result[oid] = values
        
        for pending in (self._updated, self._inserted):
            for oid, record in pending.items():
                if oid.entity != entity or oid in result or oid in self._deleted:
                    continue
                values = record._field_values()
                if matches(values):
                    result[oid] = values
        return result
    
    def _execute(self, record_class: type[ManagedRecord], request: FetchRequest) -> list[ManagedRecord]:
        rows = list(self._matching(request.entity, request.predicate).items())
        
        for key in reversed(request.sort):
            rows.sort(key=_sort_key(key), reverse=not key.ascending)
        
        if request.returns_distinct:
            seen: set[str] = set()
            unique = []
            for oid, values in rows:
                marker = repr(sorted(values.items()))
                if marker not in seen:
                    seen.add(marker)
                    unique.append((oid, values))
            rows = unique
        
        if request.offset:
            rows = rows[request.offset:]
        if request.limit:
            rows = rows[:request.limit]
        
        records = [self._materialize(record_class, oid, values, request.returns_faults) for oid, values in rows]
        
        if request.batch_size:
            faults = [record for record in records if record.is_fault]
            for start in range(0, len(faults), request.batch_size):
                batch = faults[start:start + request.batch_size]
                for record in batch:
                    record._batch = batch
        return records
    
    # ==========================================
    # Reads
    # ==========================================
    
    def insert(self, entity: type[T] | str, fields: Mapping[str, Any] | None = None) -> T | None:
        """
        Create a record of `entity` with initial `fields`, pending insert.

        Returns None (and logs) when the entity or a field can't be resolved
        or a value fails validation.
        """
        def block() -> ManagedRecord | None:
            try:
                record_class = self.registry.resolve(entity)
                self.registry.check_fields(record_class, (fields or {}).keys())
                record = record_class.model_construct()
                for name, value in (fields or {}).items():
                    record._apply_field(name, value)
                oid = ObjectID(entity=self.registry.entity_name(record_class))
            except (ResolutionError, ValidationError) as e:
                self.error_log.error("insert", e)
                return None
            
            self._register(record, oid, None)
            self._inserted[oid] = record
            self.undo_manager.register(lambda: self._uninsert(record), lambda: self._reinsert(record))
            return record
        return self.sync(block)
    
    def _uninsert(self, record: ManagedRecord) -> None:
        oid = record.object_id
        self._inserted.pop(oid, None)
        self._forget(oid)
    
    def _reinsert(self, record: ManagedRecord) -> None:
        self._register(record, record.object_id, None)
        self._inserted[record.object_id] = record
    
    def assign(
        self,
        target: ObjectID | ManagedRecord | type[T] | str,
        fields: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Resolve a record in this context, or find-or-create one.

        - `assign(object_id)` / `assign(record)`: this context's instance of
          that record, or None (logged) if it can't be found.
        - `assign(Entity, fields)`: records of Entity exactly matching
          `fields`; if there are none (or `fields` is empty), one record is
          inserted with `fields` and returned in a single-element list.
        """
        if isinstance(target, (ObjectID, ManagedRecord)):
            return self._assign_object(target)
        
        def block() -> list[ManagedRecord]:
            result = self.fetch(target, fields) if fields else []
            if not result:
                inserted = self.insert(target, fields)
                if inserted is not None:
                    result = [inserted]
            return result
        return self.sync(block)
    
    def _assign_object(self, target: ObjectID | ManagedRecord) -> ManagedRecord | None:
        oid = target.object_id if isinstance(target, ManagedRecord) else target
        
        def block() -> ManagedRecord | None:
            if oid is None:
                raise ResolutionError(f"{type(target).__name__} record has no object id")
            return self._resolve(oid)
        
        try:
            return self.sync(block)
        except (ResolutionError, StoreError) as e:
            self.error_log.error("assign", e)
            return None
    
    def fetch(
        self,
        entity: type[T] | str,
        filter: Filter | None = None,
        sort: Sort | None = None,
        batch: int = 0,
        limit: int = 0,
        offset: int = 0,
        fault: bool = True,
        distinct: bool = False,
    ) -> list[T]:
        """
        Records of `entity` in this context's view.

        `filter` keys may carry an operator (`"age >="`); None values match
        null fields. `sort` maps fields to ascending flags. Both apply in the
        order given. Pagination values of 0 are ignored. Returns [] (and logs)
        on any resolution or store error, or when sort values can't be ordered.
        """
        def block() -> list[ManagedRecord]:
            try:
                record_class = self.registry.resolve(entity)
                request = FetchRequest.build(
                    self.registry.entity_name(record_class),
                    filter=filter,
                    sort=sort,
                    batch=batch,
                    limit=limit,
                    offset=offset,
                    fault=fault,
                    distinct=distinct,
                )
                self.registry.check_fields(record_class, request.field_names)
                return self._execute(record_class, request)
            except (ResolutionError, StoreError, ValidationError, TypeError) as e:
                self.error_log.error("fetch", e)
                return []
        return self.sync(block)
    
    def count(self, entity: type[T] | str, filter: Filter | None = None) -> int:
        """Number of records `fetch` would return for `filter`."""
        return len(self.fetch(entity, filter))
    
    # ==========================================
    # Pending state
    # ==========================================
    
    def is_inserted(self, record: ManagedRecord) -> bool:
        return self.sync(lambda: record.object_id in self._inserted)
    
    def is_updated(self, record: ManagedRecord) -> bool:
        return self.sync(lambda: record.object_id in self._updated)
    
    def is_deleted(self, record: ManagedRecord) -> bool:
        return self.sync(lambda: record.object_id in self._deleted)
    
    @property
    def has_changes(self) -> bool:
        return self.sync(lambda: bool(self._inserted or self._updated or self._deleted))
    
    @property
    def inserted_objects(self) -> list[ManagedRecord]:
        return self.sync(lambda: list(self._inserted.values()))
    
    @property
    def updated_objects(self) -> list[ManagedRecord]:
        return self.sync(lambda: list(self._updated.values()))
    
    @property
    def deleted_objects(self) -> list[ManagedRecord]:
        return self.sync(lambda: list(self._deleted.values()))
    
    @property
    def registered_objects(self) -> list[ManagedRecord]:
        return self.sync(lambda: list(self._registered.values()))
    
    # ==========================================
    # Writes
    # ==========================================
    
    def delete(self, record: ManagedRecord, complete: Completion | None = None) -> "Future[None]":
        """Mark `record` deleted. An unsaved insert is dropped outright."""
        def block() -> None:
            target = self._own(record)
            oid = target.object_id
            if oid in self._inserted:
                self._uninsert(target)
                self.undo_manager.register(lambda: self._reinsert(target), lambda: self._uninsert(target))
            elif oid not in self._deleted:
                self._deleted[oid] = target
                self.undo_manager.register(
                    lambda: self._deleted.pop(oid, None),
                    lambda: self._deleted.__setitem__(oid, target),
                )
        return self._lifecycle("delete", block, complete)
    
    def save(self, complete: SaveCompletion | None = None) -> "Future[Exception | None]":
        """
        Save pending changes all the way to the store.

        Each hop merges this context's changes into its parent, then queues
        the parent's hop; the root persists to the store. The returned future
        resolves to None on success or to the error that stopped the chain.
        `complete` receives the same value exactly once; without it, errors
        go to the error log. Use `commit` to move changes one level only.
        """
        future: Future = Future()
        self._save_hop(future, complete, recurse=True)
        return future
    
    def commit(self, complete: SaveCompletion | None = None) -> "Future[Exception | None]":
        """Save pending changes one level up only (into the store at the root)."""
        future: Future = Future()
        self._save_hop(future, complete, recurse=False)
        return future
    
    def _save_hop(self, future: Future, complete: SaveCompletion | None, recurse: bool) -> None:
        def task() -> None:
            try:
                self._push_changes()
            except Exception as e:
                self._finish_save(future, complete, e)
                return
            if recurse and self.parent is not None:
                self.parent._save_hop(future, complete, recurse)
            else:
                self._finish_save(future, complete, None)
        self.submit(task)
    
    def _finish_save(self, future: Future, complete: SaveCompletion | None, error: Exception | None) -> None:
        try:
            if complete is not None:
                complete(error)
            elif error is not None:
                self.error_log.error("save", error)
        finally:
            future.set_result(error)
    
    def _push_changes(self) -> None:
        changes = self._collect_changes()
        if changes.is_empty():
            return
        if self.parent is None:
            if self._store is None:
                raise StoreError("No backing store is available")
            self._store.persist(changes)
        else:
            parent = self.parent
            parent.sync(lambda: parent._merge(changes))
        self._did_save()
        logger.debug(f"{self.name}: saved {len(changes)} changes")
    
    def _collect_changes(self) -> ChangeSet:
        changes = ChangeSet()
        for oid, record in self._inserted.items():
            changes.inserted[oid] = self._validated(record)
        for oid, record in self._updated.items():
            if oid in self._deleted:
                continue
            values = self._validated(record)
            changes.updated[oid] = {key: values[key] for key in self._changed_keys.get(oid, ()) if key in values}
        changes.deleted.update(self._deleted)
        return changes
    
    def _validated(self, record: ManagedRecord) -> dict[str, Any]:
        try:
            return dict(type(record).model_validate(record._field_values()))
        except ValidationError as e:
            raise RecordValidationError(record.object_id.entity, e) from e
    
    def _merge(self, changes: ChangeSet) -> None:
        """
        Take a child's saved changes into this context's pending set.

        Every target is resolved before anything is applied, so a change set
        that doesn't fit leaves this context untouched.
        """
        try:
            inserted_classes = {oid: self.registry.resolve(oid.entity) for oid in changes.inserted}
        except ResolutionError as e:
            raise MergeError(f"Cannot merge insert: {e}") from e
        
        updated: dict[ObjectID, ManagedRecord] = {}
        for oid in changes.updated:
            try:
                record = self._resolve(oid)
                if record.is_fault:
                    self._fulfill_fault(record)
            except (ResolutionError, FaultError) as e:
                raise MergeError(f"Cannot merge update of {oid}: {e}") from e
            updated[oid] = record
        
        deleted: dict[ObjectID, ManagedRecord] = {}
        for oid in changes.deleted:
            if oid in self._inserted:
                continue
            try:
                deleted[oid] = self._resolve(oid)
            except ResolutionError as e:
                raise MergeError(f"Cannot merge delete of {oid}: {e}") from e
        
        for oid, values in changes.inserted.items():
            record = self._registered.get(oid)
            if record is None:
                record = inserted_classes[oid].model_construct()
                self._register(record, oid, None)
            record._hydrate(copy.deepcopy(values))
            self._inserted[oid] = record
        
        for oid, record in updated.items():
            values = changes.updated[oid]
            record.__dict__.update(copy.deepcopy(values))
            if oid not in self._inserted:
                self._updated[oid] = record
                self._changed_keys.setdefault(oid, set()).update(values)
                self._settle(oid)
        
        for oid in changes.deleted:
            if oid in deleted:
                self._deleted[oid] = deleted[oid]
            elif oid in self._inserted:
                self._uninsert(self._inserted[oid])
    
    def _did_save(self) -> None:
        for oid, record in self._inserted.items():
            self._snapshots[oid] = record._field_values()
        for oid, record in self._updated.items():
            self._snapshots[oid] = record._field_values()
        for oid in list(self._deleted):
            self._forget(oid)
        self._inserted.clear()
        self._updated.clear()
        self._deleted.clear()
        self._changed_keys.clear()
    
    # ==========================================
    # Lifecycle
    # ==========================================
    
    def rollback(self, complete: Completion | None = None) -> "Future[None]":
        """Discard every pending change in this context."""
        def block() -> None:
            for oid in list(self._inserted):
                self._forget(oid)
            for oid, record in self._updated.items():
                snapshot = self._snapshots.get(oid)
                if snapshot is not None:
                    record._hydrate(copy.deepcopy(snapshot))
                else:
                    record._turn_into_fault()
            self._inserted.clear()
            self._updated.clear()
            self._deleted.clear()
            self._changed_keys.clear()
            self.undo_manager.remove_all_actions()
        return self._lifecycle("rollback", block, complete)
    
    def reset(self, complete: Completion | None = None) -> "Future[None]":
        """Forget every record and pending change. Records already handed out are detached."""
        def block() -> None:
            for oid in list(self._registered):
                self._forget(oid)
            self._inserted.clear()
            self._updated.clear()
            self._deleted.clear()
            self._changed_keys.clear()
            self.undo_manager.remove_all_actions()
        return self._lifecycle("reset", block, complete)
    
    def refresh(
        self,
        record: ManagedRecord | None = None,
        complete: Completion | None = None,
        merge: bool = True,
    ) -> "Future[None]":
        """
        Pick up the parent's current values for one record, or all of them.

        Unchanged records turn back into faults. Changed records take the
        parent's values with their local changes re-applied on top
        (`merge=True`) or discarded (`merge=False`). Pending inserts are
        left alone.
        """
        def block() -> None:
            targets = [self._own(record)] if record is not None else list(self._registered.values())
            targets = [target for target in targets if target.object_id not in self._inserted]
            changed = [target for target in targets if target.object_id in self._updated]
            
            for target in targets:
                if target.object_id not in self._updated:
                    target._turn_into_fault()
                    self._snapshots.pop(target.object_id, None)
            
            fresh = self._parent_values([target.object_id for target in changed]) if changed else {}
            for target in changed:
                oid = target.object_id
                values = fresh.get(oid)
                if values is None:
                    continue
                keys = self._changed_keys.get(oid, set())
                local = {key: target.__dict__[key] for key in keys if key in target.__dict__}
                target._hydrate(copy.deepcopy(values))
                self._snapshots[oid] = copy.deepcopy(values)
                if merge:
                    target.__dict__.update(local)
                    self._settle(oid)
                else:
                    self._updated.pop(oid, None)
                    self._changed_keys.pop(oid, None)
        return self._lifecycle("refresh", block, complete)
    
    def undo(self, complete: Completion | None = None) -> "Future[None]":
        """Revert the most recent undo step of this context."""
        return self._lifecycle("undo", self.undo_manager.undo, complete)
    
    def redo(self, complete: Completion | None = None) -> "Future[None]":
        """Reapply the most recently undone step of this context."""
        return self._lifecycle("redo", self.undo_manager.redo, complete)


def _sort_key(key: SortKey) -> Callable[[tuple[ObjectID, dict[str, Any]]], Any]:
    """Sort key putting None first when ascending."""
    def extract(row: tuple[ObjectID, dict[str, Any]]) -> Any:
        value = row[1].get(key.field)
        return (False, 0) if value is None else (True, value)
    return extract


__all__ = ["ManagedContext", "Completion", "SaveCompletion"]
