"""
Context Manager - owns the root context and the store connection.

The store is opened once, lazily, on first use. Opening may fail (bad
location, schema that can't be migrated): the failure goes to the error
log and the manager carries on with a root context that has no store, so
fetches only see in-memory records and saves fail softly.

    manager = get_manager()
    context = manager.main_context
    person = context.insert(Person, {"name": "Ada"})
    context.save()
"""

import threading
from dataclasses import dataclass

from dataman.context.managed import ManagedContext
from dataman.core.config import Settings, get_logger, settings as default_settings
from dataman.core.errors import ResolutionError, StoreError
from dataman.storage.errorlog import ErrorLog
from dataman.storage.registry import EntityRegistry
from dataman.storage.store import BackingStore

logger = get_logger("context.manager")


@dataclass
class StoreState:
    """Outcome of opening the store: a store, or the error that prevented it."""
    
    registry: EntityRegistry
    store: BackingStore | None = None
    error: Exception | None = None
    
    @property
    def is_available(self) -> bool:
        return self.store is not None
    
    @classmethod
    def open(cls, settings: Settings, registry: EntityRegistry, error_log: ErrorLog) -> "StoreState":
        """Open the configured store. Never raises; failures are logged under `init`."""
        try:
            registry = EntityRegistry.from_schema_files(settings.schema_files, base=registry)
        except ResolutionError as e:
            error_log.error("init", e)
            return cls(registry=registry, error=e)
        
        try:
            settings.ensure_directories()
            store = BackingStore.open(
                settings.store_path,
                registry,
                migrate_automatically=settings.migrate_automatically,
                infer_mapping_automatically=settings.infer_mapping_automatically,
            )
        except (StoreError, ResolutionError, OSError) as e:
            error_log.error("init", e)
            return cls(registry=registry, error=e)
        
        return cls(registry=registry, store=store)


class ContextManager:
    """
    Facade over one store and its context tree.

    `root` lives as long as the manager. `main_context` hands out a new
    child of the root on every access, meant as a short-lived editing
    session.
    """
    
    def __init__(
        self,
        settings: Settings | None = None,
        registry: EntityRegistry | None = None,
        error_log: ErrorLog | None = None,
    ):
        self.settings = settings or default_settings
        self.registry = registry or EntityRegistry()
        self.error_log = error_log or ErrorLog.from_settings(self.settings)
        
        self._lock = threading.Lock()
        self._state: StoreState | None = None
        self._root: ManagedContext | None = None
    
    @property
    def state(self) -> StoreState:
        """The store state, opening the store on first access."""
        with self._lock:
            if self._state is None:
                self._state = StoreState.open(self.settings, self.registry, self.error_log)
            return self._state
    
    @property
    def root(self) -> ManagedContext:
        state = self.state
        with self._lock:
            if self._root is None:
                self._root = ManagedContext(
                    store=state.store,
                    registry=state.registry,
                    error_log=self.error_log,
                    name="root",
                )
                logger.info(f"Root context ready (store {'available' if state.is_available else 'unavailable'})")
            return self._root
    
    @property
    def main_context(self) -> ManagedContext:
        """A new context parented to the root. Not cached."""
        return ManagedContext(parent=self.root, name="main")
    
    def new_context(self, parent: ManagedContext | None = None) -> ManagedContext:
        """A new context under `parent`, or under the root."""
        return ManagedContext(parent=parent or self.root)
    
    def close(self) -> None:
        """Let queued root work finish, then release the root and the error log."""
        with self._lock:
            root, self._root = self._root, None
            self._state = None
        if root is not None:
            root.shutdown(wait=True)
        self.error_log.close()


# ============================================
# Process-wide manager
# ============================================

_manager: ContextManager | None = None
_manager_lock = threading.Lock()


def get_manager() -> ContextManager:
    """Get the process-wide context manager."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = ContextManager()
        return _manager


def main_context() -> ManagedContext:
    """A fresh main context of the process-wide manager."""
    return get_manager().main_context
