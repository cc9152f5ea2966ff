"""
Storage Layer - Entity registry, SQLite backing store, error log.

Only the root context touches the backing store; every other context
reaches it through its parent chain.
"""

from dataman.storage.registry import EntityRegistry
from dataman.storage.store import BackingStore
from dataman.storage.errorlog import ErrorLog

__all__ = [
    "EntityRegistry",
    "BackingStore",
    "ErrorLog",
]
