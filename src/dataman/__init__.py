"""
dataman

Concurrency-safe access to a persistent object graph through nested
editing contexts. Each context is a single-writer queue holding pending
edits; saving moves them up the context chain into a SQLite store.
"""

__version__ = "0.1.0"

from dataman.core.config import settings
from dataman.core.types import ManagedRecord, ObjectID
from dataman.storage.registry import EntityRegistry
from dataman.context.managed import ManagedContext
from dataman.context.manager import ContextManager, get_manager, main_context

__all__ = [
    "settings",
    "ManagedRecord",
    "ObjectID",
    "EntityRegistry",
    "ManagedContext",
    "ContextManager",
    "get_manager",
    "main_context",
]
