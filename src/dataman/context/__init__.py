"""
Contexts - queue-confined editing sessions and the manager that owns them.
"""

from dataman.context.managed import ManagedContext
from dataman.context.manager import ContextManager, StoreState, get_manager, main_context
from dataman.context.undo import UndoManager

__all__ = [
    "ManagedContext",
    "ContextManager",
    "StoreState",
    "UndoManager",
    "get_manager",
    "main_context",
]
