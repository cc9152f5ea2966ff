"""
Undo Manager - grouped undo/redo stacks for one context.

Each action is a pair of callables (undo, redo). Actions registered while
a group is open are undone together; the context opens one group around
every task it runs on its queue, so one public operation is one undo step.
"""

from contextlib import contextmanager
from typing import Callable, Generator

Action = tuple[Callable[[], None], Callable[[], None]]


class UndoManager:
    """Undo/redo stacks. Not thread-safe: used only from its context's queue."""
    
    def __init__(self, levels: int = 0):
        self.levels = levels
        """Maximum number of undo steps kept. 0 keeps everything."""
        
        self._undo_stack: list[list[Action]] = []
        self._redo_stack: list[list[Action]] = []
        self._group: list[Action] | None = None
        self._depth = 0
        self._replaying = False
    
    @contextmanager
    def grouping(self) -> Generator[None, None, None]:
        """Collect every action registered inside into one undo step. Nests."""
        self._depth += 1
        if self._depth == 1:
            self._group = []
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                group, self._group = self._group, None
                if group:
                    self._push(group)
    
    def register(self, undo: Callable[[], None], redo: Callable[[], None]) -> None:
        """Record an action. Ignored while an undo or redo is replaying."""
        if self._replaying:
            return
        self._redo_stack.clear()
        if self._group is not None:
            self._group.append((undo, redo))
        else:
            self._push([(undo, redo)])
    
    def _push(self, group: list[Action]) -> None:
        self._undo_stack.append(group)
        if self.levels and len(self._undo_stack) > self.levels:
            del self._undo_stack[0]
    
    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)
    
    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)
    
    def undo(self) -> bool:
        """Revert the most recent step. Returns False when there is none."""
        if not self._undo_stack:
            return False
        group = self._undo_stack.pop()
        self._replaying = True
        try:
            for undo, _ in reversed(group):
                undo()
        finally:
            self._replaying = False
        self._redo_stack.append(group)
        return True
    
    def redo(self) -> bool:
        """Reapply the most recently undone step. Returns False when there is none."""
        if not self._redo_stack:
            return False
        group = self._redo_stack.pop()
        self._replaying = True
        try:
            for _, redo in group:
                redo()
        finally:
            self._replaying = False
        self._undo_stack.append(group)
        return True
    
    def remove_all_actions(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
