"""Tests for the undo manager."""

from dataman.context.undo import UndoManager


class Counter:
    def __init__(self):
        self.value = 0
    
    def add(self, manager: UndoManager, amount: int) -> None:
        self.value += amount
        manager.register(lambda: self._set(self.value - amount), lambda: self._set(self.value + amount))
    
    def _set(self, value: int) -> None:
        self.value = value


class TestUndoManager:
    """Tests for grouped undo and redo."""
    
    def test_undo_and_redo(self):
        manager = UndoManager()
        counter = Counter()
        counter.add(manager, 5)
        
        assert manager.undo()
        assert counter.value == 0
        assert manager.redo()
        assert counter.value == 5
    
    def test_nothing_to_undo(self):
        manager = UndoManager()
        
        assert not manager.can_undo
        assert not manager.undo()
        assert not manager.redo()
    
    def test_grouping(self):
        """Actions registered inside one group undo as one step."""
        manager = UndoManager()
        counter = Counter()
        with manager.grouping():
            counter.add(manager, 1)
            with manager.grouping():
                counter.add(manager, 2)
        counter.add(manager, 4)
        
        manager.undo()
        assert counter.value == 3
        manager.undo()
        assert counter.value == 0
        assert not manager.can_undo
    
    def test_empty_group_is_not_a_step(self):
        manager = UndoManager()
        with manager.grouping():
            pass
        
        assert not manager.can_undo
    
    def test_new_action_clears_redo(self):
        manager = UndoManager()
        counter = Counter()
        counter.add(manager, 1)
        manager.undo()
        
        counter.add(manager, 2)
        
        assert not manager.can_redo
    
    def test_replay_does_not_register(self):
        """Undo actions that would register new actions are ignored."""
        manager = UndoManager()
        counter = Counter()
        manager.register(lambda: counter.add(manager, -1), lambda: counter.add(manager, 1))
        
        manager.undo()
        
        assert counter.value == -1
        assert not manager.can_undo
        assert manager.can_redo
    
    def test_levels(self):
        manager = UndoManager(levels=2)
        counter = Counter()
        for _ in range(3):
            counter.add(manager, 1)
        
        assert manager.undo() and manager.undo()
        assert not manager.undo()
        assert counter.value == 1
    
    def test_remove_all_actions(self):
        manager = UndoManager()
        counter = Counter()
        counter.add(manager, 1)
        counter.add(manager, 1)
        manager.undo()
        
        manager.remove_all_actions()
        
        assert not manager.can_undo
        assert not manager.can_redo
