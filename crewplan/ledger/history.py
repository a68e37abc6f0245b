"""
Undo/redo over ledger operations.

`history` is oldest first, `future` is nearest first (top of stack last).
Undo applies the inverse of the newest history entry; redo re-applies the
newest future entry. The stacks only move after the apply succeeded.
"""
from typing import Callable, List, Optional

import structlog

from .operations import Create, Operation

logger = structlog.get_logger(__name__)

# Applies one operation against the store and returns the resulting item, if any
Applier = Callable[[Operation], Optional[dict]]


class History:
    def __init__(self):
        self.history: List[Operation] = []
        self.future: List[Operation] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    def record(self, op: Operation) -> None:
        self.history.append(op)
        self.future.clear()

    def clear(self) -> None:
        self.history.clear()
        self.future.clear()

    def undo(self, apply: Applier) -> Optional[Operation]:
        if not self.history:
            return None
        op = self.history[-1]
        step = op.inverse()
        try:
            result = apply(step)
        except Exception as e:
            logger.warning("undo_failed", operation=type(op).__name__, item_id=op.item.get("id"), error=str(e))
            raise
        self.history.pop()
        self.future.append(op)
        self._rebind_created(step, result)
        return op

    def redo(self, apply: Applier) -> Optional[Operation]:
        if not self.future:
            return None
        op = self.future[-1]
        try:
            result = apply(op)
        except Exception as e:
            logger.warning("redo_failed", operation=type(op).__name__, item_id=op.item.get("id"), error=str(e))
            raise
        self.future.pop()
        self.history.append(op)
        self._rebind_created(op, result)
        return op

    def rebind(self, old_id: str, new_id: str) -> None:
        """Point every recorded operation at an item's new id."""
        if old_id == new_id:
            return
        self.history = [op.rebind(old_id, new_id) for op in self.history]
        self.future = [op.rebind(old_id, new_id) for op in self.future]

    def _rebind_created(self, applied: Operation, result: Optional[dict]) -> None:
        # A recreated item comes back from the store with a fresh id
        if isinstance(applied, Create) and result is not None:
            self.rebind(applied.item["id"], result["id"])
