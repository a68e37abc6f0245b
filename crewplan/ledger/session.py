"""
Client-side ledger session.

Holds the in-memory view of schedule items, keeps FREE_SLOT placeholders in
step with it, records undo/redo history and applies mutations optimistically:
the local view changes first and is rolled back if the gateway call fails.
"""
import uuid
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from ..errors import NotFound, ValidationError
from ..schemas.scheduling import EDITABLE_FIELDS, ScheduleItemCreate, ScheduleItemUpdate
from ..services import capacity
from .gateway import ScheduleGateway, create_payload, update_payload
from .history import History
from .operations import (
    Create,
    CreateRequest,
    Delete,
    DeleteRequest,
    Operation,
    Update,
    UpdateRequest,
    parse_mutation,
)
from .preferences import PreferenceStore, ViewPreferences, load_preferences, save_preferences

logger = structlog.get_logger(__name__)

LOCAL_PREFIX = "local_"


class LedgerSession:
    def __init__(
        self,
        gateway: ScheduleGateway,
        preferences: Optional[ViewPreferences] = None,
        preference_store: Optional[PreferenceStore] = None,
    ):
        self.gateway = gateway
        self.preference_store = preference_store
        if preferences is None:
            preferences = load_preferences(preference_store) if preference_store else ViewPreferences()
        self.preferences = preferences
        self.history = History()
        self._items: List[Dict] = []

    # ---- view ----

    @property
    def items(self) -> List[Dict]:
        return [dict(i) for i in self._items]

    def real_items(self) -> List[Dict]:
        return [dict(i) for i in self._items if not capacity.is_placeholder(i)]

    def placeholders(self) -> List[Dict]:
        return [dict(i) for i in capacity.placeholders(self._items)]

    def get(self, item_id: str) -> Dict:
        for item in self._items:
            if item.get("id") == item_id:
                return dict(item)
        raise NotFound("Schedule item not found")

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def load(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict]:
        items = self.gateway.list_items(start, end)
        self._items = capacity.reconcile_all(items)
        self.history.clear()
        return self.items

    # ---- mutations ----

    def apply(self, payload: Union[Dict[str, Any], CreateRequest, UpdateRequest, DeleteRequest]) -> Optional[Dict]:
        request = parse_mutation(payload)
        if isinstance(request, CreateRequest):
            return self.create(request.item)
        if isinstance(request, UpdateRequest):
            return self.update(request.id, request.changes)
        self.delete(request.id)
        return None

    def create(self, data: Union[ScheduleItemCreate, Dict[str, Any]]) -> Dict:
        if not isinstance(data, ScheduleItemCreate):
            data = parse_mutation({"kind": "create", "item": data}).item

        local = {k: v for k, v in data.model_dump().items() if k in EDITABLE_FIELDS}
        local = _local_item(local, f"{LOCAL_PREFIX}{uuid.uuid4().hex}")

        def remote() -> Dict:
            self._items = capacity.reconcile_mutation(self._items + [local], local)
            created = self.gateway.create_item(data)
            self._replace(local["id"], created)
            self._items = capacity.reconcile_mutation(self._items, created)
            return created

        created = self._optimistic("create", remote)
        self.history.record(Create(created))
        return dict(created)

    def update(self, item_id: str, changes: Union[ScheduleItemUpdate, Dict[str, Any]]) -> Dict:
        if not isinstance(changes, ScheduleItemUpdate):
            changes = parse_mutation({"kind": "update", "id": item_id, "changes": changes}).changes
        previous = self._real(item_id)

        def remote() -> Dict:
            patch = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if k in EDITABLE_FIELDS}
            self._replace(item_id, _local_item({**previous, **patch}, item_id))
            updated = self.gateway.update_item(item_id, changes)
            self._replace(item_id, updated)
            self._items = capacity.reconcile_mutation(self._items, updated, previous)
            return updated

        updated = self._optimistic("update", remote)
        self.history.record(Update(item=updated, previous=previous))
        return dict(updated)

    def delete(self, item_id: str) -> None:
        current = self._real(item_id)

        def remote() -> None:
            self._remove(item_id)
            self._items = capacity.reconcile_mutation(self._items, current)
            self.gateway.delete_item(item_id)

        self._optimistic("delete", remote)
        self.history.record(Delete(current))

    def reorder(self, item_id: str, before_id: Optional[str] = None) -> List[Dict]:
        """
        Move an item before another one in the local view (or to the end).
        Display order only: nothing is sent and history is untouched.
        """
        index = self._index(item_id)
        item = self._items.pop(index)
        if before_id is None:
            self._items.append(item)
            return self.items
        try:
            target = self._index(before_id)
        except NotFound:
            self._items.insert(index, item)
            raise
        self._items.insert(target, item)
        return self.items

    def undo(self) -> Optional[Operation]:
        return self.history.undo(self._apply_operation)

    def redo(self) -> Optional[Operation]:
        return self.history.redo(self._apply_operation)

    def update_preferences(self, **changes) -> ViewPreferences:
        self.preferences = self.preferences.model_copy(update=changes)
        if self.preference_store is not None:
            save_preferences(self.preference_store, self.preferences)
        return self.preferences

    # ---- internals ----

    def _apply_operation(self, op: Operation) -> Optional[Dict]:
        """Replay one history step against the store, skipping quota/approval defaults."""
        if isinstance(op, Create):
            def remote() -> Dict:
                created = self.gateway.restore_item(create_payload(op.item))
                self._items = capacity.reconcile_mutation(self._items + [created], created)
                return created
            return self._optimistic("recreate", remote)

        if isinstance(op, Delete):
            item_id = op.item["id"]
            current = self._real(item_id)

            def remote() -> None:
                self._remove(item_id)
                self._items = capacity.reconcile_mutation(self._items, current)
                self.gateway.delete_item(item_id)
            return self._optimistic("delete", remote)

        item_id = op.item["id"]
        current = self._real(item_id)

        def remote() -> Dict:
            updated = self.gateway.update_item(item_id, update_payload(op.item))
            self._replace(item_id, updated)
            self._items = capacity.reconcile_mutation(self._items, updated, current)
            return updated
        return self._optimistic("update", remote)

    def _optimistic(self, action: str, fn: Callable[[], Any]) -> Any:
        snapshot = list(self._items)
        try:
            return fn()
        except Exception as e:
            self._items = snapshot
            logger.warning("ledger_rollback", action=action, error=str(e), error_type=type(e).__name__)
            raise

    def _index(self, item_id: str) -> int:
        for i, item in enumerate(self._items):
            if item.get("id") == item_id:
                return i
        raise NotFound("Schedule item not found")

    def _real(self, item_id: str) -> Dict:
        item = self._items[self._index(item_id)]
        if capacity.is_placeholder(item):
            raise ValidationError("Free capacity placeholders cannot be edited or deleted")
        return dict(item)

    def _replace(self, item_id: str, item: Dict) -> None:
        self._items[self._index(item_id)] = item

    def _remove(self, item_id: str) -> None:
        del self._items[self._index(item_id)]


def _local_item(values: Dict, item_id: str) -> Dict:
    """A local stand-in shaped like a stored item until the store answers."""
    item = {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}
    item["id"] = item_id
    return item
