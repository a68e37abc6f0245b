"""
Schedule gateways used by the LedgerSession to reach the entity store.
"""
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..schemas.scheduling import (
    EDITABLE_FIELDS,
    ScheduleItemCreate,
    ScheduleItemResponse,
    ScheduleItemRestore,
    ScheduleItemUpdate,
)
from ..services import scheduling
from ..services.access import OrganizationContext


def normalize_item(obj) -> Dict:
    """ORM row or JSON payload -> plain ledger dict (enum values as strings, date as date)."""
    data = ScheduleItemResponse.model_validate(obj).model_dump()
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


def create_payload(item: Dict) -> ScheduleItemRestore:
    """Payload that recreates `item`, keeping its approval status and trail."""
    values = {k: item.get(k) for k in EDITABLE_FIELDS if k in item}
    return ScheduleItemRestore(
        **values,
        status=item.get("status"),
        requested_by=item.get("requested_by"),
        approved_by=item.get("approved_by"),
        approved_at=item.get("approved_at"),
        rejection_reason=item.get("rejection_reason"),
    )


def update_payload(item: Dict) -> ScheduleItemUpdate:
    """Payload that writes every editable field of `item` back."""
    return ScheduleItemUpdate(**{k: item.get(k) for k in EDITABLE_FIELDS if k in item})


class ScheduleGateway:
    def list_items(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict]:
        raise NotImplementedError

    def create_item(self, data: ScheduleItemCreate) -> Dict:
        raise NotImplementedError

    def restore_item(self, data: ScheduleItemRestore) -> Dict:
        """Recreate a deleted item. Gateways without a restore path fall back to a plain create."""
        return self.create_item(data)

    def update_item(self, item_id: str, data: ScheduleItemUpdate) -> Dict:
        raise NotImplementedError

    def delete_item(self, item_id: str) -> None:
        raise NotImplementedError


class ServiceGateway(ScheduleGateway):
    """In-process gateway calling the scheduling services with a fixed caller."""

    def __init__(self, db: Session, ctx: OrganizationContext):
        self.db = db
        self.ctx = ctx

    def list_items(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict]:
        return [normalize_item(i) for i in scheduling.list_items(self.db, self.ctx.organization_id, start, end)]

    def create_item(self, data: ScheduleItemCreate) -> Dict:
        return normalize_item(scheduling.create_item(self.db, self.ctx, data, source="ledger"))

    def update_item(self, item_id: str, data: ScheduleItemUpdate) -> Dict:
        return normalize_item(scheduling.update_item(self.db, self.ctx, item_id, data, source="ledger"))

    def delete_item(self, item_id: str) -> None:
        scheduling.delete_item(self.db, self.ctx, item_id, source="ledger")
