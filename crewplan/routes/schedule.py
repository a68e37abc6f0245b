from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_caller, require_capability_dep
from ..schemas.scheduling import (
    ScheduleItemCreate,
    ScheduleItemRestore,
    ScheduleItemUpdate,
    ScheduleItemResponse,
    PendingItemResponse,
    ApproveRequest,
    RejectRequest,
)
from ..services import approval, scheduling
from ..services.access import Capability, OrganizationContext, require_active_subscription

router = APIRouter(prefix="/schedule-items", tags=["schedule"])


@router.get("", response_model=List[ScheduleItemResponse])
def list_schedule_items(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    """Schedule items for the caller's organization, optionally within [start, end]"""
    return scheduling.list_items(db, ctx.organization_id, start, end)


@router.post("", response_model=ScheduleItemResponse, status_code=201)
def create_schedule_item(
    payload: ScheduleItemCreate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return scheduling.create_item(db, ctx, payload)


@router.post("/restore", response_model=ScheduleItemResponse, status_code=201)
def restore_schedule_item(
    payload: ScheduleItemRestore,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    """Recreate a deleted item with its recorded approval fields (undo of a delete)"""
    return scheduling.create_item(db, ctx, payload, source="ledger")


# Registered before /{item_id} so "pending" is not taken for an id
@router.get("/pending", response_model=List[PendingItemResponse])
def list_pending_items(
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(require_capability_dep(Capability.approve_bookings)),
):
    """Bookings waiting for review, with who requested them"""
    result = []
    for entry in approval.pending_items_for(db, ctx.organization_id):
        data = ScheduleItemResponse.model_validate(entry["item"]).model_dump()
        result.append(PendingItemResponse(**data, requested_by_user=entry["requested_by_user"]))
    return result


@router.patch("/{item_id}", response_model=ScheduleItemResponse)
def update_schedule_item(
    item_id: str,
    payload: ScheduleItemUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return scheduling.update_item(db, ctx, item_id, payload)


@router.delete("/{item_id}")
def delete_schedule_item(
    item_id: str,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    scheduling.delete_item(db, ctx, item_id)
    return {"ok": True}


@router.post("/{item_id}/approve", response_model=ScheduleItemResponse)
def approve_schedule_item(
    item_id: str,
    payload: Optional[ApproveRequest] = None,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(require_capability_dep(Capability.approve_bookings)),
):
    require_active_subscription(ctx)
    return approval.approve(
        db,
        ctx.organization_id,
        item_id,
        approver_id=ctx.user_id,
        approver_role=ctx.role.value,
        note=payload.note if payload else None,
    )


@router.post("/{item_id}/reject", response_model=ScheduleItemResponse)
def reject_schedule_item(
    item_id: str,
    payload: Optional[RejectRequest] = None,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(require_capability_dep(Capability.approve_bookings)),
):
    require_active_subscription(ctx)
    return approval.reject(
        db,
        ctx.organization_id,
        item_id,
        approver_id=ctx.user_id,
        reason=payload.reason if payload else None,
        approver_role=ctx.role.value,
    )
