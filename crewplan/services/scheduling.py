"""
Schedule item CRUD for the calendar grid.

Every mutation is gated by role capability and subscription status, writes an
audit entry in the same transaction, then commits.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFound, ValidationError
from ..models.models import Crew, Depot, Employee, ScheduleItem, Vehicle
from ..schemas.scheduling import (
    EDITABLE_FIELDS,
    BookingStatus,
    ItemType,
    ScheduleItemCreate,
    ScheduleItemRestore,
    ScheduleItemUpdate,
    check_job_duration,
)
from .access import Capability, OrganizationContext, authorize_mutation
from .approval import initial_status
from .audit import compute_diff, create_audit_log

logger = structlog.get_logger(__name__)


def column_values(values: dict) -> dict:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}


def item_snapshot(item: ScheduleItem) -> dict:
    return {field: getattr(item, field) for field in EDITABLE_FIELDS + ("status",)}


def get_item(db: Session, organization_id: str, item_id: str) -> ScheduleItem:
    item = db.query(ScheduleItem).filter(
        ScheduleItem.id == item_id,
        ScheduleItem.organization_id == organization_id,
    ).first()
    if not item:
        raise NotFound("Schedule item not found")
    return item


def list_items(
    db: Session,
    organization_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[ScheduleItem]:
    if start and end and start > end:
        raise ValidationError("start must be on or before end")

    query = db.query(ScheduleItem).filter(ScheduleItem.organization_id == organization_id)
    if start:
        query = query.filter(ScheduleItem.date >= start)
    if end:
        query = query.filter(ScheduleItem.date <= end)
    return query.order_by(ScheduleItem.date.asc(), ScheduleItem.crew_id.asc()).all()


def _check_references(
    db: Session,
    organization_id: str,
    crew_id: Optional[str] = None,
    depot_id: Optional[str] = None,
    employee_id: Optional[str] = None,
    vehicle_id: Optional[str] = None,
) -> None:
    if crew_id is not None:
        crew = db.query(Crew).filter(Crew.id == crew_id, Crew.organization_id == organization_id).first()
        if not crew:
            raise ValidationError("Crew not found in this organization")
        if crew.archived_at is not None:
            raise ValidationError("Cannot schedule work on an archived crew")
    if depot_id is not None:
        depot = db.query(Depot).filter(Depot.id == depot_id, Depot.organization_id == organization_id).first()
        if not depot:
            raise ValidationError("Depot not found in this organization")
        if depot.archived_at is not None:
            raise ValidationError("Cannot schedule work at an archived depot")
    if employee_id is not None:
        if not db.query(Employee).filter(Employee.id == employee_id, Employee.organization_id == organization_id).first():
            raise ValidationError("Employee not found in this organization")
    if vehicle_id is not None:
        if not db.query(Vehicle).filter(Vehicle.id == vehicle_id, Vehicle.organization_id == organization_id).first():
            raise ValidationError("Vehicle not found in this organization")


def create_item(db: Session, ctx: OrganizationContext, data: ScheduleItemCreate, source: str = "api") -> ScheduleItem:
    authorize_mutation(ctx, Capability.create_bookings)
    _check_references(db, ctx.organization_id, data.crew_id, data.depot_id, data.employee_id, data.vehicle_id)

    status = initial_status(ctx.role.value, ctx.plan.value, data.status)
    values = column_values(data.model_dump(include=set(EDITABLE_FIELDS)))
    restoring = isinstance(data, ScheduleItemRestore)

    item = ScheduleItem(
        **values,
        organization_id=ctx.organization_id,
        requested_by=(data.requested_by if restoring else None) or ctx.user_id,
        status=status.value,
    )
    if restoring:
        item.approved_by = data.approved_by
        item.approved_at = data.approved_at
        item.rejection_reason = data.rejection_reason
    if status == BookingStatus.approved and item.approved_by is None:
        item.approved_by = ctx.user_id
        item.approved_at = datetime.now(timezone.utc)

    db.add(item)
    db.flush()

    context = {"crew_id": item.crew_id, "date": item.date}
    if restoring:
        context["restored"] = True
    create_audit_log(
        db,
        entity_type="schedule_item",
        entity_id=item.id,
        action="CREATE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source=source,
        changes_json={"after": item_snapshot(item)},
        context=context,
    )
    db.commit()
    db.refresh(item)

    logger.info(
        "schedule_item_restored" if restoring else "schedule_item_created",
        item_id=item.id,
        organization_id=ctx.organization_id,
        type=item.type,
        status=item.status,
        crew_id=item.crew_id,
        date=item.date.isoformat(),
    )
    return item


def update_item(
    db: Session,
    ctx: OrganizationContext,
    item_id: str,
    data: ScheduleItemUpdate,
    source: str = "api",
) -> ScheduleItem:
    authorize_mutation(ctx, Capability.create_bookings)
    item = get_item(db, ctx.organization_id, item_id)

    changes = column_values(data.model_dump(exclude_unset=True, include=set(EDITABLE_FIELDS)))
    # Required columns cannot be cleared
    for field in ("type", "date", "crew_id", "depot_id", "job_status"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be empty")

    _check_references(
        db,
        ctx.organization_id,
        crew_id=changes.get("crew_id") if changes.get("crew_id") != item.crew_id else None,
        depot_id=changes.get("depot_id"),
        employee_id=changes.get("employee_id"),
        vehicle_id=changes.get("vehicle_id"),
    )

    before = item_snapshot(item)
    for field, value in changes.items():
        setattr(item, field, value)

    if item.type == ItemType.job.value:
        if item.duration is None:
            item.duration = settings.default_job_duration
        try:
            check_job_duration(item.duration)
        except ValueError as e:
            db.rollback()
            raise ValidationError(str(e))

    after = item_snapshot(item)
    diff = compute_diff(before, after)
    if diff:
        create_audit_log(
            db,
            entity_type="schedule_item",
            entity_id=item.id,
            action="UPDATE",
            organization_id=ctx.organization_id,
            actor_id=ctx.user_id,
            actor_role=ctx.role.value,
            source=source,
            changes_json=diff,
            context={"crew_id": item.crew_id, "date": item.date},
        )
    db.commit()
    db.refresh(item)

    logger.info("schedule_item_updated", item_id=item.id, organization_id=ctx.organization_id, fields=sorted(diff))
    return item


def delete_item(db: Session, ctx: OrganizationContext, item_id: str, source: str = "api") -> bool:
    authorize_mutation(ctx, Capability.create_bookings)
    item = get_item(db, ctx.organization_id, item_id)

    create_audit_log(
        db,
        entity_type="schedule_item",
        entity_id=item.id,
        action="DELETE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source=source,
        changes_json={"before": item_snapshot(item)},
        context={"crew_id": item.crew_id, "date": item.date},
    )
    db.delete(item)
    db.commit()

    logger.info("schedule_item_deleted", item_id=item_id, organization_id=ctx.organization_id)
    return True
