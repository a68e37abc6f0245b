"""
Depot, crew, employee and vehicle management.

Creates are quota-checked against the organization's plan. Depots and crews
are archived instead of deleted: archiving drops the schedule items from today
on and stamps archived_at in one transaction.
"""
from datetime import date, datetime, timezone
from typing import List, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import NotFound, ValidationError
from ..models.models import Crew, Depot, Employee, EmployeeAbsence, ScheduleItem, Vehicle
from ..schemas.resources import ResourceKind
from .access import Capability, OrganizationContext, authorize_mutation
from .audit import create_audit_log
from .quota import ensure_can_create
from .scheduling import column_values

logger = structlog.get_logger(__name__)

RESOURCE_MODELS = {
    ResourceKind.depots: Depot,
    ResourceKind.crews: Crew,
    ResourceKind.employees: Employee,
    ResourceKind.vehicles: Vehicle,
}

_LABELS = {
    ResourceKind.depots: "Depot",
    ResourceKind.crews: "Crew",
    ResourceKind.employees: "Employee",
    ResourceKind.vehicles: "Vehicle",
}


def list_resources(db: Session, organization_id: str, kind: ResourceKind, include_archived: bool = False) -> list:
    kind = ResourceKind(kind)
    model = RESOURCE_MODELS[kind]
    query = db.query(model).filter(model.organization_id == organization_id)
    if kind in (ResourceKind.depots, ResourceKind.crews) and not include_archived:
        query = query.filter(model.archived_at.is_(None))
    return query.order_by(model.name.asc()).all()


def get_resource(db: Session, organization_id: str, kind: ResourceKind, resource_id: str):
    kind = ResourceKind(kind)
    model = RESOURCE_MODELS[kind]
    obj = db.query(model).filter(model.id == resource_id, model.organization_id == organization_id).first()
    if not obj:
        raise NotFound(f"{_LABELS[kind]} not found")
    return obj


def _check_depot(db: Session, organization_id: str, depot_id: Optional[str]) -> None:
    if depot_id is None:
        return
    depot = db.query(Depot).filter(Depot.id == depot_id, Depot.organization_id == organization_id).first()
    if not depot:
        raise ValidationError("Depot not found in this organization")
    if depot.archived_at is not None:
        raise ValidationError("Depot is archived")


def create_resource(db: Session, ctx: OrganizationContext, kind: ResourceKind, data: BaseModel):
    kind = ResourceKind(kind)
    authorize_mutation(ctx, Capability.manage_resources)

    values = column_values(data.model_dump())
    _check_depot(db, ctx.organization_id, values.get("depot_id"))
    ensure_can_create(db, ctx.organization_id, ctx.plan.value, kind)

    obj = RESOURCE_MODELS[kind](**values, organization_id=ctx.organization_id)
    db.add(obj)
    db.commit()
    db.refresh(obj)

    logger.info("resource_created", kind=kind.value, resource_id=obj.id, organization_id=ctx.organization_id)
    return obj


def update_resource(db: Session, ctx: OrganizationContext, kind: ResourceKind, resource_id: str, data: BaseModel):
    kind = ResourceKind(kind)
    authorize_mutation(ctx, Capability.manage_resources)
    obj = get_resource(db, ctx.organization_id, kind, resource_id)

    changes = column_values(data.model_dump(exclude_unset=True))
    for field in ("name", "address", "vehicle_type"):
        if field in changes and (changes[field] is None or not str(changes[field]).strip()):
            raise ValidationError(f"{field} cannot be empty")
    if "depot_id" in changes:
        if changes["depot_id"] is None:
            raise ValidationError("depot_id cannot be empty")
        _check_depot(db, ctx.organization_id, changes["depot_id"])

    for field, value in changes.items():
        setattr(obj, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(obj)

    logger.info("resource_updated", kind=kind.value, resource_id=obj.id, fields=sorted(changes))
    return obj


def delete_resource(db: Session, ctx: OrganizationContext, kind: ResourceKind, resource_id: str) -> bool:
    """Delete an employee or vehicle. Depots and crews are archived instead."""
    kind = ResourceKind(kind)
    if kind == ResourceKind.depots:
        archive_depot(db, ctx, resource_id)
        return True
    if kind == ResourceKind.crews:
        archive_crew(db, ctx, resource_id)
        return True

    authorize_mutation(ctx, Capability.manage_resources)
    obj = get_resource(db, ctx.organization_id, kind, resource_id)

    with unit_of_work(db):
        if kind == ResourceKind.employees:
            db.query(EmployeeAbsence).filter(EmployeeAbsence.employee_id == obj.id).delete(synchronize_session=False)
            db.query(ScheduleItem).filter(ScheduleItem.employee_id == obj.id).update(
                {ScheduleItem.employee_id: None}, synchronize_session=False
            )
        elif kind == ResourceKind.vehicles:
            db.query(ScheduleItem).filter(ScheduleItem.vehicle_id == obj.id).update(
                {ScheduleItem.vehicle_id: None}, synchronize_session=False
            )
        db.delete(obj)

    logger.info("resource_deleted", kind=kind.value, resource_id=resource_id, organization_id=ctx.organization_id)
    return True


def archive_crew(db: Session, ctx: OrganizationContext, crew_id: str, today: Optional[date] = None) -> Crew:
    """
    Archive a crew and delete its schedule items dated today or later.

    Both changes commit together or not at all. Past items are kept.
    """
    authorize_mutation(ctx, Capability.manage_resources)
    crew = get_resource(db, ctx.organization_id, ResourceKind.crews, crew_id)
    if crew.archived_at is not None:
        return crew

    cutoff = today or date.today()
    with unit_of_work(db):
        removed = (
            db.query(ScheduleItem)
            .filter(ScheduleItem.crew_id == crew.id, ScheduleItem.date >= cutoff)
            .delete(synchronize_session=False)
        )
        crew.archived_at = datetime.now(timezone.utc)
        create_audit_log(
            db,
            entity_type="crew",
            entity_id=crew.id,
            action="ARCHIVE",
            organization_id=ctx.organization_id,
            actor_id=ctx.user_id,
            actor_role=ctx.role.value,
            source="api",
            context={"removed_items": removed, "cutoff": cutoff},
        )
    db.refresh(crew)

    logger.info("crew_archived", crew_id=crew.id, organization_id=ctx.organization_id, removed_items=removed)
    return crew


def restore_crew(db: Session, ctx: OrganizationContext, crew_id: str) -> Crew:
    authorize_mutation(ctx, Capability.manage_resources)
    crew = get_resource(db, ctx.organization_id, ResourceKind.crews, crew_id)
    if crew.archived_at is None:
        return crew

    depot = db.get(Depot, crew.depot_id)
    if depot is not None and depot.archived_at is not None:
        raise ValidationError("Restore the crew's depot first")

    # Restoring brings the crew back into the counted set
    ensure_can_create(db, ctx.organization_id, ctx.plan.value, ResourceKind.crews)

    crew.archived_at = None
    create_audit_log(
        db,
        entity_type="crew",
        entity_id=crew.id,
        action="RESTORE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
    )
    db.commit()
    db.refresh(crew)

    logger.info("crew_restored", crew_id=crew.id, organization_id=ctx.organization_id)
    return crew


def archive_depot(db: Session, ctx: OrganizationContext, depot_id: str, today: Optional[date] = None) -> Depot:
    """
    Archive a depot together with its active crews.

    Schedule items at the depot dated today or later are deleted; past items,
    employees and vehicles are kept. All of it commits together.
    """
    authorize_mutation(ctx, Capability.manage_resources)
    depot = get_resource(db, ctx.organization_id, ResourceKind.depots, depot_id)
    if depot.archived_at is not None:
        return depot

    cutoff = today or date.today()
    now = datetime.now(timezone.utc)
    with unit_of_work(db):
        crews = (
            db.query(Crew)
            .filter(Crew.depot_id == depot.id, Crew.archived_at.is_(None))
            .all()
        )
        removed = (
            db.query(ScheduleItem)
            .filter(ScheduleItem.depot_id == depot.id, ScheduleItem.date >= cutoff)
            .delete(synchronize_session=False)
        )
        for crew in crews:
            crew.archived_at = now
        depot.archived_at = now
        create_audit_log(
            db,
            entity_type="depot",
            entity_id=depot.id,
            action="ARCHIVE",
            organization_id=ctx.organization_id,
            actor_id=ctx.user_id,
            actor_role=ctx.role.value,
            source="api",
            context={"removed_items": removed, "archived_crews": [c.id for c in crews], "cutoff": cutoff},
        )
    db.refresh(depot)

    logger.info(
        "depot_archived",
        depot_id=depot.id,
        organization_id=ctx.organization_id,
        archived_crews=len(crews),
        removed_items=removed,
    )
    return depot


def restore_depot(db: Session, ctx: OrganizationContext, depot_id: str) -> Depot:
    """Bring an archived depot back. Its crews stay archived until restored one by one."""
    authorize_mutation(ctx, Capability.manage_resources)
    depot = get_resource(db, ctx.organization_id, ResourceKind.depots, depot_id)
    if depot.archived_at is None:
        return depot

    ensure_can_create(db, ctx.organization_id, ctx.plan.value, ResourceKind.depots)

    depot.archived_at = None
    create_audit_log(
        db,
        entity_type="depot",
        entity_id=depot.id,
        action="RESTORE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
    )
    db.commit()
    db.refresh(depot)

    logger.info("depot_restored", depot_id=depot.id, organization_id=ctx.organization_id)
    return depot


def list_crews(db: Session, organization_id: str, include_archived: bool = False) -> List[Crew]:
    return list_resources(db, organization_id, ResourceKind.crews, include_archived=include_archived)
