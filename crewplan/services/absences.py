"""
Employee holiday and sickness records, shown on the schedule as unavailable days.
"""
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models.models import Employee, EmployeeAbsence
from ..schemas.resources import AbsenceType
from .access import Capability, OrganizationContext, authorize_mutation, require_capability
from .audit import create_audit_log

logger = structlog.get_logger(__name__)


def list_absences(
    db: Session,
    ctx: OrganizationContext,
    start: Optional[date] = None,
    end: Optional[date] = None,
    employee_id: Optional[str] = None,
) -> List[EmployeeAbsence]:
    """Absences overlapping [start, end], earliest first."""
    require_capability(ctx, Capability.manage_resources)
    if start and end and start > end:
        raise ValidationError("start must be on or before end")

    query = db.query(EmployeeAbsence).filter(EmployeeAbsence.organization_id == ctx.organization_id)
    if start:
        query = query.filter(EmployeeAbsence.end_date >= start)
    if end:
        query = query.filter(EmployeeAbsence.start_date <= end)
    if employee_id:
        query = query.filter(EmployeeAbsence.employee_id == employee_id)
    return query.order_by(EmployeeAbsence.start_date.asc()).all()


def create_absence(
    db: Session,
    ctx: OrganizationContext,
    employee_id: str,
    absence_type: str,
    start_date: date,
    end_date: Optional[date] = None,
) -> EmployeeAbsence:
    authorize_mutation(ctx, Capability.manage_resources)
    try:
        kind = AbsenceType(absence_type)
    except ValueError:
        raise ValidationError('absence_type must be "holiday" or "sick"')

    end_date = end_date or start_date
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date")

    employee = db.query(Employee).filter(
        Employee.id == employee_id,
        Employee.organization_id == ctx.organization_id,
    ).first()
    if not employee:
        raise ValidationError("Employee not found in this organization")

    absence = EmployeeAbsence(
        organization_id=ctx.organization_id,
        employee_id=employee.id,
        absence_type=kind.value,
        start_date=start_date,
        end_date=end_date,
        created_by=ctx.user_id,
    )
    db.add(absence)
    db.flush()
    create_audit_log(
        db,
        entity_type="employee_absence",
        entity_id=absence.id,
        action="CREATE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        context={"employee_id": employee.id, "type": kind.value, "start": start_date, "end": end_date},
    )
    db.commit()
    db.refresh(absence)

    logger.info("absence_created", absence_id=absence.id, employee_id=employee.id, type=kind.value)
    return absence


def delete_absence(db: Session, ctx: OrganizationContext, absence_id: str) -> bool:
    authorize_mutation(ctx, Capability.manage_resources)
    absence = db.query(EmployeeAbsence).filter(
        EmployeeAbsence.id == absence_id,
        EmployeeAbsence.organization_id == ctx.organization_id,
    ).first()
    if not absence:
        raise NotFound("Absence not found")

    create_audit_log(
        db,
        entity_type="employee_absence",
        entity_id=absence.id,
        action="DELETE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        context={"employee_id": absence.employee_id},
    )
    db.delete(absence)
    db.commit()

    logger.info("absence_deleted", absence_id=absence_id, organization_id=ctx.organization_id)
    return True
