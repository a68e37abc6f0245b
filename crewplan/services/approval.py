"""
Booking approval workflow.

States:
    pending -> approved | rejected
    approved, rejected are final.

Approval status is separate from job_status (free|booked|cancelled); a
cancelled job can still be an approved booking.
"""
from datetime import datetime, timezone
from typing import List, Optional, Union

import structlog
from sqlalchemy.orm import Session

from ..errors import InvalidTransition, NotFound, ValidationError
from ..models.models import Membership, ScheduleItem
from ..schemas.organization import MemberRole
from ..schemas.scheduling import BookingStatus
from .audit import create_audit_log
from .quota import booking_requires_approval

logger = structlog.get_logger(__name__)


_TRANSITIONS = {
    BookingStatus.pending: {BookingStatus.approved, BookingStatus.rejected},
    BookingStatus.approved: set(),
    BookingStatus.rejected: set(),
}


def _coerce_status(value: Union[str, BookingStatus]) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    return BookingStatus(str(value))


def can_transition(source: Union[str, BookingStatus], target: Union[str, BookingStatus]) -> bool:
    try:
        src = _coerce_status(source)
        dst = _coerce_status(target)
    except ValueError:
        return False
    return dst in _TRANSITIONS.get(src, set())


def is_final(status: Union[str, BookingStatus]) -> bool:
    try:
        return not _TRANSITIONS.get(_coerce_status(status))
    except ValueError:
        return False


def initial_status(role: str, plan: str, requested: Optional[str] = None) -> BookingStatus:
    """
    Status a new booking starts in.

    A non-blank `requested` status wins over the role/plan default. Unknown
    values are normalized to approved.
    """
    if requested is not None and str(requested).strip():
        try:
            return BookingStatus(str(requested).strip())
        except ValueError:
            logger.warning("invalid_booking_status", requested=requested, normalized=BookingStatus.approved.value)
            return BookingStatus.approved

    if booking_requires_approval(plan, role):
        return BookingStatus.pending
    return BookingStatus.approved


def _get_item(db: Session, organization_id: str, item_id: str) -> ScheduleItem:
    item = db.query(ScheduleItem).filter(
        ScheduleItem.id == item_id,
        ScheduleItem.organization_id == organization_id,
    ).first()
    if not item:
        raise NotFound("Schedule item not found")
    return item


def _guard(item: ScheduleItem, target: BookingStatus) -> None:
    if not can_transition(item.status, target):
        raise InvalidTransition(
            f"Cannot change a {item.status} booking to {target.value}. Only pending bookings can be reviewed."
        )


def approve(
    db: Session,
    organization_id: str,
    item_id: str,
    approver_id: str,
    approver_role: Optional[str] = None,
    note: Optional[str] = None,
) -> ScheduleItem:
    item = _get_item(db, organization_id, item_id)
    _guard(item, BookingStatus.approved)

    context = {"crew_id": item.crew_id, "date": item.date}
    if note:
        context["note"] = note

    item.status = BookingStatus.approved.value
    item.approved_by = approver_id
    item.approved_at = datetime.now(timezone.utc)

    create_audit_log(
        db,
        entity_type="schedule_item",
        entity_id=item.id,
        action="APPROVE",
        organization_id=organization_id,
        actor_id=approver_id,
        actor_role=approver_role,
        source="api",
        changes_json={"status": {"before": BookingStatus.pending.value, "after": BookingStatus.approved.value}},
        context=context,
    )
    db.commit()
    db.refresh(item)

    logger.info("booking_approved", item_id=item.id, organization_id=organization_id, approver_id=approver_id)
    return item


def reject(
    db: Session,
    organization_id: str,
    item_id: str,
    approver_id: str,
    reason: Optional[str],
    approver_role: Optional[str] = None,
) -> ScheduleItem:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Rejection reason is required")

    item = _get_item(db, organization_id, item_id)
    _guard(item, BookingStatus.rejected)

    item.status = BookingStatus.rejected.value
    item.approved_by = approver_id
    item.rejection_reason = reason.strip()

    create_audit_log(
        db,
        entity_type="schedule_item",
        entity_id=item.id,
        action="REJECT",
        organization_id=organization_id,
        actor_id=approver_id,
        actor_role=approver_role,
        source="api",
        changes_json={"status": {"before": BookingStatus.pending.value, "after": BookingStatus.rejected.value}},
        context={"crew_id": item.crew_id, "date": item.date, "reason": item.rejection_reason},
    )
    db.commit()
    db.refresh(item)

    logger.info("booking_rejected", item_id=item.id, organization_id=organization_id, approver_id=approver_id)
    return item


def pending_items_for(db: Session, organization_id: str) -> List[dict]:
    """Pending bookings, oldest day first, each with its requester's id and role."""
    items = (
        db.query(ScheduleItem)
        .filter(
            ScheduleItem.organization_id == organization_id,
            ScheduleItem.status == BookingStatus.pending.value,
        )
        .order_by(ScheduleItem.date.asc())
        .all()
    )

    requester_ids = {i.requested_by for i in items if i.requested_by}
    roles = {}
    if requester_ids:
        for m in db.query(Membership).filter(
            Membership.organization_id == organization_id,
            Membership.user_id.in_(requester_ids),
        ).all():
            roles[m.user_id] = MemberRole(m.role).value

    result = []
    for item in items:
        requester = None
        if item.requested_by:
            requester = {"id": item.requested_by, "role": roles.get(item.requested_by)}
        result.append({"item": item, "requested_by_user": requester})
    return result
