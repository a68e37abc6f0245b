"""
Team management and per-organization color labels.
"""
from typing import Dict, List

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models.models import ColorLabel, Membership, Organization
from ..schemas.organization import MemberRole
from .access import Capability, OrganizationContext, authorize_mutation, require_capability
from .audit import create_audit_log

logger = structlog.get_logger(__name__)

# Shown for colors the organization has not labelled yet
STANDARD_COLOR_LABELS: Dict[str, str] = {
    "sky": "Folder Returned",
    "pink": "Sent for Pro Forma",
    "gray": "Invoiced",
    "orange": "Report Require - Invoice Sent",
    "teal": "WIP",
    "stone": "Order Required",
}


def get_organization(db: Session, organization_id: str) -> Organization:
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        raise NotFound("Organization not found")
    return org


def list_members(db: Session, ctx: OrganizationContext) -> List[dict]:
    require_capability(ctx, Capability.manage_team)
    org = get_organization(db, ctx.organization_id)
    members = (
        db.query(Membership)
        .filter(Membership.organization_id == ctx.organization_id)
        .order_by(Membership.invited_at.asc())
        .all()
    )
    return [
        {
            "id": m.id,
            "user_id": m.user_id,
            "role": m.role,
            "email": m.email,
            "is_owner": m.user_id == org.owner_id,
            "invited_by": m.invited_by,
            "accepted_at": m.accepted_at,
        }
        for m in members
    ]


def _get_member(db: Session, ctx: OrganizationContext, membership_id: str) -> Membership:
    membership = db.query(Membership).filter(
        Membership.id == membership_id,
        Membership.organization_id == ctx.organization_id,
    ).first()
    if not membership:
        raise NotFound("Membership not found")
    return membership


def change_member_role(db: Session, ctx: OrganizationContext, membership_id: str, role: str) -> Membership:
    authorize_mutation(ctx, Capability.manage_team)
    try:
        new_role = MemberRole(role)
    except ValueError:
        raise ValidationError(f"Role must be one of: {', '.join(r.value for r in MemberRole)}")

    membership = _get_member(db, ctx, membership_id)
    org = get_organization(db, ctx.organization_id)
    if membership.user_id == org.owner_id and new_role != MemberRole.admin:
        raise ValidationError("The organization owner must remain an admin")

    previous = membership.role
    membership.role = new_role.value
    create_audit_log(
        db,
        entity_type="membership",
        entity_id=membership.id,
        action="UPDATE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        changes_json={"role": {"before": previous, "after": new_role.value}},
    )
    db.commit()
    db.refresh(membership)

    logger.info("member_role_changed", membership_id=membership.id, before=previous, after=new_role.value)
    return membership


def remove_member(db: Session, ctx: OrganizationContext, membership_id: str) -> bool:
    authorize_mutation(ctx, Capability.manage_team)
    membership = _get_member(db, ctx, membership_id)
    org = get_organization(db, ctx.organization_id)

    if membership.user_id == ctx.user_id:
        raise ValidationError("You cannot remove yourself from the organization")
    if membership.user_id == org.owner_id:
        raise ValidationError("The organization owner cannot be removed")

    create_audit_log(
        db,
        entity_type="membership",
        entity_id=membership.id,
        action="DELETE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        context={"user_id": membership.user_id, "role": membership.role},
    )
    db.delete(membership)
    db.commit()

    logger.info("member_removed", membership_id=membership_id, organization_id=ctx.organization_id)
    return True


def color_label_map(db: Session, ctx: OrganizationContext) -> Dict[str, str]:
    """Color -> label for the organization, the caller's own labels winning."""
    require_capability(ctx, Capability.manage_resources)
    labels = db.query(ColorLabel).filter(ColorLabel.organization_id == ctx.organization_id).all()

    result = dict(STANDARD_COLOR_LABELS)
    for label in labels:
        if label.user_id != ctx.user_id:
            result[label.color] = label.label
    for label in labels:
        if label.user_id == ctx.user_id:
            result[label.color] = label.label
    return result


def upsert_color_label(db: Session, ctx: OrganizationContext, color: str, label: str) -> ColorLabel:
    authorize_mutation(ctx, Capability.manage_resources)
    color = (color or "").strip()
    label = (label or "").strip()
    if not color or not label:
        raise ValidationError("Color and label are required")

    existing = db.query(ColorLabel).filter(
        ColorLabel.organization_id == ctx.organization_id,
        ColorLabel.user_id == ctx.user_id,
        ColorLabel.color == color,
    ).first()
    if existing:
        existing.label = label
        obj = existing
    else:
        obj = ColorLabel(color=color, label=label, user_id=ctx.user_id, organization_id=ctx.organization_id)
        db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj
