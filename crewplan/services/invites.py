"""
Team invites.

Admins invite people by email with a role. The invite carries a random token
that expires after INVITE_TTL_DAYS; accepting it creates the membership and
deletes the invite. Open invites count against the team member quota.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Forbidden, NotFound, ValidationError
from ..models.models import Membership, Organization, TeamInvite
from ..schemas.organization import MemberRole
from .access import Capability, OrganizationContext, authorize_mutation, require_capability
from .audit import create_audit_log
from .quota import ensure_can_invite

logger = structlog.get_logger(__name__)


def _new_token() -> str:
    return secrets.token_urlsafe(32)


def _expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=settings.invite_ttl_days)


def is_expired(invite: TeamInvite, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    expires_at = invite.expires_at
    # SQLite hands back naive datetimes; they were stored as UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < now


def _normalize_email(email: str) -> str:
    email = (email or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def _parse_role(role: str) -> MemberRole:
    try:
        return MemberRole(role)
    except ValueError:
        raise ValidationError(f"Role must be one of: {', '.join(r.value for r in MemberRole)}")


def _get_invite(db: Session, ctx: OrganizationContext, invite_id: str) -> TeamInvite:
    invite = db.query(TeamInvite).filter(
        TeamInvite.id == invite_id,
        TeamInvite.organization_id == ctx.organization_id,
    ).first()
    if not invite:
        raise NotFound("Invite not found")
    return invite


def list_invites(db: Session, ctx: OrganizationContext) -> List[TeamInvite]:
    require_capability(ctx, Capability.manage_team)
    return (
        db.query(TeamInvite)
        .filter(TeamInvite.organization_id == ctx.organization_id)
        .order_by(TeamInvite.created_at.desc())
        .all()
    )


def create_invite(db: Session, ctx: OrganizationContext, email: str, role: str) -> TeamInvite:
    authorize_mutation(ctx, Capability.manage_team)
    email = _normalize_email(email)
    member_role = _parse_role(role)

    already_member = db.query(Membership).filter(
        Membership.organization_id == ctx.organization_id,
        func.lower(Membership.email) == email.lower(),
    ).first()
    if already_member:
        raise ValidationError("User is already a member of this organization")

    already_invited = db.query(TeamInvite).filter(
        TeamInvite.organization_id == ctx.organization_id,
        func.lower(TeamInvite.email) == email.lower(),
    ).first()
    if already_invited:
        raise ValidationError("An invite already exists for this email")

    ensure_can_invite(db, ctx.organization_id, ctx.plan.value)

    invite = TeamInvite(
        organization_id=ctx.organization_id,
        email=email,
        role=member_role.value,
        invited_by=ctx.user_id,
        token=_new_token(),
        expires_at=_expiry(),
    )
    db.add(invite)
    db.flush()
    create_audit_log(
        db,
        entity_type="invite",
        entity_id=invite.id,
        action="CREATE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        context={"email": email, "role": member_role.value},
    )
    db.commit()
    db.refresh(invite)

    logger.info("invite_created", invite_id=invite.id, organization_id=ctx.organization_id, role=invite.role)
    return invite


def resend_invite(db: Session, ctx: OrganizationContext, invite_id: str) -> TeamInvite:
    """New token and a fresh expiry. The old link stops working."""
    authorize_mutation(ctx, Capability.manage_team)
    invite = _get_invite(db, ctx, invite_id)
    invite.token = _new_token()
    invite.expires_at = _expiry()
    db.commit()
    db.refresh(invite)

    logger.info("invite_resent", invite_id=invite.id, organization_id=ctx.organization_id)
    return invite


def revoke_invite(db: Session, ctx: OrganizationContext, invite_id: str) -> bool:
    authorize_mutation(ctx, Capability.manage_team)
    invite = _get_invite(db, ctx, invite_id)
    create_audit_log(
        db,
        entity_type="invite",
        entity_id=invite.id,
        action="DELETE",
        organization_id=ctx.organization_id,
        actor_id=ctx.user_id,
        actor_role=ctx.role.value,
        source="api",
        context={"email": invite.email},
    )
    db.delete(invite)
    db.commit()

    logger.info("invite_revoked", invite_id=invite_id, organization_id=ctx.organization_id)
    return True


def get_open_invite(db: Session, token: str) -> TeamInvite:
    if not token:
        raise ValidationError("Token is required")
    invite = db.query(TeamInvite).filter(TeamInvite.token == token).first()
    if not invite:
        raise NotFound("Invalid or expired invite")
    if is_expired(invite):
        raise ValidationError("This invite has expired")
    return invite


def invite_info(db: Session, token: str) -> dict:
    """What the invitee sees before accepting."""
    invite = get_open_invite(db, token)
    org = db.get(Organization, invite.organization_id)
    if org is None:
        raise NotFound("Organization not found")
    return {
        "email": invite.email,
        "role": invite.role,
        "organization_id": org.id,
        "organization_name": org.name,
        "expires_at": invite.expires_at,
    }


def accept_invite(db: Session, user_id: str, token: str, email: Optional[str] = None) -> Membership:
    """
    Join the inviting organization as `user_id`.

    When the caller's token carries an email it must match the invited one.
    Accepting as an existing member just uses up the invite.
    """
    invite = get_open_invite(db, token)
    if email and email.strip().lower() != invite.email.lower():
        raise Forbidden("This invite was sent to a different email address")

    existing = db.query(Membership).filter(
        Membership.organization_id == invite.organization_id,
        Membership.user_id == user_id,
    ).first()
    if existing:
        db.delete(invite)
        db.commit()
        logger.info("invite_already_member", organization_id=existing.organization_id, user_id=user_id)
        return existing

    membership = Membership(
        organization_id=invite.organization_id,
        user_id=user_id,
        role=invite.role,
        email=invite.email,
        invited_by=invite.invited_by,
        invited_at=invite.created_at,
        accepted_at=datetime.now(timezone.utc),
    )
    db.add(membership)
    db.flush()
    create_audit_log(
        db,
        entity_type="membership",
        entity_id=membership.id,
        action="CREATE",
        organization_id=invite.organization_id,
        actor_id=user_id,
        actor_role=invite.role,
        source="api",
        context={"invite_id": invite.id, "invited_by": invite.invited_by},
    )
    db.delete(invite)
    db.commit()
    db.refresh(membership)

    logger.info("invite_accepted", organization_id=membership.organization_id, user_id=user_id, role=membership.role)
    return membership
