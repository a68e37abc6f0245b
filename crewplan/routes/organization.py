from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_caller, get_token_claims, require_capability_dep
from ..schemas.organization import (
    AuditLogResponse,
    InviteAccept,
    InviteCreate,
    InviteInfoResponse,
    InviteResponse,
    OrganizationContextResponse,
    QuotaResponse,
    MemberResponse,
    MemberRoleUpdate,
)
from ..schemas.scheduling import ColorLabelUpsert, ColorLabelResponse
from ..services import audit, invites, organization
from ..services.access import Capability, OrganizationContext
from ..services.quota import quota_usage_for

router = APIRouter(tags=["organization"])


@router.get("/organization", response_model=OrganizationContextResponse)
def get_organization(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    org = organization.get_organization(db, ctx.organization_id)
    return OrganizationContextResponse(
        id=org.id,
        name=org.name,
        plan=ctx.plan,
        subscription_status=ctx.subscription_status,
        membership_role=ctx.role,
        user_id=ctx.user_id,
    )


@router.get("/organization/quota", response_model=QuotaResponse)
def get_quota(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    """Plan limits and current usage per resource kind"""
    return quota_usage_for(db, ctx.organization_id, ctx.plan.value)


@router.get("/organization/members", response_model=List[MemberResponse])
def list_members(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return organization.list_members(db, ctx)


@router.patch("/organization/members/{membership_id}/role", response_model=MemberResponse)
def change_member_role(
    membership_id: str,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    membership = organization.change_member_role(db, ctx, membership_id, payload.role.value)
    org = organization.get_organization(db, ctx.organization_id)
    return MemberResponse(
        id=membership.id,
        user_id=membership.user_id,
        role=membership.role,
        email=membership.email,
        is_owner=membership.user_id == org.owner_id,
        invited_by=membership.invited_by,
        accepted_at=membership.accepted_at,
    )


@router.delete("/organization/members/{membership_id}")
def remove_member(membership_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    organization.remove_member(db, ctx, membership_id)
    return {"ok": True}


@router.get("/organization/invites", response_model=List[InviteResponse])
def list_invites(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return invites.list_invites(db, ctx)


@router.post("/organization/invites", response_model=InviteResponse, status_code=201)
def create_invite(payload: InviteCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    """Invite someone by email; counts against the team member quota until accepted or expired"""
    return invites.create_invite(db, ctx, payload.email, payload.role.value)


@router.post("/organization/invites/{invite_id}/resend", response_model=InviteResponse)
def resend_invite(invite_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return invites.resend_invite(db, ctx, invite_id)


@router.delete("/organization/invites/{invite_id}")
def revoke_invite(invite_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    invites.revoke_invite(db, ctx, invite_id)
    return {"ok": True}


@router.post("/invites/accept", response_model=MemberResponse)
def accept_invite(payload: InviteAccept, db: Session = Depends(get_db), claims: dict = Depends(get_token_claims)):
    """Join the inviting organization. Needs a valid token but no existing membership."""
    membership = invites.accept_invite(db, claims["sub"], payload.token, claims.get("email"))
    org = organization.get_organization(db, membership.organization_id)
    return MemberResponse(
        id=membership.id,
        user_id=membership.user_id,
        role=membership.role,
        email=membership.email,
        is_owner=membership.user_id == org.owner_id,
        invited_by=membership.invited_by,
        accepted_at=membership.accepted_at,
    )


@router.get("/invites/{token}", response_model=InviteInfoResponse)
def get_invite(token: str, db: Session = Depends(get_db)):
    """Public: what an invite link is for"""
    return invites.invite_info(db, token)


@router.get("/color-labels", response_model=Dict[str, str])
def get_color_labels(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return organization.color_label_map(db, ctx)


@router.post("/color-labels", response_model=ColorLabelResponse)
def upsert_color_label(
    payload: ColorLabelUpsert,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return organization.upsert_color_label(db, ctx, payload.color, payload.label)


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(require_capability_dep(Capability.manage_team)),
):
    """Audit trail for the caller's organization, newest first (admins only)"""
    return audit.get_audit_logs(db, ctx.organization_id, entity_type, entity_id, limit, offset)
