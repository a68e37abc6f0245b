from datetime import datetime
from typing import Optional, Dict
from enum import Enum

from pydantic import BaseModel, EmailStr


# Enums
class MemberRole(str, Enum):
    admin = "admin"
    operations = "operations"
    user = "user"


class PlanType(str, Enum):
    starter = "starter"
    pro = "pro"


class OrganizationContextResponse(BaseModel):
    id: str
    name: str
    plan: PlanType
    subscription_status: Optional[str] = None
    membership_role: MemberRole
    user_id: str


class QuotaEntry(BaseModel):
    used: int
    limit: Optional[int] = None  # None = unbounded
    remaining: Optional[int] = None


class QuotaResponse(BaseModel):
    plan: PlanType
    requires_approval: bool
    usage: Dict[str, QuotaEntry]


class MemberResponse(BaseModel):
    id: str
    user_id: str
    role: MemberRole
    email: Optional[str] = None
    is_owner: bool = False
    invited_by: Optional[str] = None
    accepted_at: Optional[datetime] = None


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class AuditLogResponse(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    action: str
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    source: Optional[str] = None
    changes_json: Optional[dict] = None
    timestamp_utc: datetime
    context: Optional[dict] = None
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True


class InviteCreate(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.user


class InviteResponse(BaseModel):
    id: str
    email: str
    role: MemberRole
    invited_by: str
    token: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InviteInfoResponse(BaseModel):
    email: str
    role: MemberRole
    organization_id: str
    organization_name: str
    expires_at: datetime


class InviteAccept(BaseModel):
    token: str
