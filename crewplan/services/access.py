"""
Organization context and role capability checks.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import Forbidden, SubscriptionInactive, Unauthorized
from ..models.models import Membership, Organization
from ..schemas.organization import MemberRole, PlanType

logger = structlog.get_logger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})


class Capability(str, Enum):
    manage_resources = "manage_resources"
    approve_bookings = "approve_bookings"
    manage_team = "manage_team"
    create_bookings = "create_bookings"


# Fixed for every organization
ROLE_CAPABILITIES = {
    MemberRole.admin: frozenset(Capability),
    MemberRole.operations: frozenset({
        Capability.manage_resources,
        Capability.approve_bookings,
        Capability.create_bookings,
    }),
    MemberRole.user: frozenset({Capability.create_bookings}),
}


@dataclass(frozen=True)
class OrganizationContext:
    user_id: str
    organization_id: str
    membership_id: str
    role: MemberRole
    plan: PlanType
    subscription_status: str = "trialing"

    @property
    def subscription_active(self) -> bool:
        return self.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES


def get_primary_membership(db: Session, user_id: str) -> Optional[Membership]:
    """
    Resolve the membership used as the user's default organization.
    Owner memberships win; otherwise the most recently accepted one.
    """
    memberships = (
        db.query(Membership)
        .join(Organization, Organization.id == Membership.organization_id)
        .filter(Membership.user_id == user_id)
        .all()
    )
    if not memberships:
        return None

    for membership in memberships:
        if membership.organization.owner_id == user_id:
            return membership

    # Never-accepted memberships sort last
    return max(
        memberships,
        key=lambda m: (m.accepted_at is not None, m.accepted_at or m.invited_at),
    )


def load_organization_context(db: Session, user_id: Optional[str]) -> OrganizationContext:
    if not user_id:
        raise Unauthorized("Not authenticated")

    membership = get_primary_membership(db, user_id)
    if membership is None:
        raise Forbidden("No organization membership found")

    org = membership.organization
    return OrganizationContext(
        user_id=user_id,
        organization_id=org.id,
        membership_id=membership.id,
        role=MemberRole(membership.role),
        plan=PlanType(org.plan),
        subscription_status=org.subscription_status or "trialing",
    )


def has_capability(role: MemberRole, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(MemberRole(role), frozenset())


def roles_with(capability: Capability) -> list:
    return [role.value for role in MemberRole if capability in ROLE_CAPABILITIES[role]]


def require_capability(ctx: OrganizationContext, capability: Capability) -> None:
    if not has_capability(ctx.role, capability):
        logger.info(
            "access_denied",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            role=ctx.role.value,
            capability=capability.value,
        )
        raise Forbidden(
            f"Access denied. This action requires one of these roles: {', '.join(roles_with(capability))}"
        )


def require_active_subscription(ctx: OrganizationContext) -> None:
    if not ctx.subscription_active:
        raise SubscriptionInactive(ctx.subscription_status)


def authorize_mutation(ctx: OrganizationContext, capability: Capability) -> None:
    """Gate a mutating operation: role capability first, then subscription."""
    require_capability(ctx, capability)
    require_active_subscription(ctx)
