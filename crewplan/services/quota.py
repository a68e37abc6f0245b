"""
Plan-tier resource quotas.

Counts live resources for an organization and decides whether one more of a
kind may be created. Nothing here commits; callers create the resource in the
same transaction after `ensure_can_create` returns.
"""
import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import QuotaExceeded, ValidationError
from ..models.models import Crew, Depot, Employee, Membership, Organization, TeamInvite, Vehicle
from ..schemas.organization import MemberRole, PlanType
from ..schemas.resources import ResourceKind

logger = structlog.get_logger(__name__)


# None means unbounded
DEFAULT_PLAN_LIMITS: Dict[str, Dict] = {
    PlanType.starter.value: {
        "depots": 1,
        "crews": 3,
        "employees": 25,
        "vehicles": 10,
        "team_members": 5,
        "requires_approval": False,
    },
    PlanType.pro.value: {
        "depots": None,
        "crews": 30,
        "employees": 250,
        "vehicles": 100,
        "team_members": None,
        "requires_approval": True,
    },
}

_RESOURCE_MODELS = {
    ResourceKind.depots: Depot,
    ResourceKind.crews: Crew,
    ResourceKind.employees: Employee,
    ResourceKind.vehicles: Vehicle,
}

_SINGULAR = {
    ResourceKind.depots: "depot",
    ResourceKind.crews: "crew",
    ResourceKind.employees: "employee",
    ResourceKind.vehicles: "vehicle",
}


def load_plan_limits(overrides_json: Optional[str] = None) -> Dict[str, Dict]:
    """Built-in plan table with PLAN_LIMITS_JSON overrides merged per plan."""
    limits = copy.deepcopy(DEFAULT_PLAN_LIMITS)
    raw = overrides_json if overrides_json is not None else settings.plan_limits_json
    if not raw or not raw.strip():
        return limits
    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"PLAN_LIMITS_JSON is not valid JSON: {e}") from e
    for plan, values in (overrides or {}).items():
        limits.setdefault(plan, {}).update(values or {})
    return limits


PLAN_LIMITS = load_plan_limits()


def plan_limits_for(plan: str) -> Dict:
    try:
        return PLAN_LIMITS[PlanType(plan).value]
    except (ValueError, KeyError):
        raise ValidationError(f"Unknown plan: {plan}")


def plan_requires_approval(plan: str) -> bool:
    return bool(plan_limits_for(plan).get("requires_approval", False))


def booking_requires_approval(plan: str, role: str) -> bool:
    """Only plain users on an approval plan need their bookings reviewed."""
    return plan_requires_approval(plan) and MemberRole(role) == MemberRole.user


def count_resources(db: Session, organization_id: str, kind: ResourceKind) -> int:
    kind = ResourceKind(kind)
    model = _RESOURCE_MODELS[kind]
    query = db.query(model).filter(model.organization_id == organization_id)
    if kind in (ResourceKind.depots, ResourceKind.crews):
        # Archived depots and crews do not count
        query = query.filter(model.archived_at.is_(None))
    return query.count()


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    current_usage: int
    limit: Optional[int]
    message: str = ""

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.current_usage, 0)


def check_quota(db: Session, organization_id: str, plan: str, kind: ResourceKind) -> QuotaCheckResult:
    kind = ResourceKind(kind)
    limit = plan_limits_for(plan).get(kind.value)
    used = count_resources(db, organization_id, kind)

    if limit is None or used < limit:
        return QuotaCheckResult(allowed=True, current_usage=used, limit=limit)

    noun = kind.value if limit != 1 else _SINGULAR[kind]
    message = (
        f"You've reached the maximum of {limit} {noun} for your {PlanType(plan).value} plan. "
        f"Upgrade to add more {kind.value}."
    )
    return QuotaCheckResult(allowed=False, current_usage=used, limit=limit, message=message)


def _lock_organization(db: Session, organization_id: str) -> None:
    # Serializes concurrent count-then-insert on PostgreSQL; SQLite ignores FOR UPDATE
    if db.get_bind().dialect.name == "postgresql":
        db.query(Organization).filter(Organization.id == organization_id).with_for_update().one()


def ensure_can_create(db: Session, organization_id: str, plan: str, kind: ResourceKind) -> QuotaCheckResult:
    """
    Raise QuotaExceeded unless one more `kind` fits the plan.

    Must be called inside the transaction that performs the insert.
    """
    _lock_organization(db, organization_id)
    result = check_quota(db, organization_id, plan, kind)
    if not result.allowed:
        logger.info(
            "quota_exceeded",
            organization_id=organization_id,
            plan=plan,
            kind=ResourceKind(kind).value,
            current_usage=result.current_usage,
            limit=result.limit,
        )
        raise QuotaExceeded(result.message, current_usage=result.current_usage, limit=result.limit)
    return result


TEAM_MEMBERS = "team_members"


def count_team_members(db: Session, organization_id: str) -> int:
    """Members plus invites that can still be accepted."""
    members = db.query(Membership).filter(Membership.organization_id == organization_id).count()
    open_invites = (
        db.query(TeamInvite)
        .filter(
            TeamInvite.organization_id == organization_id,
            TeamInvite.expires_at > datetime.now(timezone.utc),
        )
        .count()
    )
    return members + open_invites


def check_team_quota(db: Session, organization_id: str, plan: str) -> QuotaCheckResult:
    limit = plan_limits_for(plan).get(TEAM_MEMBERS)
    used = count_team_members(db, organization_id)
    if limit is None or used < limit:
        return QuotaCheckResult(allowed=True, current_usage=used, limit=limit)

    message = (
        f"You've reached the maximum of {limit} team members for your {PlanType(plan).value} plan. "
        "Upgrade to invite more people."
    )
    return QuotaCheckResult(allowed=False, current_usage=used, limit=limit, message=message)


def ensure_can_invite(db: Session, organization_id: str, plan: str) -> QuotaCheckResult:
    """Raise QuotaExceeded unless one more member or invite fits the plan."""
    _lock_organization(db, organization_id)
    result = check_team_quota(db, organization_id, plan)
    if not result.allowed:
        logger.info(
            "quota_exceeded",
            organization_id=organization_id,
            plan=plan,
            kind=TEAM_MEMBERS,
            current_usage=result.current_usage,
            limit=result.limit,
        )
        raise QuotaExceeded(result.message, current_usage=result.current_usage, limit=result.limit)
    return result


def quota_usage_for(db: Session, organization_id: str, plan: str) -> Dict:
    usage = {}
    for kind in ResourceKind:
        result = check_quota(db, organization_id, plan, kind)
        usage[kind.value] = {
            "used": result.current_usage,
            "limit": result.limit,
            "remaining": result.remaining,
        }
    members = check_team_quota(db, organization_id, plan)
    usage[TEAM_MEMBERS] = {"used": members.current_usage, "limit": members.limit, "remaining": members.remaining}
    return {
        "plan": PlanType(plan).value,
        "requires_approval": plan_requires_approval(plan),
        "usage": usage,
    }
