"""
Tests for caller resolution and the role capability matrix.
"""

from datetime import datetime, timedelta, timezone

import pytest

from crewplan.errors import Forbidden, SubscriptionInactive, Unauthorized
from crewplan.schemas.organization import MemberRole
from crewplan.services.access import (
    Capability,
    authorize_mutation,
    get_primary_membership,
    has_capability,
    load_organization_context,
)
from tests.factories import add_member, make_org


class TestCapabilityMatrix:
    @pytest.mark.parametrize(
        "role,capability,expected",
        [
            ("admin", Capability.manage_resources, True),
            ("admin", Capability.approve_bookings, True),
            ("admin", Capability.manage_team, True),
            ("admin", Capability.create_bookings, True),
            ("operations", Capability.manage_resources, True),
            ("operations", Capability.approve_bookings, True),
            ("operations", Capability.manage_team, False),
            ("operations", Capability.create_bookings, True),
            ("user", Capability.manage_resources, False),
            ("user", Capability.approve_bookings, False),
            ("user", Capability.manage_team, False),
            ("user", Capability.create_bookings, True),
        ],
    )
    def test_matrix(self, role, capability, expected):
        assert has_capability(MemberRole(role), capability) is expected


class TestPrimaryMembership:
    def test_owned_organization_wins(self, db):
        user_id = "user-owner"
        owned = make_org(db, owner_id=user_id, name="Mine")
        other = make_org(db, name="Theirs")
        add_member(db, other, "user", user_id=user_id, accepted_at=datetime.now(timezone.utc) + timedelta(days=1))

        membership = get_primary_membership(db, user_id)
        assert membership.organization_id == owned.id

    def test_most_recently_accepted_without_ownership(self, db):
        user_id = "user-many"
        first = make_org(db, name="First")
        second = make_org(db, name="Second")
        now = datetime.now(timezone.utc)
        add_member(db, first, "user", user_id=user_id, accepted_at=now - timedelta(days=5))
        add_member(db, second, "operations", user_id=user_id, accepted_at=now)

        ctx = load_organization_context(db, user_id)
        assert ctx.organization_id == second.id
        assert ctx.role == MemberRole.operations

    def test_no_membership_is_forbidden(self, db):
        with pytest.raises(Forbidden):
            load_organization_context(db, "nobody")

    def test_missing_user_is_unauthorized(self, db):
        with pytest.raises(Unauthorized):
            load_organization_context(db, None)


class TestContext:
    def test_context_fields(self, db, world):
        ctx = world.ctx(world.owner_id)
        assert ctx.organization_id == world.org.id
        assert ctx.role == MemberRole.admin
        assert ctx.plan.value == "starter"
        assert ctx.subscription_status == "trialing"
        assert ctx.subscription_active

    def test_user_cannot_manage_resources(self, world):
        with pytest.raises(Forbidden):
            authorize_mutation(world.ctx(world.user_id), Capability.manage_resources)

    @pytest.mark.parametrize("status", ["past_due", "canceled", "unpaid"])
    def test_inactive_subscription_blocks_mutations(self, db, status):
        org = make_org(db, subscription_status=status)
        ctx = load_organization_context(db, org.owner_id)
        with pytest.raises(SubscriptionInactive) as exc:
            authorize_mutation(ctx, Capability.create_bookings)
        assert exc.value.status_code == 402
        assert exc.value.to_dict()["subscriptionStatus"] == status

    def test_active_subscription_allows_mutations(self, db):
        org = make_org(db, subscription_status="active")
        authorize_mutation(load_organization_context(db, org.owner_id), Capability.manage_team)
