"""Factories for organizations, members and resources used across tests."""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from crewplan.auth.security import create_access_token
from crewplan.models.models import Crew, Depot, Membership, Organization
from crewplan.services.access import load_organization_context


def make_org(db, plan="starter", subscription_status="trialing", owner_id=None, name="Test Org"):
    owner_id = owner_id or str(uuid.uuid4())
    org = Organization(name=name, owner_id=owner_id, plan=plan, subscription_status=subscription_status)
    db.add(org)
    db.flush()
    add_member(db, org, "admin", user_id=owner_id)
    db.commit()
    return org


def add_member(db, org, role, user_id=None, accepted_at=None):
    user_id = user_id or str(uuid.uuid4())
    membership = Membership(
        organization_id=org.id,
        user_id=user_id,
        role=role,
        accepted_at=accepted_at or datetime.now(timezone.utc),
    )
    db.add(membership)
    db.commit()
    return membership


def make_depot(db, org, name="Main Depot"):
    depot = Depot(name=name, address="1 Yard Lane", organization_id=org.id)
    db.add(depot)
    db.commit()
    return depot


def make_crew(db, org, depot, name="Crew A", archived=False):
    crew = Crew(
        name=name,
        depot_id=depot.id,
        organization_id=org.id,
        archived_at=datetime.now(timezone.utc) - timedelta(days=1) if archived else None,
    )
    db.add(crew)
    db.commit()
    return crew


def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def build_world(db, plan="starter", subscription_status="trialing"):
    """One organization with an admin owner, an operations member, a plain user, a depot and a crew."""
    org = make_org(db, plan=plan, subscription_status=subscription_status)
    operations = add_member(db, org, "operations")
    user = add_member(db, org, "user")
    depot = make_depot(db, org)
    crew = make_crew(db, org, depot)
    return SimpleNamespace(
        org=org,
        owner_id=org.owner_id,
        operations_id=operations.user_id,
        user_id=user.user_id,
        operations_membership=operations,
        user_membership=user,
        depot=depot,
        crew=crew,
        ctx=lambda user_id: load_organization_context(db, user_id),
    )


