"""
Seed a demo organization for local development.

Creates an organization with its owner (admin) membership, a depot, two crews,
a couple of employees and vehicles, and a few bookings for the current week.
Prints a bearer token for the owner.

Usage:
    python scripts/seed_demo.py [--plan starter|pro] [--owner-id <uuid>]
"""
import argparse
import os
import sys
import uuid
from datetime import date, datetime, timedelta, timezone

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crewplan.config import settings  # noqa: E402
from crewplan.db import Base, SessionLocal, engine  # noqa: E402
from crewplan.auth.security import create_access_token  # noqa: E402
from crewplan.models.models import Crew, Depot, Employee, Membership, Organization, ScheduleItem, Vehicle  # noqa: E402


def seed(plan: str, owner_id: str) -> str:
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        org = Organization(name="Demo Drainage Ltd", owner_id=owner_id, plan=plan, subscription_status="trialing")
        db.add(org)
        db.flush()

        db.add(Membership(organization_id=org.id, user_id=owner_id, role="admin", invited_at=now, accepted_at=now))

        depot = Depot(name="North Depot", address="1 Yard Lane", organization_id=org.id)
        db.add(depot)
        db.flush()

        crews = [
            Crew(name="Crew A", depot_id=depot.id, organization_id=org.id, shift="day"),
            Crew(name="Crew B", depot_id=depot.id, organization_id=org.id, shift="night"),
        ]
        db.add_all(crews)
        db.add_all([
            Employee(name="Sam Operative", job_role="operative", depot_id=depot.id, organization_id=org.id),
            Employee(name="Alex Assistant", job_role="assistant", depot_id=depot.id, organization_id=org.id),
            Vehicle(name="JV-01", vehicle_type="Jet Vac", depot_id=depot.id, organization_id=org.id),
            Vehicle(name="CCTV-01", vehicle_type="CCTV", depot_id=depot.id, organization_id=org.id),
        ])
        db.flush()

        monday = date.today() - timedelta(days=date.today().weekday())
        bookings = [
            (crews[0], monday, "Acme Water", 5.0),
            (crews[0], monday + timedelta(days=1), "Riverside Council", 8.0),
            (crews[1], monday + timedelta(days=2), "Harbour Estates", 3.0),
        ]
        for crew, day, customer, hours in bookings:
            db.add(ScheduleItem(
                type="job",
                date=day,
                crew_id=crew.id,
                depot_id=depot.id,
                organization_id=org.id,
                customer=customer,
                address="Site address TBC",
                duration=hours,
                status="approved",
                requested_by=owner_id,
                approved_by=owner_id,
                approved_at=now,
            ))

        db.commit()
        print(f"Organization: {org.id} ({org.name}, plan={plan})")
        print(f"Owner user id: {owner_id}")
    finally:
        db.close()

    return create_access_token(owner_id)


def main():
    parser = argparse.ArgumentParser(description="Seed a demo crewplan organization")
    parser.add_argument("--plan", choices=["starter", "pro"], default="starter")
    parser.add_argument("--owner-id", default=None)
    args = parser.parse_args()

    token = seed(args.plan, args.owner_id or str(uuid.uuid4()))
    print("\nBearer token:")
    print(token)


if __name__ == "__main__":
    main()
