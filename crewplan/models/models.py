import uuid
from datetime import datetime, date as date_type
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    ForeignKey,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[str]:
    return mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


def org_fk() -> Mapped[str]:
    return mapped_column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="starter")  # starter|pro
    subscription_status: Mapped[Optional[str]] = mapped_column(String(30), default="trialing")  # trialing|active|past_due|canceled...
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    memberships = relationship("Membership", back_populates="organization", cascade="all, delete-orphan")


class Membership(Base):
    __tablename__ = "organization_memberships"

    id: Mapped[str] = uuid_pk()
    organization_id: Mapped[str] = org_fk()
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")  # admin|operations|user
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)  # from the invite, for duplicate checks
    invited_by: Mapped[Optional[str]] = mapped_column(String(36))
    invited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    organization = relationship("Organization", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_membership_org_user"),
    )


class TeamInvite(Base):
    """Pending invitation to join an organization. Deleted once accepted."""
    __tablename__ = "team_invites"

    id: Mapped[str] = uuid_pk()
    organization_id: Mapped[str] = org_fk()
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    invited_by: Mapped[str] = mapped_column(String(36), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Depot(Base):
    __tablename__ = "depots"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    organization_id: Mapped[str] = org_fk()
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)


class Crew(Base):
    __tablename__ = "crews"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    depot_id: Mapped[str] = mapped_column(String(36), ForeignKey("depots.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[str] = org_fk()
    shift: Mapped[str] = mapped_column(String(10), nullable=False, default="day")  # day|night
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|holiday|sick
    job_role: Mapped[str] = mapped_column(String(20), nullable=False, default="operative")  # operative|assistant
    email: Mapped[Optional[str]] = mapped_column(String(255))
    depot_id: Mapped[str] = mapped_column(String(36), ForeignKey("depots.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[str] = org_fk()


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|off_road|maintenance
    vehicle_type: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    color: Mapped[Optional[str]] = mapped_column(String(50))
    depot_id: Mapped[str] = mapped_column(String(36), ForeignKey("depots.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[str] = org_fk()


class EmployeeAbsence(Base):
    __tablename__ = "employee_absences"

    id: Mapped[str] = uuid_pk()
    organization_id: Mapped[str] = org_fk()
    employee_id: Mapped[str] = mapped_column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    absence_type: Mapped[str] = mapped_column(String(20), nullable=False)  # holiday|sick
    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    end_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class ScheduleItem(Base):
    """A booking on the calendar grid (job, operative, assistant or note)"""
    __tablename__ = "schedule_items"

    id: Mapped[str] = uuid_pk()
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # job|operative|assistant|note
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    crew_id: Mapped[str] = mapped_column(String(36), ForeignKey("crews.id", ondelete="CASCADE"), nullable=False)
    depot_id: Mapped[str] = mapped_column(String(36), ForeignKey("depots.id", ondelete="CASCADE"), nullable=False)
    organization_id: Mapped[str] = org_fk()

    # Approval workflow
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="approved")  # pending|approved|rejected
    requested_by: Mapped[Optional[str]] = mapped_column(String(36))
    approved_by: Mapped[Optional[str]] = mapped_column(String(36))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Separate from approval status
    job_status: Mapped[str] = mapped_column(String(20), nullable=False, default="booked")  # free|booked|cancelled

    # Job fields
    customer: Mapped[Optional[str]] = mapped_column(String(255))
    job_number: Mapped[Optional[str]] = mapped_column(String(100))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    project_manager: Mapped[Optional[str]] = mapped_column(String(255))
    start_time: Mapped[Optional[str]] = mapped_column(String(10))
    onsite_time: Mapped[Optional[str]] = mapped_column(String(10))
    color: Mapped[Optional[str]] = mapped_column(String(50))
    duration: Mapped[Optional[float]] = mapped_column(Float)  # hours, jobs only

    # Person fields
    employee_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("employees.id", ondelete="CASCADE"))
    vehicle_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"))

    # Note fields
    note_content: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_schedule_items_crew_date", "crew_id", "date"),
        Index("idx_schedule_items_org_status", "organization_id", "status"),
    )


class ColorLabel(Base):
    __tablename__ = "color_labels"

    id: Mapped[str] = uuid_pk()
    color: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organization_id: Mapped[str] = org_fk()

    # One label per color for each member of each organization
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", "color", name="uq_color_label_org_user_color"),
    )


class AuditLog(Base):
    """Append-only audit log for scheduling actions"""
    __tablename__ = "audit_logs"

    id: Mapped[str] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # schedule_item|crew|depot|membership|invite|employee_absence
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|DELETE|APPROVE|REJECT|ARCHIVE|RESTORE
    organization_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))  # admin|operations|user|system
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|ledger|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_id", "timestamp_utc"),
    )
