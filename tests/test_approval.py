"""
Tests for booking approval: initial status, approve/reject guards, pending list.
"""

from datetime import date

import pytest

from crewplan.errors import InvalidTransition, NotFound, ValidationError
from crewplan.schemas.scheduling import BookingStatus, ScheduleItemCreate
from crewplan.services import approval, audit, scheduling

DAY = date(2030, 1, 7)


def booking(world, **overrides):
    values = {
        "type": "job",
        "date": DAY,
        "crew_id": world.crew.id,
        "depot_id": world.depot.id,
        "customer": "Acme Water",
        "duration": 4,
    }
    values.update(overrides)
    return ScheduleItemCreate(**values)


class TestInitialStatus:
    @pytest.mark.parametrize(
        "role,plan,expected",
        [
            ("admin", "starter", BookingStatus.approved),
            ("operations", "starter", BookingStatus.approved),
            ("user", "starter", BookingStatus.approved),
            ("admin", "pro", BookingStatus.approved),
            ("operations", "pro", BookingStatus.approved),
            ("user", "pro", BookingStatus.pending),
        ],
    )
    def test_defaults(self, role, plan, expected):
        assert approval.initial_status(role, plan) == expected

    def test_explicit_status_overrides_default(self):
        assert approval.initial_status("admin", "starter", "pending") == BookingStatus.pending
        assert approval.initial_status("user", "pro", "approved") == BookingStatus.approved

    def test_blank_explicit_status_uses_default(self):
        assert approval.initial_status("user", "pro", "  ") == BookingStatus.pending

    def test_invalid_explicit_status_normalized(self):
        assert approval.initial_status("user", "pro", "maybe") == BookingStatus.approved

    def test_transition_table(self):
        assert approval.can_transition("pending", "approved")
        assert approval.can_transition("pending", "rejected")
        assert not approval.can_transition("approved", "rejected")
        assert not approval.can_transition("rejected", "approved")
        assert not approval.can_transition("pending", "nonsense")
        assert approval.is_final("approved") and not approval.is_final("pending")


class TestCreateAssignsStatus:
    def test_pro_user_booking_is_pending(self, db, pro_world):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        assert item.status == "pending"
        assert item.requested_by == pro_world.user_id
        assert item.approved_by is None
        assert item.approved_at is None
        assert item.job_status == "booked"

    def test_auto_approved_booking_records_requester_as_approver(self, db, world):
        item = scheduling.create_item(db, world.ctx(world.user_id), booking(world))
        assert item.status == "approved"
        assert item.approved_by == world.user_id
        assert item.approved_at is not None


class TestTransitions:
    def test_approve_pending(self, db, pro_world):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        approved = approval.approve(db, pro_world.org.id, item.id, approver_id=pro_world.operations_id)
        assert approved.status == "approved"
        assert approved.approved_by == pro_world.operations_id
        assert approved.approved_at is not None

    def test_reject_pending_requires_reason(self, db, pro_world):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        for reason in (None, "", "   "):
            with pytest.raises(ValidationError):
                approval.reject(db, pro_world.org.id, item.id, approver_id=pro_world.owner_id, reason=reason)
        db.refresh(item)
        assert item.status == "pending"

        rejected = approval.reject(db, pro_world.org.id, item.id, approver_id=pro_world.owner_id, reason="Crew unavailable")
        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Crew unavailable"
        assert rejected.approved_by == pro_world.owner_id

    @pytest.mark.parametrize("first", ["approve", "reject"])
    def test_non_pending_is_invalid_transition(self, db, pro_world, first):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        if first == "approve":
            approval.approve(db, pro_world.org.id, item.id, approver_id=pro_world.owner_id)
        else:
            approval.reject(db, pro_world.org.id, item.id, approver_id=pro_world.owner_id, reason="No")
        db.refresh(item)
        snapshot = (item.status, item.approved_by, item.approved_at, item.rejection_reason)

        with pytest.raises(InvalidTransition):
            approval.approve(db, pro_world.org.id, item.id, approver_id=pro_world.operations_id)
        with pytest.raises(InvalidTransition):
            approval.reject(db, pro_world.org.id, item.id, approver_id=pro_world.operations_id, reason="Again")

        db.refresh(item)
        assert (item.status, item.approved_by, item.approved_at, item.rejection_reason) == snapshot

    def test_missing_item_is_not_found(self, db, world):
        with pytest.raises(NotFound):
            approval.approve(db, world.org.id, "missing", approver_id=world.owner_id)

    def test_other_organizations_items_are_not_found(self, db, world, pro_world):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        with pytest.raises(NotFound):
            approval.approve(db, world.org.id, item.id, approver_id=world.owner_id)


class TestPendingList:
    def test_pending_items_include_requester(self, db, pro_world):
        pending = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        scheduling.create_item(db, pro_world.ctx(pro_world.owner_id), booking(pro_world, customer="Owner job"))

        entries = approval.pending_items_for(db, pro_world.org.id)
        assert [e["item"].id for e in entries] == [pending.id]
        assert entries[0]["requested_by_user"] == {"id": pro_world.user_id, "role": "user"}


class TestAuditTrail:
    def test_review_steps_are_logged_and_verifiable(self, db, pro_world):
        item = scheduling.create_item(db, pro_world.ctx(pro_world.user_id), booking(pro_world))
        approval.approve(db, pro_world.org.id, item.id, approver_id=pro_world.operations_id, approver_role="operations")

        logs = audit.get_audit_logs(db, pro_world.org.id, entity_type="schedule_item", entity_id=item.id)
        by_action = {log.action: log for log in logs}
        assert set(by_action) == {"CREATE", "APPROVE"}
        assert by_action["APPROVE"].changes_json == {"status": {"before": "pending", "after": "approved"}}
        assert by_action["APPROVE"].actor_id == pro_world.operations_id
        assert by_action["CREATE"].changes_json["after"]["date"] == DAY.isoformat()
        assert all(audit.verify_audit_log(log) for log in logs)

    def test_edited_entry_fails_verification(self, db, world):
        item = scheduling.create_item(db, world.ctx(world.owner_id), booking(world))
        log = audit.get_audit_logs(db, world.org.id, entity_id=item.id)[0]

        log.changes_json = {"after": {"customer": "Someone Else"}}
        db.commit()
        db.refresh(log)
        assert not audit.verify_audit_log(log)

    def test_wrong_secret_fails_verification(self, db, world):
        item = scheduling.create_item(db, world.ctx(world.owner_id), booking(world))
        log = audit.get_audit_logs(db, world.org.id, entity_id=item.id)[0]
        assert audit.verify_audit_log(log)
        assert not audit.verify_audit_log(log, integrity_secret="another-secret")

    def test_logs_are_scoped_to_the_organization(self, db, world, pro_world):
        scheduling.create_item(db, world.ctx(world.owner_id), booking(world))
        assert audit.get_audit_logs(db, pro_world.org.id) == []
