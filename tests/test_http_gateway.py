"""
Tests for the HTTP and in-process gateways, and a LedgerSession running over each.
"""

from datetime import date

import httpx
import pytest

from crewplan.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    QuotaExceeded,
    SchedulingError,
    SubscriptionInactive,
    Unauthorized,
    ValidationError,
)
from crewplan.ledger.gateway import ServiceGateway
from crewplan.ledger.http_gateway import HttpGateway, error_from_response
from crewplan.ledger.session import LedgerSession
from crewplan.models.models import AuditLog, ScheduleItem
from crewplan.schemas.scheduling import ScheduleItemCreate, ScheduleItemUpdate
from crewplan.services import approval
from crewplan.auth.security import create_access_token

DAY = date(2030, 1, 7)


def job(world, hours=5, **overrides):
    values = {
        "type": "job",
        "date": DAY,
        "crew_id": world.crew.id,
        "depot_id": world.depot.id,
        "customer": "Acme Water",
        "duration": hours,
    }
    values.update(overrides)
    return values


@pytest.fixture
def http_gateway(client, world):
    return HttpGateway(client=client, token=create_access_token(world.operations_id))


class TestErrorMapping:
    def _response(self, status, body):
        return httpx.Response(status, json=body)

    def test_quota_body(self):
        err = error_from_response(
            self._response(403, {"error": "maximum of 1 depot", "quotaExceeded": True, "currentUsage": 1, "limit": 1})
        )
        assert isinstance(err, QuotaExceeded)
        assert (err.current_usage, err.limit) == (1, 1)

    def test_plain_forbidden(self):
        assert isinstance(error_from_response(self._response(403, {"error": "nope"})), Forbidden)

    def test_subscription(self):
        err = error_from_response(self._response(402, {"error": "x", "subscriptionStatus": "canceled"}))
        assert isinstance(err, SubscriptionInactive)
        assert err.subscription_status == "canceled"

    @pytest.mark.parametrize(
        "status,cls",
        [(400, ValidationError), (401, Unauthorized), (404, NotFound), (409, InvalidTransition), (422, ValidationError)],
    )
    def test_status_classes(self, status, cls):
        assert type(error_from_response(self._response(status, {"error": "e"}))) is cls

    def test_fastapi_detail_is_used_as_message(self):
        err = error_from_response(self._response(422, {"detail": [{"msg": "bad duration"}]}))
        assert "bad duration" in err.message

    def test_unknown_status_keeps_code(self):
        err = error_from_response(httpx.Response(503, text="upstream down"))
        assert type(err) is SchedulingError
        assert err.status_code == 503


class TestHttpGateway:
    def test_crud(self, http_gateway, world):
        created = http_gateway.create_item(ScheduleItemCreate(**job(world)))
        assert created["date"] == DAY
        assert created["status"] == "approved"

        updated = http_gateway.update_item(created["id"], ScheduleItemUpdate(duration=3))
        assert updated["duration"] == 3

        assert [i["id"] for i in http_gateway.list_items(DAY, DAY)] == [created["id"]]

        http_gateway.delete_item(created["id"])
        assert http_gateway.list_items() == []

    def test_missing_item(self, http_gateway):
        with pytest.raises(NotFound):
            http_gateway.delete_item("missing")

    def test_bad_token(self, client, world):
        gateway = HttpGateway(client=client, token="garbage")
        with pytest.raises(Unauthorized):
            gateway.list_items()


class TestLedgerOverHttp:
    def test_undo_redo_round_trip(self, http_gateway, world, db):
        session = LedgerSession(http_gateway)
        session.load()

        created = session.create(job(world, hours=5))
        assert [p["duration"] for p in session.placeholders()] == [3]

        session.undo()
        assert db.query(ScheduleItem).count() == 0
        assert session.items == []

        session.redo()
        rows = db.query(ScheduleItem).all()
        assert len(rows) == 1
        assert rows[0].id != created["id"]
        assert session.real_items()[0]["id"] == rows[0].id

    def test_server_rejection_rolls_back(self, http_gateway, world):
        session = LedgerSession(http_gateway)
        session.load()
        session.create(job(world, hours=5))
        before = session.items

        with pytest.raises(ValidationError):
            session.create(job(world, hours=2, crew_id="not-a-crew"))
        assert session.items == before


class TestLedgerOverServices:
    def test_undo_delete_restores_row(self, db, world):
        session = LedgerSession(ServiceGateway(db, world.ctx(world.operations_id)))
        session.load()
        created = session.create(job(world, hours=6))

        session.delete(created["id"])
        assert db.query(ScheduleItem).count() == 0

        session.undo()
        row = db.query(ScheduleItem).one()
        assert row.duration == 6
        assert row.customer == "Acme Water"
        assert session.history.history[-1].item["id"] == row.id

    def test_pending_status_survives_undo(self, db, pro_world):
        session = LedgerSession(ServiceGateway(db, pro_world.ctx(pro_world.user_id)))
        session.load()
        created = session.create(job(pro_world, hours=4))
        assert created["status"] == "pending"

        session.delete(created["id"])
        session.undo()
        assert db.query(ScheduleItem).one().status == "pending"

    def test_undo_delete_keeps_rejection_trail(self, db, pro_world):
        requested = ServiceGateway(db, pro_world.ctx(pro_world.user_id)).create_item(
            ScheduleItemCreate(**job(pro_world, hours=4))
        )
        approval.reject(
            db,
            pro_world.org.id,
            requested["id"],
            approver_id=pro_world.operations_id,
            reason="No crew available",
            approver_role="operations",
        )

        session = LedgerSession(ServiceGateway(db, pro_world.ctx(pro_world.operations_id)))
        session.load()
        session.delete(requested["id"])
        session.undo()

        row = db.query(ScheduleItem).one()
        assert row.id != requested["id"]
        assert row.status == "rejected"
        assert row.rejection_reason == "No crew available"
        assert row.approved_by == pro_world.operations_id
        assert row.requested_by == pro_world.user_id

        restored = db.query(AuditLog).filter(AuditLog.entity_id == row.id, AuditLog.action == "CREATE").one()
        assert restored.context["restored"] is True


class TestRestoreEndpoint:
    def test_undo_over_http_keeps_approval_fields(self, client, pro_world, db):
        user_headers = {"Authorization": f"Bearer {create_access_token(pro_world.user_id)}"}
        body = {**job(pro_world, hours=3), "date": DAY.isoformat()}
        requested = client.post("/schedule-items", json=body, headers=user_headers).json()
        assert requested["status"] == "pending"

        ops = HttpGateway(client=client, token=create_access_token(pro_world.operations_id))
        approved = client.post(
            f"/schedule-items/{requested['id']}/approve",
            headers={"Authorization": f"Bearer {create_access_token(pro_world.operations_id)}"},
        ).json()

        session = LedgerSession(ops)
        session.load()
        session.delete(approved["id"])
        session.undo()

        row = db.query(ScheduleItem).one()
        assert row.status == "approved"
        assert row.requested_by == pro_world.user_id
        assert row.approved_by == pro_world.operations_id
        assert row.approved_at is not None

    def test_plain_create_ignores_trail_fields(self, client, pro_world, db):
        headers = {"Authorization": f"Bearer {create_access_token(pro_world.user_id)}"}
        body = {**job(pro_world, hours=3), "date": DAY.isoformat(), "approved_by": "someone-else"}
        created = client.post("/schedule-items", json=body, headers=headers).json()
        assert created["approved_by"] is None
        assert created["requested_by"] == pro_world.user_id
