"""
Tests for employee holiday and sickness records.
"""

from datetime import date

import pytest

from crewplan.errors import Forbidden, NotFound, ValidationError
from crewplan.models.models import Employee, EmployeeAbsence
from crewplan.schemas.resources import ResourceKind
from crewplan.services import absences, resources
from tests.factories import auth_headers

MONDAY = date(2030, 1, 7)


@pytest.fixture
def employee(db, world):
    emp = Employee(name="Sam", depot_id=world.depot.id, organization_id=world.org.id)
    db.add(emp)
    db.commit()
    return emp


class TestCreateAbsence:
    def test_single_day_defaults_end_to_start(self, db, world, employee):
        absence = absences.create_absence(db, world.ctx(world.operations_id), employee.id, "sick", MONDAY)
        assert (absence.start_date, absence.end_date) == (MONDAY, MONDAY)
        assert absence.absence_type == "sick"
        assert absence.created_by == world.operations_id

    def test_end_before_start_is_rejected(self, db, world, employee):
        with pytest.raises(ValidationError):
            absences.create_absence(
                db, world.ctx(world.owner_id), employee.id, "holiday", MONDAY, date(2030, 1, 6)
            )

    def test_unknown_type_is_rejected(self, db, world, employee):
        with pytest.raises(ValidationError):
            absences.create_absence(db, world.ctx(world.owner_id), employee.id, "training", MONDAY)

    def test_employee_must_belong_to_the_organization(self, db, world, pro_world):
        foreign = Employee(name="Kim", depot_id=pro_world.depot.id, organization_id=pro_world.org.id)
        db.add(foreign)
        db.commit()
        with pytest.raises(ValidationError):
            absences.create_absence(db, world.ctx(world.owner_id), foreign.id, "holiday", MONDAY)

    def test_users_cannot_record_absences(self, db, world, employee):
        with pytest.raises(Forbidden):
            absences.create_absence(db, world.ctx(world.user_id), employee.id, "holiday", MONDAY)


class TestListAbsences:
    def test_range_filter_matches_overlaps(self, db, world, employee):
        ctx = world.ctx(world.owner_id)
        week = absences.create_absence(db, ctx, employee.id, "holiday", MONDAY, date(2030, 1, 11))
        absences.create_absence(db, ctx, employee.id, "sick", date(2030, 2, 1))

        found = absences.list_absences(db, ctx, start=date(2030, 1, 10), end=date(2030, 1, 20))
        assert [a.id for a in found] == [week.id]

    def test_reversed_range_is_rejected(self, db, world):
        with pytest.raises(ValidationError):
            absences.list_absences(db, world.ctx(world.owner_id), start=date(2030, 2, 1), end=MONDAY)

    def test_users_cannot_list(self, db, world):
        with pytest.raises(Forbidden):
            absences.list_absences(db, world.ctx(world.user_id))


class TestDeleteAbsence:
    def test_delete(self, db, world, employee):
        ctx = world.ctx(world.owner_id)
        absence = absences.create_absence(db, ctx, employee.id, "sick", MONDAY)
        absences.delete_absence(db, ctx, absence.id)
        assert db.query(EmployeeAbsence).count() == 0

    def test_missing(self, db, world):
        with pytest.raises(NotFound):
            absences.delete_absence(db, world.ctx(world.owner_id), "nope")

    def test_deleting_the_employee_drops_their_absences(self, db, world, employee):
        ctx = world.ctx(world.owner_id)
        absences.create_absence(db, ctx, employee.id, "holiday", MONDAY)
        resources.delete_resource(db, ctx, ResourceKind.employees, employee.id)
        assert db.query(EmployeeAbsence).count() == 0


class TestAbsenceApi:
    def test_round_trip(self, client, world, employee):
        headers = auth_headers(world.operations_id)
        r = client.post(
            "/employee-absences",
            json={"employee_id": employee.id, "absence_type": "holiday", "start_date": "2030-01-07", "end_date": "2030-01-09"},
            headers=headers,
        )
        assert r.status_code == 201
        absence_id = r.json()["id"]

        listed = client.get("/employee-absences", params={"start": "2030-01-08"}, headers=headers).json()
        assert [a["id"] for a in listed] == [absence_id]

        assert client.delete(f"/employee-absences/{absence_id}", headers=headers).json() == {"ok": True}

    def test_bad_type_is_422(self, client, world, employee):
        r = client.post(
            "/employee-absences",
            json={"employee_id": employee.id, "absence_type": "training", "start_date": "2030-01-07"},
            headers=auth_headers(world.owner_id),
        )
        assert r.status_code == 422
