from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_caller
from ..schemas.resources import (
    ResourceKind,
    AbsenceCreate,
    AbsenceResponse,
    DepotCreate,
    DepotUpdate,
    DepotResponse,
    CrewCreate,
    CrewUpdate,
    CrewResponse,
    EmployeeCreate,
    EmployeeUpdate,
    EmployeeResponse,
    VehicleCreate,
    VehicleUpdate,
    VehicleResponse,
)
from ..services import absences, resources
from ..services.access import OrganizationContext

router = APIRouter(tags=["resources"])


# ---- Depots ----

@router.get("/depots", response_model=List[DepotResponse])
def list_depots(
    include_archived: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.list_resources(db, ctx.organization_id, ResourceKind.depots, include_archived=include_archived)


@router.post("/depots", response_model=DepotResponse, status_code=201)
def create_depot(payload: DepotCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.create_resource(db, ctx, ResourceKind.depots, payload)


@router.patch("/depots/{depot_id}", response_model=DepotResponse)
def update_depot(
    depot_id: str,
    payload: DepotUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.update_resource(db, ctx, ResourceKind.depots, depot_id, payload)


@router.delete("/depots/{depot_id}", response_model=DepotResponse)
def archive_depot(depot_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    """Archive the depot and its crews; bookings from today on are dropped, history is kept"""
    return resources.archive_depot(db, ctx, depot_id)


@router.post("/depots/{depot_id}/restore", response_model=DepotResponse)
def restore_depot(depot_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.restore_depot(db, ctx, depot_id)


# ---- Crews ----

@router.get("/crews", response_model=List[CrewResponse])
def list_crews(
    include_archived: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.list_crews(db, ctx.organization_id, include_archived=include_archived)


@router.post("/crews", response_model=CrewResponse, status_code=201)
def create_crew(payload: CrewCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.create_resource(db, ctx, ResourceKind.crews, payload)


@router.patch("/crews/{crew_id}", response_model=CrewResponse)
def update_crew(
    crew_id: str,
    payload: CrewUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.update_resource(db, ctx, ResourceKind.crews, crew_id, payload)


@router.delete("/crews/{crew_id}", response_model=CrewResponse)
def archive_crew(crew_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    """Archive (not delete): drops the crew's bookings from today on, keeps history"""
    return resources.archive_crew(db, ctx, crew_id)


@router.post("/crews/{crew_id}/restore", response_model=CrewResponse)
def restore_crew(crew_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.restore_crew(db, ctx, crew_id)


# ---- Employees ----

@router.get("/employees", response_model=List[EmployeeResponse])
def list_employees(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.list_resources(db, ctx.organization_id, ResourceKind.employees)


@router.post("/employees", response_model=EmployeeResponse, status_code=201)
def create_employee(payload: EmployeeCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.create_resource(db, ctx, ResourceKind.employees, payload)


@router.patch("/employees/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: str,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.update_resource(db, ctx, ResourceKind.employees, employee_id, payload)


@router.delete("/employees/{employee_id}")
def delete_employee(employee_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    resources.delete_resource(db, ctx, ResourceKind.employees, employee_id)
    return {"ok": True}


# ---- Vehicles ----

@router.get("/vehicles", response_model=List[VehicleResponse])
def list_vehicles(db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.list_resources(db, ctx.organization_id, ResourceKind.vehicles)


@router.post("/vehicles", response_model=VehicleResponse, status_code=201)
def create_vehicle(payload: VehicleCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return resources.create_resource(db, ctx, ResourceKind.vehicles, payload)


@router.patch("/vehicles/{vehicle_id}", response_model=VehicleResponse)
def update_vehicle(
    vehicle_id: str,
    payload: VehicleUpdate,
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    return resources.update_resource(db, ctx, ResourceKind.vehicles, vehicle_id, payload)


@router.delete("/vehicles/{vehicle_id}")
def delete_vehicle(vehicle_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    resources.delete_resource(db, ctx, ResourceKind.vehicles, vehicle_id)
    return {"ok": True}


# ---- Employee absences ----

@router.get("/employee-absences", response_model=List[AbsenceResponse])
def list_absences(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    employee_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    ctx: OrganizationContext = Depends(get_caller),
):
    """Holiday and sickness records overlapping [start, end]"""
    return absences.list_absences(db, ctx, start, end, employee_id)


@router.post("/employee-absences", response_model=AbsenceResponse, status_code=201)
def create_absence(payload: AbsenceCreate, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    return absences.create_absence(
        db, ctx, payload.employee_id, payload.absence_type.value, payload.start_date, payload.end_date
    )


@router.delete("/employee-absences/{absence_id}")
def delete_absence(absence_id: str, db: Session = Depends(get_db), ctx: OrganizationContext = Depends(get_caller)):
    absences.delete_absence(db, ctx, absence_id)
    return {"ok": True}
