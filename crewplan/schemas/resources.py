from datetime import date, datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, field_validator


# Enums
class ResourceKind(str, Enum):
    depots = "depots"
    crews = "crews"
    employees = "employees"
    vehicles = "vehicles"


class CrewShift(str, Enum):
    day = "day"
    night = "night"


class EmployeeStatus(str, Enum):
    active = "active"
    holiday = "holiday"
    sick = "sick"


class JobRole(str, Enum):
    operative = "operative"
    assistant = "assistant"


class VehicleStatus(str, Enum):
    active = "active"
    off_road = "off_road"
    maintenance = "maintenance"


class AbsenceType(str, Enum):
    holiday = "holiday"
    sick = "sick"


def _not_blank(v: Optional[str]) -> Optional[str]:
    if v is not None and not v.strip():
        raise ValueError("must not be blank")
    return v.strip() if v is not None else v


# Depot Schemas
class DepotBase(BaseModel):
    name: str
    address: str

    @field_validator("name", "address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _not_blank(v)


class DepotCreate(DepotBase):
    pass


class DepotUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None


class DepotResponse(DepotBase):
    id: str
    organization_id: str
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Crew Schemas
class CrewBase(BaseModel):
    name: str
    depot_id: str
    shift: CrewShift = CrewShift.day

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _not_blank(v)


class CrewCreate(CrewBase):
    pass


class CrewUpdate(BaseModel):
    name: Optional[str] = None
    shift: Optional[CrewShift] = None


class CrewResponse(CrewBase):
    id: str
    organization_id: str
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Employee Schemas
class EmployeeBase(BaseModel):
    name: str
    depot_id: str
    status: EmployeeStatus = EmployeeStatus.active
    job_role: JobRole = JobRole.operative
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _not_blank(v)


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    depot_id: Optional[str] = None
    status: Optional[EmployeeStatus] = None
    job_role: Optional[JobRole] = None
    email: Optional[str] = None


class EmployeeResponse(EmployeeBase):
    id: str
    organization_id: str

    class Config:
        from_attributes = True


# Vehicle Schemas
class VehicleBase(BaseModel):
    name: str
    depot_id: str
    vehicle_type: str
    status: VehicleStatus = VehicleStatus.active
    category: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name", "vehicle_type")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _not_blank(v)


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    name: Optional[str] = None
    depot_id: Optional[str] = None
    vehicle_type: Optional[str] = None
    status: Optional[VehicleStatus] = None
    category: Optional[str] = None
    color: Optional[str] = None


class VehicleResponse(VehicleBase):
    id: str
    organization_id: str

    class Config:
        from_attributes = True


# Absence Schemas
class AbsenceCreate(BaseModel):
    employee_id: str
    absence_type: AbsenceType
    start_date: date
    end_date: Optional[date] = None  # defaults to start_date


class AbsenceResponse(BaseModel):
    id: str
    organization_id: str
    employee_id: str
    absence_type: AbsenceType
    start_date: date
    end_date: date
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
