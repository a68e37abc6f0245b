from datetime import date as date_type, datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, field_validator, model_validator

from ..config import settings


# Enums
class ItemType(str, Enum):
    job = "job"
    operative = "operative"
    assistant = "assistant"
    note = "note"


class BookingStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class JobStatus(str, Enum):
    free = "free"
    booked = "booked"
    cancelled = "cancelled"


# Fields a client may write on a schedule item. Approval fields are owned by the workflow.
EDITABLE_FIELDS = (
    "type",
    "date",
    "crew_id",
    "depot_id",
    "job_status",
    "customer",
    "job_number",
    "address",
    "project_manager",
    "start_time",
    "onsite_time",
    "color",
    "duration",
    "employee_id",
    "vehicle_id",
    "note_content",
)


def check_job_duration(value: float) -> float:
    if value != value:  # NaN
        raise ValueError("duration must be a number")
    if value <= 0 or value > settings.workday_hours:
        raise ValueError(f"duration must be greater than 0 and at most {settings.workday_hours:g} hours")
    return value


class ScheduleItemBase(BaseModel):
    type: ItemType
    date: date_type
    crew_id: str
    depot_id: str
    job_status: JobStatus = JobStatus.booked
    customer: Optional[str] = None
    job_number: Optional[str] = None
    address: Optional[str] = None
    project_manager: Optional[str] = None
    start_time: Optional[str] = None
    onsite_time: Optional[str] = None
    color: Optional[str] = None
    duration: Optional[float] = None
    employee_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    note_content: Optional[str] = None


class ScheduleItemCreate(ScheduleItemBase):
    # Explicit status (e.g. provisional bookings). Kept as a plain string: unknown values are normalized, not refused.
    status: Optional[str] = None

    @field_validator("customer")
    @classmethod
    def customer_not_reserved(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v == settings.free_slot_customer:
            raise ValueError(f"'{v}' is reserved for capacity placeholders")
        return v

    @model_validator(mode="after")
    def job_has_duration(self):
        if self.type == ItemType.job:
            if self.duration is None:
                self.duration = settings.default_job_duration
            check_job_duration(self.duration)
        return self


class ScheduleItemRestore(ScheduleItemCreate):
    """Recreates a deleted item with the approval trail it had before."""
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class ScheduleItemUpdate(BaseModel):
    type: Optional[ItemType] = None
    date: Optional[date_type] = None
    crew_id: Optional[str] = None
    depot_id: Optional[str] = None
    job_status: Optional[JobStatus] = None
    customer: Optional[str] = None
    job_number: Optional[str] = None
    address: Optional[str] = None
    project_manager: Optional[str] = None
    start_time: Optional[str] = None
    onsite_time: Optional[str] = None
    color: Optional[str] = None
    duration: Optional[float] = None
    employee_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    note_content: Optional[str] = None

    @field_validator("customer")
    @classmethod
    def customer_not_reserved(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v == settings.free_slot_customer:
            raise ValueError(f"'{v}' is reserved for capacity placeholders")
        return v

    @field_validator("duration")
    @classmethod
    def duration_in_range(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        return check_job_duration(v)


class ScheduleItemResponse(ScheduleItemBase):
    id: str
    organization_id: Optional[str] = None
    status: BookingStatus = BookingStatus.approved
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True


class RequesterInfo(BaseModel):
    id: str
    role: Optional[str] = None


class PendingItemResponse(ScheduleItemResponse):
    requested_by_user: Optional[RequesterInfo] = None


class ApproveRequest(BaseModel):
    note: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class ColorLabelUpsert(BaseModel):
    color: str
    label: str


class ColorLabelResponse(BaseModel):
    id: str
    color: str
    label: str

    class Config:
        from_attributes = True
