# medqueue/schemas/waitlist.py
import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from ..application.ports.waitlist_repo import WaitlistEntryDto

TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

Priority = Literal["low", "normal", "high", "urgent"]
AppointmentType = Literal["regular", "emergency", "follow-up", "consultation", "telemedicine"]


def _check_time(value: str) -> str:
    if not TIME_RE.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


ClockTime = Annotated[str, AfterValidator(_check_time)]


class FlexibleTimeRange(BaseModel):
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None


class FlexibleDateRange(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class WaitlistJoinRequest(BaseModel):
    doctor_id: str = Field(min_length=1, max_length=64)
    date: str  # YYYY-MM-DD
    time: ClockTime  # HH:MM
    symptoms: str = Field(min_length=3, max_length=1000)
    appointment_type: AppointmentType = "regular"
    priority: Priority = "normal"
    is_flexible_time: bool = False
    flexible_time_range: Optional[FlexibleTimeRange] = None
    is_flexible_date: bool = False
    flexible_date_range: Optional[FlexibleDateRange] = None

    @field_validator("symptoms")
    @classmethod
    def strip_symptoms(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Symptoms must be between 3 and 1000 characters")
        return v

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError("Valid date required (YYYY-MM-DD)")
        return v


class WaitlistEntryResponse(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    date: str
    time: str
    symptoms: str
    appointment_type: str
    priority: str
    status: str
    position_in_queue: Optional[int] = None
    notification_sent: bool = False
    notification_date: Optional[datetime] = None
    expiry_date: datetime
    appointment_id: Optional[int] = None
    is_flexible_time: bool = False
    flexible_time_range: Optional[FlexibleTimeRange] = None
    is_flexible_date: bool = False
    flexible_date_range: Optional[FlexibleDateRange] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dto(cls, e: WaitlistEntryDto) -> "WaitlistEntryResponse":
        time_range = None
        if e.flexible_time_range:
            time_range = FlexibleTimeRange(start_time=e.flexible_time_range.start, end_time=e.flexible_time_range.end)
        date_range = None
        if e.flexible_date_range:
            date_range = FlexibleDateRange(start_date=e.flexible_date_range.start, end_date=e.flexible_date_range.end)
        return cls(
            id=e.id,
            patient_id=e.patient_id,
            doctor_id=e.doctor_id,
            date=e.bucket_date.strftime("%Y-%m-%d"),
            time=e.bucket_time,
            symptoms=e.symptoms,
            appointment_type=e.appointment_type,
            priority=e.priority,
            status=e.status,
            position_in_queue=e.position_in_queue,
            notification_sent=e.notification_sent,
            notification_date=e.notification_date,
            expiry_date=e.expiry_date,
            appointment_id=e.appointment_id,
            is_flexible_time=e.is_flexible_time,
            flexible_time_range=time_range,
            is_flexible_date=e.is_flexible_date,
            flexible_date_range=date_range,
            created_at=e.created_at,
            updated_at=e.updated_at,
        )


class WaitlistPageResponse(BaseModel):
    success: bool = True
    waitlist: List[WaitlistEntryResponse]
    pagination: Dict[str, int]
    statistics: Optional[Dict[str, Any]] = None


class CascadeRequest(BaseModel):
    doctor_id: str = Field(min_length=1, max_length=64)
    date: str
    time: ClockTime


class CascadeResponse(BaseModel):
    success: bool
    message: str
    queue_empty: bool
    notified: Optional[WaitlistEntryResponse] = None


class ConversionResponse(BaseModel):
    success: bool = True
    message: str = "Appointment successfully booked from waitlist"
    appointment_id: int
    waitlist: WaitlistEntryResponse


class SweepResponse(BaseModel):
    success: bool = True
    scanned: int
    expired: int
    offered: int
    skipped: int
    failed: int
