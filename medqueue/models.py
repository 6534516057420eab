# medqueue/models.py
from typing import Optional
from datetime import date, datetime
import uuid

from sqlalchemy import DateTime, Index, text
from sqlmodel import SQLModel, Field

from .application.services.lease import utcnow

_ACTIVE = text("status IN ('waiting', 'notified')")

# Timestamps are stored as UTC with an offset; SQLite keeps only the wall time.
UTC_DATETIME = DateTime(timezone=True)


class WaitlistEntry(SQLModel, table=True):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        Index("ix_waitlist_bucket_status", "doctor_id", "bucket_date", "bucket_time", "status"),
        Index("ix_waitlist_patient_status", "patient_id", "status"),
        Index("ix_waitlist_expiry_status", "expiry_date", "status"),
        # one active entry per patient and bucket
        Index(
            "uq_waitlist_active_patient_bucket",
            "patient_id", "doctor_id", "bucket_date", "bucket_time",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    patient_id: str = Field(max_length=64)
    doctor_id: str = Field(max_length=64)
    bucket_date: date
    bucket_time: str = Field(max_length=5)  # HH:MM
    symptoms: str = Field(max_length=1000)
    appointment_type: str = Field(default="regular", max_length=20)
    priority: str = Field(default="normal", max_length=10)  # low, normal, high, urgent
    status: str = Field(default="waiting", max_length=10)  # waiting, notified, booked, expired
    join_sequence: int
    notification_sent: bool = Field(default=False)
    notification_date: Optional[datetime] = Field(default=None, sa_type=UTC_DATETIME)
    expiry_date: datetime = Field(sa_type=UTC_DATETIME)
    appointment_id: Optional[int] = Field(default=None)
    is_flexible_time: bool = Field(default=False)
    flexible_time_start: Optional[str] = Field(default=None, max_length=5)
    flexible_time_end: Optional[str] = Field(default=None, max_length=5)
    is_flexible_date: bool = Field(default=False)
    flexible_date_start: Optional[date] = Field(default=None)
    flexible_date_end: Optional[date] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)


class BucketSequence(SQLModel, table=True):
    __tablename__ = "waitlist_bucket_sequences"

    doctor_id: str = Field(primary_key=True, max_length=64)
    bucket_date: date = Field(primary_key=True)
    bucket_time: str = Field(primary_key=True, max_length=5)
    last_sequence: int = Field(default=0)


class TimeSlot(SQLModel, table=True):
    __tablename__ = "time_slots"
    __table_args__ = (
        Index("ix_time_slots_lookup", "doctor_id", "slot_date", "start_time", "is_available"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    doctor_id: str = Field(max_length=64)
    slot_date: date
    start_time: str = Field(max_length=5)  # HH:MM
    end_time: str = Field(max_length=5)  # HH:MM
    max_patients: int = Field(ge=1, le=20)
    booked_patients: int = Field(default=0, ge=0)
    is_available: bool = Field(default=True)
    is_blocked: bool = Field(default=False)
    block_reason: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    doctor_id: str = Field(max_length=64, index=True)
    appointment_date: datetime = Field(sa_type=UTC_DATETIME)
    appointment_time: str  # HH:MM format
    symptoms: str
    appointment_type: str = Field(default="regular")
    priority: str = Field(default="normal")
    status: str = Field(default="confirmed")  # scheduled, confirmed, cancelled, completed
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    type: str = Field(default="waitlist")
    message: str
    is_urgent: bool = Field(default=False)
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME)
