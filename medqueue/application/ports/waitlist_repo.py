from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Tuple

WAITING = "waiting"
NOTIFIED = "notified"
BOOKED = "booked"
EXPIRED = "expired"

STATUSES = (WAITING, NOTIFIED, BOOKED, EXPIRED)
ACTIVE_STATUSES = (WAITING, NOTIFIED)
TERMINAL_STATUSES = (BOOKED, EXPIRED)

PRIORITIES = ("low", "normal", "high", "urgent")
APPOINTMENT_TYPES = ("regular", "emergency", "follow-up", "consultation", "telemedicine")


@dataclass(frozen=True)
class Bucket:
    """One appointment slot's waitlist and capacity pool."""

    doctor_id: str
    date: date
    time: str  # HH:MM

    def describe(self) -> str:
        return f"{self.doctor_id}/{self.date.isoformat()}/{self.time}"


@dataclass
class TimeRange:
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass
class NewWaitlistEntry:
    patient_id: str
    bucket: Bucket
    symptoms: str
    appointment_type: str
    priority: str
    expiry_date: datetime
    created_at: datetime
    is_flexible_time: bool = False
    flexible_time_range: Optional[TimeRange] = None
    is_flexible_date: bool = False
    flexible_date_range: Optional[DateRange] = None


@dataclass
class WaitlistEntryDto:
    id: str
    patient_id: str
    doctor_id: str
    bucket_date: date
    bucket_time: str
    symptoms: str
    appointment_type: str
    priority: str
    status: str
    join_sequence: int
    expiry_date: datetime
    created_at: datetime
    updated_at: datetime
    notification_date: Optional[datetime] = None
    notification_sent: bool = False
    appointment_id: Optional[int] = None
    is_flexible_time: bool = False
    flexible_time_range: Optional[TimeRange] = None
    is_flexible_date: bool = False
    flexible_date_range: Optional[DateRange] = None
    # Derived at read time; only waiting entries have a position.
    position_in_queue: Optional[int] = field(default=None, compare=False)

    @property
    def bucket(self) -> Bucket:
        return Bucket(self.doctor_id, self.bucket_date, self.bucket_time)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class WaitlistQuery:
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    bucket_date: Optional[date] = None
    status: Optional[str] = None
    offset: int = 0
    limit: int = 20
    order: str = "newest"  # newest | queue


class DuplicateActiveEntry(Exception):
    """Storage refused a second active entry for the same patient and bucket."""


class WaitlistRepository(Protocol):
    def add(self, entry: NewWaitlistEntry) -> WaitlistEntryDto:
        """Persist a waiting entry, assigning the bucket's next join sequence atomically.

        Raises DuplicateActiveEntry when the patient already holds an active
        entry for the bucket.
        """
        ...

    def get(self, entry_id: str) -> Optional[WaitlistEntryDto]:
        ...

    def find_active(self, patient_id: str, bucket: Bucket) -> Optional[WaitlistEntryDto]:
        ...

    def list_waiting(self, bucket: Bucket) -> List[WaitlistEntryDto]:
        """Waiting entries of a bucket in join order."""
        ...

    def list_lapsed(self, now: datetime) -> List[WaitlistEntryDto]:
        """Notified entries whose expiry date is strictly before ``now``."""
        ...

    def mark_notified(self, entry_id: str, notification_date: datetime, expiry_date: datetime) -> bool:
        """waiting -> notified; False when the entry was no longer waiting."""
        ...

    def mark_booked(self, entry_id: str, appointment_id: int, now: datetime) -> bool:
        """notified -> booked; False when the entry was no longer notified."""
        ...

    def mark_expired(self, entry_id: str, expiry_date: datetime, now: datetime) -> bool:
        """notified -> expired; False when the entry was no longer notified."""
        ...

    def delete(self, entry_id: str, expected_status: str) -> bool:
        ...

    def search(self, query: WaitlistQuery) -> Tuple[List[WaitlistEntryDto], int]:
        ...

    def status_counts(self) -> Dict[str, int]:
        ...
