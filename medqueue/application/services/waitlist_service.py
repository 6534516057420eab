import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from ...exceptions import WaitlistValidationError
from ..ports.appointments_repo import AppointmentsGateway
from ..ports.audit_logger import AuditLogger
from ..ports.notifier import Notifier
from ..ports.waitlist_repo import (
    APPOINTMENT_TYPES,
    PRIORITIES,
    STATUSES,
    WAITING,
    Bucket,
    DateRange,
    DuplicateActiveEntry,
    NewWaitlistEntry,
    TimeRange,
    WaitlistEntryDto,
    WaitlistQuery,
    WaitlistRepository,
)
from .lease import Lease, utcnow
from .notifications import describe_bucket, send_quietly
from .queue_rank import queue_positions

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
SYMPTOMS_MIN_LENGTH = 3
SYMPTOMS_MAX_LENGTH = 1000


@dataclass
class Page:
    items: List[WaitlistEntryDto]
    total: int
    page: int
    limit: int
    statistics: Optional[Dict] = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def parse_bucket_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise WaitlistValidationError("Invalid date format. Use YYYY-MM-DD")


def normalize_time(value: str) -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise WaitlistValidationError("Time must be in HH:MM format")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


@dataclass
class WaitlistService:
    """Join plus the read projections over the waitlist store."""

    repo: WaitlistRepository
    appointments: AppointmentsGateway
    notifier: Notifier
    audit: Optional[AuditLogger] = None
    join_horizon: timedelta = timedelta(hours=24)
    clock: Callable[[], datetime] = field(default=utcnow)

    def join(
        self,
        patient_id: str,
        doctor_id: str,
        date_str: str,
        time_str: str,
        symptoms: str,
        appointment_type: str = "regular",
        priority: str = "normal",
        is_flexible_time: bool = False,
        flexible_time_range: Optional[TimeRange] = None,
        is_flexible_date: bool = False,
        flexible_date_range: Optional[DateRange] = None,
    ) -> WaitlistEntryDto:
        if not doctor_id:
            raise WaitlistValidationError("Valid doctor ID required")
        bucket = Bucket(doctor_id=str(doctor_id), date=parse_bucket_date(date_str), time=normalize_time(time_str))

        now = self.clock()
        if bucket.date < now.date():
            raise WaitlistValidationError("Waitlist date cannot be in the past")

        symptoms = (symptoms or "").strip()
        if not SYMPTOMS_MIN_LENGTH <= len(symptoms) <= SYMPTOMS_MAX_LENGTH:
            raise WaitlistValidationError(
                f"Symptoms must be between {SYMPTOMS_MIN_LENGTH} and {SYMPTOMS_MAX_LENGTH} characters"
            )
        if appointment_type not in APPOINTMENT_TYPES:
            raise WaitlistValidationError(f"Invalid appointment type. Must be one of: {list(APPOINTMENT_TYPES)}")
        if priority not in PRIORITIES:
            raise WaitlistValidationError(f"Invalid priority. Must be one of: {list(PRIORITIES)}")
        if flexible_time_range is not None:
            for value in (flexible_time_range.start, flexible_time_range.end):
                if value is not None:
                    normalize_time(value)
        if flexible_date_range and flexible_date_range.start and flexible_date_range.end:
            if flexible_date_range.start > flexible_date_range.end:
                raise WaitlistValidationError("Flexible date range must start before it ends")

        if self.repo.find_active(patient_id, bucket):
            raise WaitlistValidationError("You are already in the waitlist for this slot")
        if self.appointments.has_active_booking(patient_id, bucket):
            raise WaitlistValidationError("You already have an appointment for this slot")

        horizon = Lease.acquire(now, self.join_horizon)
        try:
            entry = self.repo.add(
                NewWaitlistEntry(
                    patient_id=patient_id,
                    bucket=bucket,
                    symptoms=symptoms,
                    appointment_type=appointment_type,
                    priority=priority,
                    expiry_date=horizon.expires_at,
                    created_at=now,
                    is_flexible_time=is_flexible_time,
                    flexible_time_range=flexible_time_range,
                    is_flexible_date=is_flexible_date,
                    flexible_date_range=flexible_date_range,
                )
            )
        except DuplicateActiveEntry:
            raise WaitlistValidationError("You are already in the waitlist for this slot")

        self.attach_positions([entry])
        send_quietly(
            self.notifier,
            patient_id,
            f"You have been added to the waitlist for {describe_bucket(bucket)}. "
            f"Your position: {entry.position_in_queue}",
        )
        if self.audit:
            self.audit.log(
                "waitlist.joined",
                user_id=patient_id,
                entry_id=entry.id,
                details={"bucket": bucket.describe(), "priority": priority, "position": entry.position_in_queue},
            )
        logger.info("Patient %s joined waitlist %s at position %s", patient_id, bucket.describe(), entry.position_in_queue)
        return entry

    def attach_positions(self, entries: List[WaitlistEntryDto]) -> List[WaitlistEntryDto]:
        """Fill in the derived queue position of every waiting entry."""
        by_bucket: Dict[Bucket, Dict[str, int]] = {}
        for entry in entries:
            if entry.status != WAITING:
                entry.position_in_queue = None
                continue
            bucket = entry.bucket
            if bucket not in by_bucket:
                by_bucket[bucket] = queue_positions(self.repo.list_waiting(bucket))
            entry.position_in_queue = by_bucket[bucket].get(entry.id)
        return entries

    def list_for_patient(self, patient_id: str, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Page:
        return self._page(WaitlistQuery(patient_id=patient_id, status=status), page, limit)

    def list_for_doctor(
        self, doctor_id: str, date_str: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Page:
        bucket_date = parse_bucket_date(date_str) if date_str else None
        return self._page(
            WaitlistQuery(doctor_id=doctor_id, bucket_date=bucket_date, status=status, order="queue"), page, limit
        )

    def list_all(
        self,
        status: Optional[str] = None,
        doctor_id: Optional[str] = None,
        date_str: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        bucket_date = parse_bucket_date(date_str) if date_str else None
        result = self._page(WaitlistQuery(doctor_id=doctor_id, bucket_date=bucket_date, status=status), page, limit)
        counts = self.repo.status_counts()
        result.statistics = {
            "total": sum(counts.values()),
            "statuses": [{"status": s, "count": c} for s, c in sorted(counts.items())],
        }
        return result

    def _page(self, query: WaitlistQuery, page: int, limit: int) -> Page:
        if query.status is not None and query.status not in STATUSES:
            raise WaitlistValidationError(f"Invalid status. Must be one of: {list(STATUSES)}")
        if page < 1 or limit < 1:
            raise WaitlistValidationError("Page and limit must be positive")
        query.offset = (page - 1) * limit
        query.limit = limit
        items, total = self.repo.search(query)
        self.attach_positions(items)
        return Page(items=items, total=total, page=page, limit=limit)
