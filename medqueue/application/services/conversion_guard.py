import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ...exceptions import (
    CapacityLostError,
    OfferExpiredError,
    StateConflictError,
    WaitlistAuthorizationError,
    WaitlistNotFoundError,
)
from ..ports.appointments_repo import AppointmentDto, AppointmentsGateway
from ..ports.audit_logger import AuditLogger
from ..ports.notifier import Notifier
from ..ports.slot_capacity import SlotCapacity
from ..ports.waitlist_repo import BOOKED, EXPIRED, NOTIFIED, TERMINAL_STATUSES, WaitlistEntryDto, WaitlistRepository
from .lease import Lease, utcnow
from .notifications import describe_bucket, send_quietly
from .offer_cascade import OfferCascade

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    entry: WaitlistEntryDto
    appointment: AppointmentDto


@dataclass
class ConversionGuard:
    """Turns a live offer into a confirmed appointment.

    Capacity is taken with a single conditional claim; the entry's move to
    ``booked`` is itself conditional on it still being ``notified``. If that
    second step loses to the reaper or a withdrawal, the appointment and the
    claimed unit are handed back.
    """

    repo: WaitlistRepository
    appointments: AppointmentsGateway
    capacity: SlotCapacity
    cascade: OfferCascade
    notifier: Notifier
    audit: Optional[AuditLogger] = None
    clock: Callable[[], datetime] = field(default=utcnow)

    def convert(self, entry_id: str, patient_id: str) -> ConversionResult:
        entry = self.repo.get(entry_id)
        if entry is None:
            raise WaitlistNotFoundError("Waitlist entry not found or not available for booking")
        if entry.patient_id != patient_id:
            raise WaitlistAuthorizationError()
        if entry.status in TERMINAL_STATUSES:
            raise StateConflictError(f"Waitlist entry is already {entry.status}")
        if entry.status != NOTIFIED:
            raise StateConflictError(f"Waitlist entry is {entry.status} and not available for booking")

        now = self.clock()
        lease = Lease.of(entry)
        if lease is None or lease.is_expired(now):
            self._reclaim(entry, lease, now, reason="offer_expired")
            raise OfferExpiredError()

        bucket = entry.bucket
        if not self.capacity.claim_one(bucket):
            self._reclaim(entry, lease, now, reason="capacity_lost")
            raise CapacityLostError()

        try:
            appointment = self.appointments.create(
                entry.patient_id, bucket, entry.symptoms, entry.appointment_type, entry.priority
            )
        except Exception:
            logger.exception("Appointment creation failed for waitlist entry %s", entry.id)
            self.capacity.release_one(bucket)
            raise

        if not self.repo.mark_booked(entry.id, appointment.id, now):
            self.appointments.cancel(appointment.id)
            self.capacity.release_one(bucket)
            raise StateConflictError("Waitlist entry is no longer available for booking")

        entry.status = BOOKED
        entry.appointment_id = appointment.id
        entry.updated_at = now

        send_quietly(
            self.notifier,
            entry.patient_id,
            f"Your appointment has been confirmed with {describe_bucket(bucket)}",
        )
        if self.audit:
            self.audit.log(
                "waitlist.booked",
                user_id=entry.patient_id,
                entry_id=entry.id,
                details={"bucket": bucket.describe(), "appointment_id": appointment.id},
            )
        return ConversionResult(entry=entry, appointment=appointment)

    def _reclaim(self, entry: WaitlistEntryDto, lease: Optional[Lease], now: datetime, reason: str) -> None:
        expires_at = lease.release(now).expires_at if lease else now
        if not self.repo.mark_expired(entry.id, expires_at, now):
            # Already reclaimed (and cascaded) by the reaper.
            return
        entry.status = EXPIRED
        entry.expiry_date = expires_at
        if self.audit:
            self.audit.log("waitlist.expired", user_id=entry.patient_id, entry_id=entry.id, details={"reason": reason})
        try:
            self.cascade.notify_next(entry.bucket)
        except Exception:
            logger.exception("Cascade after %s failed for %s", reason, entry.bucket.describe())
