import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..ports.audit_logger import AuditLogger
from ..ports.trigger import Trigger
from ..ports.waitlist_repo import EXPIRED, WaitlistEntryDto, WaitlistRepository
from .lease import Lease, utcnow
from .offer_cascade import OfferCascade

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    offered: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class ExpiryReaper:
    """Reclaims lapsed offers and passes each slot on to the next patient.

    Entries are handled independently: one failure is logged and counted
    but the rest of the sweep still runs.
    """

    repo: WaitlistRepository
    cascade: OfferCascade
    audit: Optional[AuditLogger] = None
    clock: Callable[[], datetime] = field(default=utcnow)

    def attach(self, trigger: Trigger) -> None:
        trigger.on_tick(self.sweep)

    def sweep(self) -> SweepResult:
        now = self.clock()
        result = SweepResult()
        for entry in self.repo.list_lapsed(now):
            result.scanned += 1
            try:
                self._reap(entry, now, result)
            except Exception:
                result.failed += 1
                logger.exception("Failed to expire waitlist entry %s", entry.id)

        logger.info(
            "Expiry sweep done: scanned=%d expired=%d offered=%d skipped=%d failed=%d",
            result.scanned, result.expired, result.offered, result.skipped, result.failed,
        )
        return result

    def _reap(self, entry: WaitlistEntryDto, now: datetime, result: SweepResult) -> None:
        lease = Lease.of(entry)
        if lease is not None and not lease.is_expired(now):
            result.skipped += 1
            return
        expires_at = lease.release(now).expires_at if lease else now
        if not self.repo.mark_expired(entry.id, expires_at, now):
            # A conversion or withdrawal moved it first.
            result.skipped += 1
            return

        entry.status = EXPIRED
        result.expired += 1
        if self.audit:
            self.audit.log("waitlist.expired", user_id=entry.patient_id, entry_id=entry.id, details={"reason": "lease_lapsed"})

        if self.cascade.notify_next(entry.bucket).notified is not None:
            result.offered += 1
