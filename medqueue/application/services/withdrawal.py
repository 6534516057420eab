import logging
from dataclasses import dataclass
from typing import Optional

from ...exceptions import StateConflictError, WaitlistAuthorizationError, WaitlistNotFoundError
from ..ports.audit_logger import AuditLogger
from ..ports.waitlist_repo import NOTIFIED, WaitlistEntryDto, WaitlistRepository
from .offer_cascade import OfferCascade

logger = logging.getLogger(__name__)


@dataclass
class WithdrawalHandler:
    repo: WaitlistRepository
    cascade: Optional[OfferCascade] = None
    audit: Optional[AuditLogger] = None
    cascade_on_notified: bool = False

    def withdraw(self, entry_id: str, patient_id: str) -> WaitlistEntryDto:
        entry = self.repo.get(entry_id)
        if entry is None:
            raise WaitlistNotFoundError()
        if entry.patient_id != patient_id:
            raise WaitlistAuthorizationError()
        if not entry.is_active:
            raise StateConflictError(f"Waitlist entry is already {entry.status}")

        # Positions are derived from join order, so deleting is the whole compaction.
        if not self.repo.delete(entry.id, entry.status):
            raise StateConflictError("Waitlist entry changed while being withdrawn, please retry")

        if self.audit:
            self.audit.log(
                "waitlist.withdrawn",
                user_id=patient_id,
                entry_id=entry.id,
                details={"bucket": entry.bucket.describe(), "status": entry.status},
            )

        if entry.status == NOTIFIED and self.cascade_on_notified and self.cascade is not None:
            try:
                self.cascade.notify_next(entry.bucket)
            except Exception:
                logger.exception("Cascade after withdrawal failed for %s", entry.bucket.describe())
        return entry
