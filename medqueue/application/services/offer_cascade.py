import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..ports.audit_logger import AuditLogger
from ..ports.notifier import Notifier
from ..ports.waitlist_repo import NOTIFIED, Bucket, WaitlistEntryDto, WaitlistRepository
from .lease import Lease, utcnow
from .notifications import describe_bucket, describe_window, send_quietly
from .queue_rank import select_next

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    bucket: Bucket
    notified: Optional[WaitlistEntryDto] = None
    contended: bool = False

    @property
    def queue_empty(self) -> bool:
        return self.notified is None and not self.contended

    @property
    def message(self) -> str:
        if self.notified is not None:
            return "Next person notified"
        if self.contended:
            return "Waitlist busy, offer not sent"
        return "No one in waitlist"


@dataclass
class OfferCascade:
    repo: WaitlistRepository
    notifier: Notifier
    audit: Optional[AuditLogger] = None
    offer_window: timedelta = timedelta(hours=2)
    max_attempts: int = 5
    clock: Callable[[], datetime] = field(default=utcnow)

    def notify_next(self, bucket: Bucket) -> CascadeResult:
        """Lease the bucket's best waiting entry, or report an empty queue.

        A concurrent cascade on the same bucket may lease our first choice
        before we do; the conditional update then fails and we pick again.
        """
        for _ in range(self.max_attempts):
            candidate = select_next(self.repo.list_waiting(bucket))
            if candidate is None:
                logger.info("No waiting entries for %s", bucket.describe())
                return CascadeResult(bucket=bucket)

            lease = Lease.acquire(self.clock(), self.offer_window)
            if not self.repo.mark_notified(candidate.id, lease.granted_at, lease.expires_at):
                logger.info("Entry %s was taken concurrently, selecting again", candidate.id)
                continue

            candidate.status = NOTIFIED
            candidate.notification_date = lease.granted_at
            candidate.expiry_date = lease.expires_at
            candidate.notification_sent = True
            candidate.position_in_queue = None
            candidate.updated_at = lease.granted_at

            send_quietly(
                self.notifier,
                candidate.patient_id,
                f"A slot is now available! You have {describe_window(self.offer_window)} to book your "
                f"appointment with {describe_bucket(bucket)}.",
                urgent=True,
            )
            if self.audit:
                self.audit.log(
                    "waitlist.notified",
                    user_id=candidate.patient_id,
                    entry_id=candidate.id,
                    details={"bucket": bucket.describe(), "expires_at": lease.expires_at.isoformat()},
                )
            logger.info("Offered %s to waitlist entry %s", bucket.describe(), candidate.id)
            return CascadeResult(bucket=bucket, notified=candidate)

        logger.warning("Gave up offering %s after %d contended attempts", bucket.describe(), self.max_attempts)
        return CascadeResult(bucket=bucket, contended=True)
