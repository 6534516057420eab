from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..ports.waitlist_repo import WaitlistEntryDto


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a timestamp read back without an offset (SQLite drops it)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Lease:
    """A time-bounded hold on an offered slot.

    Both the conversion path and the expiry sweep decide "expired" through
    ``is_expired`` so they can never disagree about the same entry.
    """

    granted_at: datetime
    expires_at: datetime

    @classmethod
    def acquire(cls, now: datetime, ttl: timedelta) -> "Lease":
        if ttl <= timedelta(0):
            raise ValueError("Lease ttl must be positive")
        return cls(granted_at=now, expires_at=now + ttl)

    @classmethod
    def of(cls, entry: WaitlistEntryDto) -> Optional["Lease"]:
        if entry.notification_date is None or entry.expiry_date is None:
            return None
        return cls(granted_at=entry.notification_date, expires_at=entry.expiry_date)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def remaining(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))

    def release(self, now: datetime) -> "Lease":
        """End the lease no later than ``now``."""
        return Lease(granted_at=self.granted_at, expires_at=min(self.expires_at, now))
