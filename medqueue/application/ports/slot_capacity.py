from dataclasses import dataclass
from typing import Optional, Protocol

from .waitlist_repo import Bucket


@dataclass
class SlotCounts:
    booked_patients: int
    max_patients: int
    is_available: bool
    is_blocked: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.max_patients - self.booked_patients)


class SlotCapacity(Protocol):
    def claim_one(self, bucket: Bucket) -> bool:
        """Atomically take one unit of capacity; False when none is left."""
        ...

    def release_one(self, bucket: Bucket) -> None:
        ...

    def counts(self, bucket: Bucket) -> Optional[SlotCounts]:
        ...
