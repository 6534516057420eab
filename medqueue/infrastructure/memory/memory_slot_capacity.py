import threading
from typing import Dict, Optional

from ...application.ports.slot_capacity import SlotCapacity, SlotCounts
from ...application.ports.waitlist_repo import Bucket


class InMemorySlotCapacity(SlotCapacity):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: Dict[Bucket, SlotCounts] = {}

    def open_slot(self, bucket: Bucket, max_patients: int, booked_patients: int = 0) -> None:
        with self._lock:
            self._slots[bucket] = SlotCounts(
                booked_patients=booked_patients,
                max_patients=max_patients,
                is_available=booked_patients < max_patients,
            )

    def claim_one(self, bucket: Bucket) -> bool:
        with self._lock:
            slot = self._slots.get(bucket)
            if slot is None or slot.is_blocked or slot.booked_patients >= slot.max_patients:
                return False
            slot.booked_patients += 1
            slot.is_available = slot.booked_patients < slot.max_patients
            return True

    def release_one(self, bucket: Bucket) -> None:
        with self._lock:
            slot = self._slots.get(bucket)
            if slot is None:
                return
            slot.booked_patients = max(0, slot.booked_patients - 1)
            slot.is_available = slot.booked_patients < slot.max_patients and not slot.is_blocked

    def counts(self, bucket: Bucket) -> Optional[SlotCounts]:
        with self._lock:
            slot = self._slots.get(bucket)
            return SlotCounts(**vars(slot)) if slot else None
