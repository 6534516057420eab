from .memory_waitlist_repo import InMemoryWaitlistRepository
from .memory_slot_capacity import InMemorySlotCapacity
from .memory_appointments import InMemoryAppointments
from .memory_notifier import InMemoryNotifier

__all__ = [
    "InMemoryWaitlistRepository",
    "InMemorySlotCapacity",
    "InMemoryAppointments",
    "InMemoryNotifier",
]
