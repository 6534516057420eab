from .waitlist_repository_sql import SqlWaitlistRepository
from .slot_capacity_sql import SqlSlotCapacity
from .appointments_repository_sql import SqlAppointmentsGateway
from .notification_repository_sql import SqlNotifier

__all__ = [
    "SqlWaitlistRepository",
    "SqlSlotCapacity",
    "SqlAppointmentsGateway",
    "SqlNotifier",
]
