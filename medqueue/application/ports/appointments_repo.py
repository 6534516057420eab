from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from .waitlist_repo import Bucket


@dataclass
class AppointmentDto:
    id: int
    user_id: str
    doctor_id: str
    appointment_date: datetime
    appointment_time: str
    symptoms: str
    appointment_type: str
    priority: str
    status: str
    created_at: datetime


class AppointmentsGateway(Protocol):
    def has_active_booking(self, user_id: str, bucket: Bucket) -> bool:
        """True when the user holds a non-cancelled appointment for the bucket."""
        ...

    def create(self, user_id: str, bucket: Bucket, symptoms: str, appointment_type: str, priority: str) -> AppointmentDto:
        ...

    def cancel(self, appointment_id: int) -> None:
        ...

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        ...
