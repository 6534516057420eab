import threading
from datetime import datetime, time, timezone
from typing import Dict, Optional

from ...application.ports.appointments_repo import AppointmentDto, AppointmentsGateway
from ...application.ports.waitlist_repo import Bucket
from ...application.services.lease import utcnow


class InMemoryAppointments(AppointmentsGateway):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._id = 1
        self.appointments: Dict[int, AppointmentDto] = {}

    def has_active_booking(self, user_id: str, bucket: Bucket) -> bool:
        with self._lock:
            return any(
                a.user_id == user_id
                and a.doctor_id == bucket.doctor_id
                and a.appointment_date.date() == bucket.date
                and a.appointment_time == bucket.time
                and a.status != "cancelled"
                for a in self.appointments.values()
            )

    def create(self, user_id: str, bucket: Bucket, symptoms: str, appointment_type: str, priority: str) -> AppointmentDto:
        with self._lock:
            appt = AppointmentDto(
                id=self._id,
                user_id=user_id,
                doctor_id=bucket.doctor_id,
                appointment_date=datetime.combine(bucket.date, time.min, tzinfo=timezone.utc),
                appointment_time=bucket.time,
                symptoms=symptoms,
                appointment_type=appointment_type,
                priority=priority,
                status="confirmed",
                created_at=utcnow(),
            )
            self.appointments[appt.id] = appt
            self._id += 1
            return appt

    def cancel(self, appointment_id: int) -> None:
        with self._lock:
            appt = self.appointments.get(appointment_id)
            if appt:
                appt.status = "cancelled"

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        with self._lock:
            return self.appointments.get(appointment_id)
