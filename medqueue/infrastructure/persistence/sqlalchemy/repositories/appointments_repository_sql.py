from datetime import date, datetime, time, timezone
from typing import Optional

from sqlmodel import Session, select

from .....models import Appointment
from .....application.ports.appointments_repo import AppointmentDto, AppointmentsGateway
from .....application.ports.waitlist_repo import Bucket
from .....application.services.lease import as_utc


def _slot_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class SqlAppointmentsGateway(AppointmentsGateway):
    def __init__(self, session: Session):
        self.session = session

    def _appt_to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            user_id=a.user_id,
            doctor_id=a.doctor_id,
            appointment_date=as_utc(a.appointment_date),
            appointment_time=a.appointment_time,
            symptoms=a.symptoms,
            appointment_type=a.appointment_type,
            priority=a.priority,
            status=a.status,
            created_at=as_utc(a.created_at),
        )

    def has_active_booking(self, user_id: str, bucket: Bucket) -> bool:
        existing = self.session.exec(
            select(Appointment)
            .where(Appointment.user_id == user_id)
            .where(Appointment.doctor_id == bucket.doctor_id)
            .where(Appointment.appointment_date == _slot_day(bucket.date))
            .where(Appointment.appointment_time == bucket.time)
            .where(Appointment.status != "cancelled")
        ).first()
        return existing is not None

    def create(self, user_id: str, bucket: Bucket, symptoms: str, appointment_type: str, priority: str) -> AppointmentDto:
        appt = Appointment(
            user_id=user_id,
            doctor_id=bucket.doctor_id,
            appointment_date=_slot_day(bucket.date),
            appointment_time=bucket.time,
            symptoms=symptoms,
            appointment_type=appointment_type,
            priority=priority,
            status="confirmed",
        )
        try:
            self.session.add(appt)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(appt)
        return self._appt_to_dto(appt)

    def cancel(self, appointment_id: int) -> None:
        a = self.session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()
        if not a:
            return
        a.status = "cancelled"
        try:
            self.session.add(a)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        a = self.session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()
        return self._appt_to_dto(a) if a else None
