from typing import Optional

from sqlalchemy import case, update
from sqlmodel import Session, select

from .....models import TimeSlot
from .....application.ports.slot_capacity import SlotCapacity, SlotCounts
from .....application.ports.waitlist_repo import Bucket
from .....application.services.lease import utcnow


class SqlSlotCapacity(SlotCapacity):
    """Capacity counters on the ``time_slots`` table.

    ``claim_one`` is a single conditional increment, so two concurrent
    claims on the last free unit cannot both succeed.
    """

    def __init__(self, session: Session):
        self.session = session

    def _find_slot(self, bucket: Bucket) -> Optional[TimeSlot]:
        return self.session.exec(
            select(TimeSlot)
            .where(TimeSlot.doctor_id == bucket.doctor_id)
            .where(TimeSlot.slot_date == bucket.date)
            .where(TimeSlot.start_time <= bucket.time)
            .where(TimeSlot.end_time > bucket.time)
            .order_by(TimeSlot.start_time.desc())
        ).first()

    def _execute(self, statement) -> bool:
        try:
            result = self.session.execute(statement.execution_options(synchronize_session=False))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result.rowcount == 1

    def claim_one(self, bucket: Bucket) -> bool:
        slot = self._find_slot(bucket)
        if slot is None:
            return False
        return self._execute(
            update(TimeSlot)
            .where(TimeSlot.id == slot.id)
            .where(TimeSlot.is_available == True)  # noqa: E712
            .where(TimeSlot.is_blocked == False)  # noqa: E712
            .where(TimeSlot.booked_patients < TimeSlot.max_patients)
            .values(
                booked_patients=TimeSlot.booked_patients + 1,
                is_available=case((TimeSlot.booked_patients + 1 >= TimeSlot.max_patients, False), else_=True),
                updated_at=utcnow(),
            )
        )

    def release_one(self, bucket: Bucket) -> None:
        slot = self._find_slot(bucket)
        if slot is None:
            return
        self._execute(
            update(TimeSlot)
            .where(TimeSlot.id == slot.id)
            .where(TimeSlot.booked_patients > 0)
            .values(
                booked_patients=TimeSlot.booked_patients - 1,
                is_available=case((TimeSlot.is_blocked == True, False), else_=True),  # noqa: E712
                updated_at=utcnow(),
            )
        )

    def counts(self, bucket: Bucket) -> Optional[SlotCounts]:
        slot = self._find_slot(bucket)
        if slot is None:
            return None
        return SlotCounts(
            booked_patients=slot.booked_patients,
            max_patients=slot.max_patients,
            is_available=slot.is_available,
            is_blocked=slot.is_blocked,
        )
