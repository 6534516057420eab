import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, update, delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....models import BucketSequence, WaitlistEntry
from .....application.ports.waitlist_repo import (
    ACTIVE_STATUSES,
    BOOKED,
    EXPIRED,
    NOTIFIED,
    WAITING,
    Bucket,
    DateRange,
    DuplicateActiveEntry,
    NewWaitlistEntry,
    TimeRange,
    WaitlistEntryDto,
    WaitlistQuery,
    WaitlistRepository,
)
from .....application.services.lease import as_utc

logger = logging.getLogger(__name__)


class SqlWaitlistRepository(WaitlistRepository):
    """Waitlist store on SQLModel.

    Every status change is an ``UPDATE ... WHERE status = :expected`` and the
    affected-row count tells the caller whether it won.
    """

    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, w: WaitlistEntry) -> WaitlistEntryDto:
        time_range = None
        if w.flexible_time_start or w.flexible_time_end:
            time_range = TimeRange(start=w.flexible_time_start, end=w.flexible_time_end)
        date_range = None
        if w.flexible_date_start or w.flexible_date_end:
            date_range = DateRange(start=w.flexible_date_start, end=w.flexible_date_end)
        return WaitlistEntryDto(
            id=w.id,
            patient_id=w.patient_id,
            doctor_id=w.doctor_id,
            bucket_date=w.bucket_date,
            bucket_time=w.bucket_time,
            symptoms=w.symptoms,
            appointment_type=w.appointment_type,
            priority=w.priority,
            status=w.status,
            join_sequence=w.join_sequence,
            expiry_date=as_utc(w.expiry_date),
            created_at=as_utc(w.created_at),
            updated_at=as_utc(w.updated_at),
            notification_date=as_utc(w.notification_date),
            notification_sent=w.notification_sent,
            appointment_id=w.appointment_id,
            is_flexible_time=w.is_flexible_time,
            flexible_time_range=time_range,
            is_flexible_date=w.is_flexible_date,
            flexible_date_range=date_range,
        )

    @staticmethod
    def _in_bucket(bucket: Bucket):
        return (
            WaitlistEntry.doctor_id == bucket.doctor_id,
            WaitlistEntry.bucket_date == bucket.date,
            WaitlistEntry.bucket_time == bucket.time,
        )

    def _next_sequence(self, bucket: Bucket) -> int:
        key = (
            BucketSequence.doctor_id == bucket.doctor_id,
            BucketSequence.bucket_date == bucket.date,
            BucketSequence.bucket_time == bucket.time,
        )
        bumped = self.session.execute(
            update(BucketSequence)
            .where(*key)
            .values(last_sequence=BucketSequence.last_sequence + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            self.session.add(
                BucketSequence(doctor_id=bucket.doctor_id, bucket_date=bucket.date, bucket_time=bucket.time, last_sequence=1)
            )
            self.session.flush()
            return 1
        return self.session.exec(select(BucketSequence.last_sequence).where(*key)).one()

    def add(self, entry: NewWaitlistEntry) -> WaitlistEntryDto:
        bucket = entry.bucket
        # Two attempts: a concurrent first join may create the sequence row under us.
        for attempt in range(2):
            try:
                row = WaitlistEntry(
                    patient_id=entry.patient_id,
                    doctor_id=bucket.doctor_id,
                    bucket_date=bucket.date,
                    bucket_time=bucket.time,
                    symptoms=entry.symptoms,
                    appointment_type=entry.appointment_type,
                    priority=entry.priority,
                    status=WAITING,
                    join_sequence=self._next_sequence(bucket),
                    expiry_date=entry.expiry_date,
                    is_flexible_time=entry.is_flexible_time,
                    flexible_time_start=entry.flexible_time_range.start if entry.flexible_time_range else None,
                    flexible_time_end=entry.flexible_time_range.end if entry.flexible_time_range else None,
                    is_flexible_date=entry.is_flexible_date,
                    flexible_date_start=entry.flexible_date_range.start if entry.flexible_date_range else None,
                    flexible_date_end=entry.flexible_date_range.end if entry.flexible_date_range else None,
                    created_at=entry.created_at,
                    updated_at=entry.created_at,
                )
                self.session.add(row)
                self.session.commit()
                self.session.refresh(row)
                return self._to_dto(row)
            except IntegrityError as exc:
                self.session.rollback()
                if self.find_active(entry.patient_id, bucket) is not None:
                    raise DuplicateActiveEntry(entry.patient_id) from exc
                if attempt:
                    raise
                logger.info("Join sequence contention on %s, retrying", bucket.describe())
            except Exception:
                self.session.rollback()
                raise
        raise RuntimeError("unreachable")

    def get(self, entry_id: str) -> Optional[WaitlistEntryDto]:
        w = self.session.exec(select(WaitlistEntry).where(WaitlistEntry.id == entry_id)).first()
        return self._to_dto(w) if w else None

    def find_active(self, patient_id: str, bucket: Bucket) -> Optional[WaitlistEntryDto]:
        w = self.session.exec(
            select(WaitlistEntry)
            .where(WaitlistEntry.patient_id == patient_id)
            .where(*self._in_bucket(bucket))
            .where(WaitlistEntry.status.in_(ACTIVE_STATUSES))
        ).first()
        return self._to_dto(w) if w else None

    def list_waiting(self, bucket: Bucket) -> List[WaitlistEntryDto]:
        rows = self.session.exec(
            select(WaitlistEntry)
            .where(*self._in_bucket(bucket))
            .where(WaitlistEntry.status == WAITING)
            .order_by(WaitlistEntry.join_sequence)
        ).all()
        return [self._to_dto(r) for r in rows]

    def list_lapsed(self, now: datetime) -> List[WaitlistEntryDto]:
        rows = self.session.exec(
            select(WaitlistEntry)
            .where(WaitlistEntry.status == NOTIFIED)
            .where(WaitlistEntry.expiry_date < now)
            .order_by(WaitlistEntry.expiry_date)
        ).all()
        return [self._to_dto(r) for r in rows]

    def _execute(self, statement) -> bool:
        """Run one conditional write and commit; true when exactly one row changed.

        A failed write is rolled back so the shared session stays usable.
        """
        try:
            result = self.session.execute(statement.execution_options(synchronize_session=False))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result.rowcount == 1

    def _transition(self, entry_id: str, expected: str, **values) -> bool:
        return self._execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == entry_id)
            .where(WaitlistEntry.status == expected)
            .values(**values)
        )

    def mark_notified(self, entry_id: str, notification_date: datetime, expiry_date: datetime) -> bool:
        return self._transition(
            entry_id,
            WAITING,
            status=NOTIFIED,
            notification_date=notification_date,
            expiry_date=expiry_date,
            notification_sent=True,
            updated_at=notification_date,
        )

    def mark_booked(self, entry_id: str, appointment_id: int, now: datetime) -> bool:
        return self._transition(entry_id, NOTIFIED, status=BOOKED, appointment_id=appointment_id, updated_at=now)

    def mark_expired(self, entry_id: str, expiry_date: datetime, now: datetime) -> bool:
        return self._transition(entry_id, NOTIFIED, status=EXPIRED, expiry_date=expiry_date, updated_at=now)

    def delete(self, entry_id: str, expected_status: str) -> bool:
        return self._execute(
            delete(WaitlistEntry)
            .where(WaitlistEntry.id == entry_id)
            .where(WaitlistEntry.status == expected_status)
        )

    def search(self, query: WaitlistQuery) -> Tuple[List[WaitlistEntryDto], int]:
        conditions = []
        if query.patient_id is not None:
            conditions.append(WaitlistEntry.patient_id == query.patient_id)
        if query.doctor_id is not None:
            conditions.append(WaitlistEntry.doctor_id == query.doctor_id)
        if query.bucket_date is not None:
            conditions.append(WaitlistEntry.bucket_date == query.bucket_date)
        if query.status is not None:
            conditions.append(WaitlistEntry.status == query.status)

        stmt = select(WaitlistEntry).where(*conditions)
        if query.order == "queue":
            stmt = stmt.order_by(WaitlistEntry.bucket_date, WaitlistEntry.bucket_time, WaitlistEntry.join_sequence)
        else:
            stmt = stmt.order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.join_sequence.desc())
        rows = self.session.exec(stmt.offset(query.offset).limit(query.limit)).all()
        total = self.session.exec(select(func.count()).select_from(WaitlistEntry).where(*conditions)).one()
        return [self._to_dto(r) for r in rows], int(total)

    def status_counts(self) -> Dict[str, int]:
        rows = self.session.exec(
            select(WaitlistEntry.status, func.count()).group_by(WaitlistEntry.status)
        ).all()
        return {status: int(count) for status, count in rows}
