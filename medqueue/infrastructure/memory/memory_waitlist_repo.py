import threading
import uuid
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ...application.ports.waitlist_repo import (
    ACTIVE_STATUSES,
    BOOKED,
    EXPIRED,
    NOTIFIED,
    WAITING,
    Bucket,
    DuplicateActiveEntry,
    NewWaitlistEntry,
    WaitlistEntryDto,
    WaitlistQuery,
    WaitlistRepository,
)


class InMemoryWaitlistRepository(WaitlistRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, WaitlistEntryDto] = {}
        self._sequences: Dict[Bucket, int] = {}

    def add(self, entry: NewWaitlistEntry) -> WaitlistEntryDto:
        with self._lock:
            for e in self._entries.values():
                if e.patient_id == entry.patient_id and e.bucket == entry.bucket and e.status in ACTIVE_STATUSES:
                    raise DuplicateActiveEntry(entry.patient_id)
            sequence = self._sequences.get(entry.bucket, 0) + 1
            self._sequences[entry.bucket] = sequence
            stored = WaitlistEntryDto(
                id=str(uuid.uuid4()),
                patient_id=entry.patient_id,
                doctor_id=entry.bucket.doctor_id,
                bucket_date=entry.bucket.date,
                bucket_time=entry.bucket.time,
                symptoms=entry.symptoms,
                appointment_type=entry.appointment_type,
                priority=entry.priority,
                status=WAITING,
                join_sequence=sequence,
                expiry_date=entry.expiry_date,
                created_at=entry.created_at,
                updated_at=entry.created_at,
                is_flexible_time=entry.is_flexible_time,
                flexible_time_range=entry.flexible_time_range,
                is_flexible_date=entry.is_flexible_date,
                flexible_date_range=entry.flexible_date_range,
            )
            self._entries[stored.id] = stored
            return replace(stored)

    def get(self, entry_id: str) -> Optional[WaitlistEntryDto]:
        with self._lock:
            e = self._entries.get(entry_id)
            return replace(e) if e else None

    def find_active(self, patient_id: str, bucket: Bucket) -> Optional[WaitlistEntryDto]:
        with self._lock:
            for e in self._entries.values():
                if e.patient_id == patient_id and e.bucket == bucket and e.status in ACTIVE_STATUSES:
                    return replace(e)
            return None

    def list_waiting(self, bucket: Bucket) -> List[WaitlistEntryDto]:
        with self._lock:
            rows = [e for e in self._entries.values() if e.bucket == bucket and e.status == WAITING]
            return [replace(e) for e in sorted(rows, key=lambda e: e.join_sequence)]

    def list_lapsed(self, now: datetime) -> List[WaitlistEntryDto]:
        with self._lock:
            rows = [e for e in self._entries.values() if e.status == NOTIFIED and e.expiry_date < now]
            return [replace(e) for e in sorted(rows, key=lambda e: e.expiry_date)]

    def _transition(self, entry_id: str, expected: str, **changes) -> bool:
        with self._lock:
            e = self._entries.get(entry_id)
            if e is None or e.status != expected:
                return False
            self._entries[entry_id] = replace(e, **changes)
            return True

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
        with self._lock:
            e = self._entries.get(entry_id)
            if e is None or e.status != expected_status:
                return False
            del self._entries[entry_id]
            return True

    def search(self, query: WaitlistQuery) -> Tuple[List[WaitlistEntryDto], int]:
        with self._lock:
            rows = list(self._entries.values())
        if query.patient_id is not None:
            rows = [e for e in rows if e.patient_id == query.patient_id]
        if query.doctor_id is not None:
            rows = [e for e in rows if e.doctor_id == query.doctor_id]
        if query.bucket_date is not None:
            rows = [e for e in rows if e.bucket_date == query.bucket_date]
        if query.status is not None:
            rows = [e for e in rows if e.status == query.status]
        if query.order == "queue":
            rows.sort(key=lambda e: (e.bucket_date, e.bucket_time, e.join_sequence))
        else:
            rows.sort(key=lambda e: (e.created_at, e.join_sequence), reverse=True)
        page = rows[query.offset:query.offset + query.limit]
        return [replace(e) for e in page], len(rows)

    def status_counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(e.status for e in self._entries.values()))
