from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import medqueue.models  # noqa: F401
from medqueue.application.ports.waitlist_repo import Bucket
from medqueue.application.services.conversion_guard import ConversionGuard
from medqueue.application.services.expiry_reaper import ExpiryReaper
from medqueue.application.services.offer_cascade import OfferCascade
from medqueue.application.services.waitlist_service import WaitlistService
from medqueue.application.services.withdrawal import WithdrawalHandler
from medqueue.infrastructure.memory import (
    InMemoryAppointments,
    InMemoryNotifier,
    InMemorySlotCapacity,
    InMemoryWaitlistRepository,
)

START = datetime(2025, 1, 9, 8, 0, tzinfo=timezone.utc)
BUCKET = Bucket("dr-x", date(2025, 1, 10), "10:00")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingAudit:
    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    def log(self, action: str, user_id: Optional[str] = None, entry_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        self.records.append({"action": action, "user_id": user_id, "entry_id": entry_id, "details": details or {}})

    def actions(self) -> List[str]:
        return [r["action"] for r in self.records]


@dataclass
class World:
    clock: FakeClock
    repo: InMemoryWaitlistRepository
    appointments: InMemoryAppointments
    capacity: InMemorySlotCapacity
    notifier: InMemoryNotifier
    audit: RecordingAudit
    waitlist: WaitlistService = field(init=False)
    cascade: OfferCascade = field(init=False)
    conversion: ConversionGuard = field(init=False)
    withdrawal: WithdrawalHandler = field(init=False)
    reaper: ExpiryReaper = field(init=False)

    def __post_init__(self):
        self.rewire()

    def rewire(self, cascade_on_notified: bool = False) -> None:
        self.cascade = OfferCascade(repo=self.repo, notifier=self.notifier, audit=self.audit, clock=self.clock)
        self.waitlist = WaitlistService(
            repo=self.repo, appointments=self.appointments, notifier=self.notifier, audit=self.audit, clock=self.clock
        )
        self.conversion = ConversionGuard(
            repo=self.repo,
            appointments=self.appointments,
            capacity=self.capacity,
            cascade=self.cascade,
            notifier=self.notifier,
            audit=self.audit,
            clock=self.clock,
        )
        self.withdrawal = WithdrawalHandler(
            repo=self.repo, cascade=self.cascade, audit=self.audit, cascade_on_notified=cascade_on_notified
        )
        self.reaper = ExpiryReaper(repo=self.repo, cascade=self.cascade, audit=self.audit, clock=self.clock)

    def join(self, patient_id: str, priority: str = "normal", bucket: Bucket = BUCKET, **kwargs):
        return self.waitlist.join(
            patient_id,
            bucket.doctor_id,
            bucket.date.isoformat(),
            bucket.time,
            kwargs.pop("symptoms", "persistent cough"),
            priority=priority,
            **kwargs,
        )

    def waiting_positions(self, bucket: Bucket = BUCKET) -> List[int]:
        entries = self.waitlist.attach_positions(self.repo.list_waiting(bucket))
        return [e.position_in_queue for e in entries]


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def world(clock):
    return World(
        clock=clock,
        repo=InMemoryWaitlistRepository(),
        appointments=InMemoryAppointments(),
        capacity=InMemorySlotCapacity(),
        notifier=InMemoryNotifier(),
        audit=RecordingAudit(),
    )


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session
