from dataclasses import replace
from datetime import timedelta

from medqueue.application.ports.waitlist_repo import EXPIRED, NOTIFIED, WAITING
from medqueue.infrastructure.memory import InMemoryWaitlistRepository
from medqueue.infrastructure.scheduling import ManualTrigger

from conftest import BUCKET

OTHER = replace(BUCKET, time="11:00")


class FlakyRepo(InMemoryWaitlistRepository):
    def __init__(self):
        super().__init__()
        self.broken = set()

    def mark_expired(self, entry_id, expiry_date, now):
        if entry_id in self.broken:
            raise RuntimeError("database unavailable")
        return super().mark_expired(entry_id, expiry_date, now)


def test_sweep_with_nothing_lapsed(world):
    world.join("p1")
    world.cascade.notify_next(BUCKET)
    world.clock.advance(hours=1)

    result = world.reaper.sweep()
    assert (result.scanned, result.expired, result.offered) == (0, 0, 0)


def test_lapsed_offer_expires_and_cascades(world):
    first = world.join("p1", priority="urgent")
    second = world.join("p2")
    world.cascade.notify_next(BUCKET)
    world.clock.advance(hours=2, minutes=1)

    result = world.reaper.sweep()

    assert (result.scanned, result.expired, result.offered) == (1, 1, 1)
    lapsed = world.repo.get(first.id)
    assert lapsed.status == EXPIRED
    assert lapsed.expiry_date == world.clock() - timedelta(minutes=1)
    promoted = world.repo.get(second.id)
    assert promoted.status == NOTIFIED
    assert promoted.expiry_date == world.clock() + timedelta(hours=2)
    assert "waitlist.expired" in world.audit.actions()


def test_offer_is_live_until_its_expiry_instant(world):
    world.join("p1")
    world.cascade.notify_next(BUCKET)
    world.clock.advance(hours=2)

    assert world.reaper.sweep().expired == 0


def test_sweeping_twice_changes_nothing_more(world):
    first = world.join("p1")
    world.join("p2")
    world.cascade.notify_next(BUCKET)
    world.clock.advance(hours=3)

    world.reaper.sweep()
    state = sorted((e.id, e.status, e.expiry_date) for e in world.waitlist.list_all().items)
    second = world.reaper.sweep()

    assert second.scanned == 0
    assert sorted((e.id, e.status, e.expiry_date) for e in world.waitlist.list_all().items) == state
    assert world.repo.get(first.id).status == EXPIRED


def test_one_failure_does_not_stop_the_sweep(world):
    world.repo = FlakyRepo()
    world.rewire()
    bad = world.join("p1")
    good = world.join("p2", bucket=OTHER)
    world.join("p3", bucket=OTHER)
    world.cascade.notify_next(BUCKET)
    world.cascade.notify_next(OTHER)
    world.repo.broken.add(bad.id)
    world.clock.advance(hours=2, minutes=5)

    result = world.reaper.sweep()

    assert (result.scanned, result.expired, result.failed, result.offered) == (2, 1, 1, 1)
    assert world.repo.get(bad.id).status == NOTIFIED
    assert world.repo.get(good.id).status == EXPIRED
    assert [e.patient_id for e in world.repo.list_waiting(OTHER)] == []


def test_expired_entry_with_empty_queue(world):
    world.join("p1")
    world.cascade.notify_next(BUCKET)
    world.clock.advance(days=1)

    result = world.reaper.sweep()
    assert (result.expired, result.offered) == (1, 0)
    assert world.repo.list_waiting(BUCKET) == []


def test_manual_trigger_drives_the_sweep(world):
    trigger = ManualTrigger()
    world.reaper.attach(trigger)
    entry = world.join("p1")
    world.join("p2")
    world.cascade.notify_next(BUCKET)

    assert trigger.fire()[0].expired == 0
    world.clock.advance(hours=2, minutes=1)
    (result,) = trigger.fire()

    assert result.expired == 1
    assert world.repo.get(entry.id).status == EXPIRED
    assert [e.status for e in world.waitlist.list_for_doctor("dr-x").items].count(WAITING) == 0
