import pytest

from medqueue.application.ports.waitlist_repo import NOTIFIED
from medqueue.exceptions import StateConflictError, WaitlistAuthorizationError, WaitlistNotFoundError

from conftest import BUCKET

def test_withdraw_waiting_entry_compacts_positions(world):
    entries = [world.join(p) for p in ("p1", "p2", "p3", "p4")]
    world.withdrawal.withdraw(entries[1].id, "p2")

    assert world.repo.get(entries[1].id) is None
    assert world.waiting_positions() == [1, 2, 3]
    remaining = world.waitlist.attach_positions(world.repo.list_waiting(BUCKET))
    assert [(e.patient_id, e.position_in_queue) for e in remaining] == [("p1", 1), ("p3", 2), ("p4", 3)]
    assert world.audit.actions()[-1] == "waitlist.withdrawn"

def test_withdraw_requires_ownership(world):
    entry = world.join("p1")
    with pytest.raises(WaitlistAuthorizationError):
        world.withdrawal.withdraw(entry.id, "p2")
    assert world.repo.get(entry.id) is not None

def test_withdraw_unknown_entry(world):
    with pytest.raises(WaitlistNotFoundError):
        world.withdrawal.withdraw("nope", "p1")

def test_terminal_entries_cannot_be_withdrawn(world):
    world.capacity.open_slot(BUCKET, max_patients=1)
    entry = world.join("p1")
    world.cascade.notify_next(BUCKET)
    world.conversion.convert(entry.id, "p1")
    with pytest.raises(StateConflictError) as exc:
        world.withdrawal.withdraw(entry.id, "p1")
    assert exc.value.detail == "Waitlist entry is already booked"


def test_withdrawing_notified_entry_does_not_cascade_by_default(world):
    first = world.join("p1")
    world.join("p2")
    world.cascade.notify_next(BUCKET)
    world.withdrawal.withdraw(first.id, "p1")

    waiting = world.repo.list_waiting(BUCKET)
    assert [e.patient_id for e in waiting] == ["p2"]
    assert world.waiting_positions() == [1]

def test_withdrawing_notified_entry_can_cascade_when_enabled(world):
    world.rewire(cascade_on_notified=True)
    first = world.join("p1")
    second = world.join("p2")
    world.cascade.notify_next(BUCKET)
    world.withdrawal.withdraw(first.id, "p1")
    assert world.repo.get(second.id).status == NOTIFIED

def test_withdraw_loses_race_with_concurrent_transition(world):
    entry = world.join("p1")

    original_delete = world.repo.delete

    def delete_after_offer(entry_id, expected_status):
        world.cascade.notify_next(BUCKET)
        return original_delete(entry_id, expected_status)

    world.repo.delete = delete_after_offer
    with pytest.raises(StateConflictError):
        world.withdrawal.withdraw(entry.id, "p1")
    assert world.repo.get(entry.id).status == NOTIFIED
