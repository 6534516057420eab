from datetime import datetime, timedelta, timezone

import pytest

from medqueue.application.services.lease import Lease

NOW = datetime(2025, 1, 9, 8, 0, tzinfo=timezone.utc)


def test_acquire_sets_window():
    lease = Lease.acquire(NOW, timedelta(hours=2))
    assert lease.granted_at == NOW
    assert lease.expires_at == NOW + timedelta(hours=2)


def test_lease_is_valid_up_to_and_including_expiry():
    lease = Lease.acquire(NOW, timedelta(hours=2))
    assert not lease.is_expired(NOW + timedelta(hours=2))
    assert lease.is_expired(NOW + timedelta(hours=2, microseconds=1))


def test_release_truncates_but_never_extends():
    lease = Lease.acquire(NOW, timedelta(hours=2))
    early = lease.release(NOW + timedelta(minutes=30))
    assert early.expires_at == NOW + timedelta(minutes=30)
    late = lease.release(NOW + timedelta(hours=5))
    assert late.expires_at == lease.expires_at


def test_non_positive_ttl_rejected():
    with pytest.raises(ValueError):
        Lease.acquire(NOW, timedelta(0))


def test_remaining_never_negative():
    lease = Lease.acquire(NOW, timedelta(minutes=10))
    assert lease.remaining(NOW + timedelta(minutes=4)) == timedelta(minutes=6)
    assert lease.remaining(NOW + timedelta(hours=1)) == timedelta(0)
