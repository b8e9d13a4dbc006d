"""
Tests for EventLocker.

Tests cover:
- First admission wins, repeats are refused
- The (user, ts) pair is the only key
- Timestamp normalization
- Store failures refuse the event
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from review_queue.models import LockEntry
from review_queue.schemas import InboundEvent


def make_event(user="U1", ts="2025-01-15T10:00:00Z", channel="C1", text="pr <https://example.com/pr/1>"):
    return InboundEvent(channel=channel, text=text, user=user, ts=ts)


class TestAdmit:
    """Test at-most-once admission."""

    def test_admit_once(self, locker):
        event = make_event()

        assert locker.admit(event) is True
        assert locker.admit(event) is False
        assert locker.admit(event) is False

    def test_repeat_with_other_text_and_channel(self, locker):
        """Only user and timestamp identify an event."""
        assert locker.admit(make_event(text="helping", channel="C1")) is True
        assert locker.admit(make_event(text="pr list", channel="C2")) is False

    def test_other_user_same_timestamp(self, locker):
        assert locker.admit(make_event(user="U1")) is True
        assert locker.admit(make_event(user="U2")) is True

    def test_same_user_other_timestamp(self, locker):
        assert locker.admit(make_event(ts="2025-01-15T10:00:00Z")) is True
        assert locker.admit(make_event(ts="2025-01-15T10:00:01Z")) is True

    def test_same_instant_in_other_offset(self, locker):
        """Timestamps are compared as instants."""
        assert locker.admit(make_event(ts="2025-01-15T10:00:00Z")) is True
        assert locker.admit(make_event(ts="2025-01-15T11:00:00+01:00")) is False

    def test_unix_timestamp(self, locker):
        """Chat-style epoch timestamps keep their sub-second part."""
        assert locker.admit(make_event(ts="1571234567.000200")) is True
        assert locker.admit(make_event(ts="1571234567.000300")) is True
        assert locker.admit(make_event(ts="1571234567.000200")) is False

    def test_concurrent_retries_admit_one(self, locker):
        """Simultaneous deliveries of one event admit exactly one caller."""
        event = make_event()
        barrier = threading.Barrier(6)

        def admit(_):
            barrier.wait()
            return locker.admit(event)

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(admit, range(6)))

        assert results.count(True) == 1
        assert results.count(False) == 5


class TestRejectionLogging:
    """Test that a repeated event is logged apart from other insert failures."""

    def test_repeat_is_logged_as_already_locked(self, locker, caplog):
        caplog.set_level(logging.INFO, logger="review_queue.event_locker")
        locker.admit(make_event())

        assert locker.admit(make_event()) is False

        records = [r for r in caplog.records if "[locker] already locked" in r.getMessage()]
        assert [r.levelname for r in records] == ["INFO"]
        assert not [r for r in caplog.records if r.name == "review_queue.event_locker" and r.levelno >= logging.ERROR]

    def test_other_integrity_error_is_logged_as_error(self, locker, caplog):
        caplog.set_level(logging.INFO, logger="review_queue.event_locker")
        # Bypass validation to hit the NOT NULL constraint on msg_channel
        event = InboundEvent.model_construct(
            channel=None, text="helping", type="message", user="U1", ts=datetime(2025, 1, 15, 10, 0, 0)
        )

        assert locker.admit(event) is False

        assert not [r for r in caplog.records if "[locker] already locked" in r.getMessage()]
        errors = [r for r in caplog.records if r.name == "review_queue.event_locker" and r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "[locker] lock rejected" in errors[0].getMessage()
        assert locker.admit(make_event(user="U1", ts="2025-01-15T10:00:00Z")) is True


class TestInitialize:
    """Test provisioning."""

    def test_initialize_forgets_locks(self, locker):
        event = make_event()
        locker.admit(event)

        locker.initialize()

        assert locker.admit(event) is True


class TestStoreFailure:
    """Test that store errors refuse the event."""

    @pytest.fixture
    def broken_locker(self, locker, engine):
        LockEntry.__table__.drop(engine)
        return locker

    def test_admit_refuses(self, broken_locker):
        assert broken_locker.admit(make_event()) is False
