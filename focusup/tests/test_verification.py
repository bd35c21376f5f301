"""
Tests for VerificationController.
"""
import random

import pytest

from focusup.services.verification import VerificationController, VerificationStatus


@pytest.fixture
def verification(timers):
    return VerificationController(timers, rng=random.Random(7))


class Recorder:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


class TestSchedule:
    """Tests for schedule"""

    def test_picks_a_minute_mark(self, verification, timers):
        """Challenge fires at one of the fixed marks"""
        minute = verification.schedule(on_failed=Recorder())

        assert minute in (8, 15, 20)
        assert verification.status == VerificationStatus.SCHEDULED
        [challenge] = timers.active("verification-challenge")
        assert challenge.seconds == minute * 60

    def test_marks_past_focus_duration_skipped(self, verification):
        """A 10-minute focus phase can only be checked at minute 8"""
        for _ in range(20):
            assert verification.schedule(on_failed=Recorder(), max_offset_seconds=600) == 8

    def test_nothing_fits_short_focus(self, verification, timers):
        """A focus phase shorter than every mark gets no check"""
        minute = verification.schedule(on_failed=Recorder(), max_offset_seconds=300)

        assert minute is None
        assert verification.status == VerificationStatus.IDLE
        assert verification.is_verified is True
        assert timers.active() == []

    def test_rescheduling_replaces_previous(self, verification, timers):
        """Only one challenge is armed at a time"""
        verification.schedule(on_failed=Recorder())
        verification.schedule(on_failed=Recorder())

        assert len(timers.active("verification-challenge")) == 1


class TestResolution:
    """Tests for confirm and timeout"""

    def test_challenge_raised(self, verification, timers):
        """Minute-mark raises the challenge and starts the timeout"""
        on_challenge = Recorder()
        verification.schedule(on_failed=Recorder(), on_challenge=on_challenge)

        timers.fire("verification-challenge")

        assert verification.is_pending is True
        assert on_challenge.calls == 1
        [timeout] = timers.active("verification-timeout")
        assert timeout.seconds == 60

    def test_confirm_passes(self, verification, timers):
        """Confirming cancels the timeout"""
        on_failed, on_passed = Recorder(), Recorder()
        verification.schedule(on_failed=on_failed, on_passed=on_passed)
        timers.fire("verification-challenge")

        assert verification.confirm() is True

        assert verification.status == VerificationStatus.PASSED
        assert verification.is_verified is True
        assert on_passed.calls == 1
        assert timers.fire("verification-timeout") == 0
        assert on_failed.calls == 0

    def test_timeout_fails_once(self, verification, timers):
        """Unanswered challenge calls on_failed exactly once"""
        on_failed = Recorder()
        verification.schedule(on_failed=on_failed)
        timers.fire("verification-challenge")
        [timeout] = timers.active("verification-timeout")

        timers.fire("verification-timeout")
        timeout.func()

        assert verification.status == VerificationStatus.FAILED
        assert verification.is_verified is False
        assert on_failed.calls == 1

    def test_confirm_without_challenge(self, verification):
        """Nothing pending means nothing to confirm"""
        assert verification.confirm() is False

        verification.schedule(on_failed=Recorder())
        assert verification.confirm() is False

    def test_confirm_after_failure(self, verification, timers):
        """A failed check cannot be passed later"""
        verification.schedule(on_failed=Recorder())
        timers.fire("verification-challenge")
        timers.fire("verification-timeout")

        assert verification.confirm() is False
        assert verification.status == VerificationStatus.FAILED


class TestReset:
    """Tests for reset"""

    def test_reset_clears_pending_without_resolving(self, verification, timers):
        """Abandoned sprint: neither callback fires"""
        on_failed, on_passed = Recorder(), Recorder()
        verification.schedule(on_failed=on_failed, on_passed=on_passed)
        timers.fire("verification-challenge")
        [timeout] = timers.active("verification-timeout")

        verification.reset()
        timeout.func()

        assert verification.status == VerificationStatus.IDLE
        assert timers.active() == []
        assert on_failed.calls == 0
        assert on_passed.calls == 0

    def test_stale_challenge_ignored(self, verification, timers):
        """A challenge armed before reset does nothing"""
        verification.schedule(on_failed=Recorder())
        [challenge] = timers.active("verification-challenge")

        verification.reset()
        challenge.func()

        assert verification.is_pending is False
        assert timers.active("verification-timeout") == []
