"""
Attentiveness verification.
Raises one check at a random minute-mark of a focus phase to catch
unattended ("AFK") sprints. An unanswered check revokes the sprint's reward.
"""
import logging
import random
from enum import Enum
from typing import Callable, Optional, Sequence

from focusup.constants import VERIFICATION_MINUTE_MARKS, VERIFICATION_TIMEOUT_SECONDS

logger = logging.getLogger("focusup.verification")


class VerificationStatus(str, Enum):
    IDLE = "idle"            # nothing scheduled
    SCHEDULED = "scheduled"  # waiting for the minute-mark
    PENDING = "pending"      # challenge raised, waiting for confirm()
    PASSED = "passed"
    FAILED = "failed"


class VerificationController:
    """Schedules and resolves one challenge per focus phase"""

    def __init__(
        self,
        timers,
        rng: Optional[random.Random] = None,
        minute_marks: Sequence[int] = VERIFICATION_MINUTE_MARKS,
        timeout_seconds: int = VERIFICATION_TIMEOUT_SECONDS
    ):
        self.timers = timers
        self.rng = rng or random.Random()
        self.minute_marks = tuple(minute_marks)
        self.timeout_seconds = timeout_seconds

        self.status = VerificationStatus.IDLE
        self.scheduled_minute: Optional[int] = None
        self._challenge_timer = None
        self._timeout_timer = None
        self._on_failed: Optional[Callable[[], None]] = None
        self._on_passed: Optional[Callable[[], None]] = None
        self._on_challenge: Optional[Callable[[], None]] = None
        # Bumped on every reset so callbacks armed earlier become no-ops
        self._generation = 0

    @property
    def is_pending(self) -> bool:
        return self.status == VerificationStatus.PENDING

    @property
    def is_verified(self) -> bool:
        """True unless a scheduled check is unresolved or failed"""
        return self.status in (VerificationStatus.IDLE, VerificationStatus.PASSED)

    def schedule(
        self,
        on_failed: Callable[[], None],
        on_passed: Optional[Callable[[], None]] = None,
        on_challenge: Optional[Callable[[], None]] = None,
        max_offset_seconds: Optional[int] = None
    ) -> Optional[int]:
        """
        Arm a single challenge at a random minute-mark.

        Minute-marks that would land at or beyond max_offset_seconds
        (the focus duration) are skipped; if none fit, nothing is scheduled.

        Args:
            on_failed: Called once if the challenge times out
            on_passed: Called once when the challenge is confirmed
            on_challenge: Called when the challenge is raised (UI prompt)
            max_offset_seconds: Upper bound for the challenge offset

        Returns:
            The chosen minute-mark, or None if nothing was scheduled
        """
        self.reset()

        marks = [
            minute for minute in self.minute_marks
            if max_offset_seconds is None or minute * 60 < max_offset_seconds
        ]
        if not marks:
            logger.info("No verification minute-mark fits this focus phase, skipping")
            return None

        minute = self.rng.choice(marks)
        generation = self._generation

        self._on_failed = on_failed
        self._on_passed = on_passed
        self._on_challenge = on_challenge
        self.scheduled_minute = minute
        self.status = VerificationStatus.SCHEDULED
        self._challenge_timer = self.timers.call_later(
            minute * 60,
            lambda: self._raise_challenge(generation),
            name="verification-challenge",
        )

        logger.info(f"Verification scheduled at minute {minute}")
        return minute

    def confirm(self) -> bool:
        """User answered the pending challenge; returns False if none is pending"""
        if self.status != VerificationStatus.PENDING:
            return False

        self._cancel(self._timeout_timer)
        self._timeout_timer = None
        self.status = VerificationStatus.PASSED
        logger.info("Verification passed")

        if self._on_passed:
            self._on_passed()
        return True

    def reset(self) -> None:
        """Drop any scheduled or pending challenge without resolving it"""
        self._generation += 1
        self._cancel(self._challenge_timer)
        self._cancel(self._timeout_timer)
        self._challenge_timer = None
        self._timeout_timer = None
        self._on_failed = None
        self._on_passed = None
        self._on_challenge = None
        self.scheduled_minute = None
        self.status = VerificationStatus.IDLE

    def _raise_challenge(self, generation: int) -> None:
        if generation != self._generation or self.status != VerificationStatus.SCHEDULED:
            return

        self._challenge_timer = None
        self.status = VerificationStatus.PENDING
        self._timeout_timer = self.timers.call_later(
            self.timeout_seconds,
            lambda: self._expire(generation),
            name="verification-timeout",
        )
        logger.info(f"Verification challenge raised, {self.timeout_seconds}s to respond")

        if self._on_challenge:
            self._on_challenge()

    def _expire(self, generation: int) -> None:
        if generation != self._generation or self.status != VerificationStatus.PENDING:
            return

        self._timeout_timer = None
        self.status = VerificationStatus.FAILED
        logger.warning("Verification timed out, sprint will not earn rewards")

        on_failed = self._on_failed
        self._on_failed = None
        if on_failed:
            on_failed()

    @staticmethod
    def _cancel(handle) -> None:
        if handle is not None:
            handle.cancel()
