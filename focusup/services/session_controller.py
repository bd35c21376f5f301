"""
Focus session state machine.

Idle -> Running(Focus) -> Completed(Focus) -> Running(Break)
     -> Completed(Break) -> finalize -> Idle

Paused(Focus) and Paused(Break) are reachable from the matching Running
state and return to it. Remaining time is always recomputed from an
absolute wall-clock target, never decremented, so a suspended host
process loses no time on resume.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from focusup.constants import (
    DEFAULT_WORK_SECONDS,
    DEFAULT_BREAK_SECONDS,
    MIN_WORK_SECONDS,
    MAX_WORK_SECONDS,
    MIN_BREAK_SECONDS,
    MAX_BREAK_SECONDS,
    TICK_INTERVAL_SECONDS,
)
from focusup.domain import (
    HabitLink, Link, Phase, SessionState, Sprint, SprintCompletion, TaskLink
)
from focusup.exceptions import (
    InvalidStateException, PersistenceException, SprintNotFoundException, ValidationException
)
from focusup.services.reward_service import RewardService
from focusup.services.verification import VerificationController

logger = logging.getLogger("focusup.session")

CompletionCallback = Callable[[SprintCompletion], None]


def mmss(total_seconds: int) -> str:
    """Format seconds as MM:SS"""
    minutes, seconds = divmod(max(0, int(total_seconds)), 60)
    return f"{minutes:02d}:{seconds:02d}"


def validate_durations(work_seconds: int, break_seconds: int) -> None:
    """
    Raises:
        ValidationException: If a duration is non-positive or out of range
    """
    for field, value, low, high in (
        ("work_seconds", work_seconds, MIN_WORK_SECONDS, MAX_WORK_SECONDS),
        ("break_seconds", break_seconds, MIN_BREAK_SECONDS, MAX_BREAK_SECONDS),
    ):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationException(field, "must be a positive number of seconds")
        if value < low or value > high:
            raise ValidationException(field, f"must be between {low} and {high} seconds")


class SessionController:
    """Owns one user's sprint lifecycle, its tick timer and its verification"""

    def __init__(
        self,
        persistence,
        reward_service: RewardService,
        timers,
        verification: Optional[VerificationController] = None,
        clock: Callable[[], datetime] = datetime.now,
        work_seconds: int = DEFAULT_WORK_SECONDS,
        break_seconds: int = DEFAULT_BREAK_SECONDS,
        on_verification_challenge: Optional[Callable[[], None]] = None
    ):
        validate_durations(work_seconds, break_seconds)

        self.persistence = persistence
        self.reward_service = reward_service
        self.timers = timers
        self.verification = verification or VerificationController(timers)
        self.clock = clock
        # Prompt hook, called when an attentiveness check is raised
        self.on_verification_challenge = on_verification_challenge

        self.work_seconds = work_seconds
        self.break_seconds = break_seconds

        self.phase = Phase.FOCUS
        self.running_state = SessionState.IDLE
        self.seconds_left = work_seconds
        self.target: Optional[datetime] = None
        self.last_completed: Optional[Sprint] = None

        self._sprint: Optional[Sprint] = None
        self._link: Link = None
        self._tick_handle = None
        self._completion_callback: Optional[CompletionCallback] = None
        self._finalized = False
        # Bumped on reset; timer callbacks armed under an older value are ignored
        self._generation = 0

    # Observable state

    @property
    def sprint_snapshot(self) -> Optional[Sprint]:
        return self._sprint.snapshot() if self._sprint else None

    @property
    def link(self) -> Link:
        return self._link

    @property
    def display(self) -> str:
        return mmss(self.seconds_left)

    @property
    def verification_pending(self) -> bool:
        return self.verification.is_pending

    @property
    def in_focus(self) -> bool:
        """True only while a focus phase is actively counting down"""
        return self.phase == Phase.FOCUS and self.running_state == SessionState.RUNNING

    def duration_for(self, phase: Phase) -> int:
        return self.work_seconds if phase == Phase.FOCUS else self.break_seconds

    # Configuration

    def set_durations(self, work_seconds: int, break_seconds: int) -> None:
        """
        Configure phase lengths.

        Invalid values are rejected and the previous durations kept.
        A running or paused phase keeps its own target; an idle session
        shows the new duration immediately.

        Raises:
            ValidationException: If a duration is invalid
        """
        validate_durations(work_seconds, break_seconds)

        self.work_seconds = work_seconds
        self.break_seconds = break_seconds
        if self.running_state == SessionState.IDLE:
            self.seconds_left = self.duration_for(self.phase)

        logger.info(f"Durations set: work={work_seconds}s break={break_seconds}s")

    def set_link_task(self, task_id: Optional[str]) -> None:
        """Link the sprint to a task (clears any habit link); None clears the link"""
        self._set_link(TaskLink(task_id) if task_id else None)

    def set_link_habit(self, habit_id: Optional[str]) -> None:
        """Link the sprint to a habit (clears any task link); None clears the link"""
        self._set_link(HabitLink(habit_id) if habit_id else None)

    def _set_link(self, link: Link) -> None:
        self._link = link
        if self._sprint is None:
            return

        self._sprint.link = link
        self._mirror_update({
            "linked_task_id": self._sprint.linked_task_id,
            "linked_habit_id": self._sprint.linked_habit_id,
        })

    def register_completion_callback(self, callback: Optional[CompletionCallback]) -> Optional[CompletionCallback]:
        """
        Register the observer notified once per finished sprint.

        The callback is looked up at finalize time, so replacing or
        unregistering it affects the sprint in progress too.
        """
        self._completion_callback = callback
        return callback

    def unregister_completion_callback(self, callback: CompletionCallback) -> None:
        if self._completion_callback is callback:
            self._completion_callback = None

    # Transitions

    def start(self, user_id: str) -> bool:
        """
        Start or resume the current phase.

        From Idle a new sprint begins (the persisted record is best-effort);
        from Paused the phase resumes with the time that was left.
        The current phase is preserved: resuming a paused break stays in Break.

        Returns:
            True if the session is now running, False if start was a no-op
        """
        try:
            self._require("start", SessionState.IDLE, SessionState.PAUSED)
        except InvalidStateException as e:
            logger.debug(str(e))
            return False

        now = self.clock()

        if self.running_state == SessionState.PAUSED:
            duration = self.seconds_left
        else:
            duration = self.duration_for(self.phase)
            if self._sprint is None and self.phase == Phase.FOCUS:
                self._begin_sprint(user_id, now)

        self.target = now + timedelta(seconds=duration)
        self.seconds_left = duration
        self.running_state = SessionState.RUNNING
        self._arm_tick()

        logger.info(f"Session started for {user_id}: {self.phase.value}, {duration}s left")
        return True

    def pause(self) -> bool:
        """Freeze the remaining time; only valid while running"""
        try:
            self._require("pause", SessionState.RUNNING)
        except InvalidStateException as e:
            logger.debug(str(e))
            return False

        self.seconds_left = self._compute_seconds_left(self.clock())
        self._cancel_tick()
        self.target = None
        self.running_state = SessionState.PAUSED

        logger.info(f"Session paused in {self.phase.value} with {self.seconds_left}s left")
        return True

    def reset(self) -> None:
        """Abandon the sprint: cancel all timers and return to Idle"""
        self._generation += 1
        self._cancel_tick()
        self.verification.reset()

        if self._sprint is not None:
            logger.info(f"Sprint {self._sprint.id} abandoned")

        self._sprint = None
        self._link = None
        self._finalized = False
        self.phase = Phase.FOCUS
        self.running_state = SessionState.IDLE
        self.target = None
        self.seconds_left = self.work_seconds

    def start_break(self) -> bool:
        """
        Start the break after the focus phase completed.

        Mirrors the work completion to the store, then arms the break timer.

        Returns:
            True if the break is now running, False if it was a no-op
        """
        sprint = self._sprint
        if (self.phase != Phase.FOCUS
                or self.running_state not in (SessionState.COMPLETED, SessionState.IDLE)
                or sprint is None
                or sprint.work_completed_at is None
                or sprint.break_started_at is not None):
            logger.debug(f"Cannot start break while session is {self.running_state.value}")
            return False

        now = self.clock()
        sprint.break_started_at = now
        self._mirror_update({
            "work_completed_at": sprint.work_completed_at,
            "work_duration_sec": sprint.work_duration_sec,
            "break_started_at": now,
        })

        self.phase = Phase.BREAK
        self.target = now + timedelta(seconds=self.break_seconds)
        self.seconds_left = self.break_seconds
        self.running_state = SessionState.RUNNING
        self._arm_tick()

        logger.info(f"Break started for sprint {sprint.id}: {self.break_seconds}s")
        return True

    def confirm_verification(self) -> bool:
        return self.verification.confirm()

    def tick(self) -> int:
        """
        Recompute the remaining time from the wall clock.

        Reaching zero completes the current phase; completing the break
        runs the finalize sequence exactly once.

        Returns:
            Seconds left in the current phase
        """
        if self.running_state != SessionState.RUNNING or self.target is None:
            return self.seconds_left

        now = self.clock()
        self.seconds_left = self._compute_seconds_left(now)

        if self.seconds_left == 0:
            if self.phase == Phase.FOCUS:
                self._complete_focus(now)
            else:
                self._complete_break(now)

        return self.seconds_left

    # Internals

    def _require(self, operation: str, *states: SessionState) -> None:
        if self.running_state not in states:
            raise InvalidStateException(operation, f"{self.running_state.value} ({self.phase.value})")

    def _compute_seconds_left(self, now: datetime) -> int:
        if self.target is None:
            return self.seconds_left
        # Halves round up so a phase never ends early
        return max(0, math.floor((self.target - now).total_seconds() + 0.5))

    def _begin_sprint(self, user_id: str, now: datetime) -> None:
        self._finalized = False
        sprint = Sprint(user_id=user_id, link=self._link, work_started_at=now)
        self._sprint = sprint

        sprint.id = self._mirror("create", self.persistence.create_sprint_record, {
            "user_id": user_id,
            "linked_task_id": sprint.linked_task_id,
            "linked_habit_id": sprint.linked_habit_id,
            "work_started_at": now,
        })

        generation = self._generation
        minute = self.verification.schedule(
            on_failed=lambda: self._revoke_reward(generation),
            on_passed=lambda: self._mark_verified(generation),
            on_challenge=lambda: self._announce_challenge(generation),
            max_offset_seconds=self.work_seconds,
        )
        sprint.verification_required = minute is not None

    def _complete_focus(self, now: datetime) -> None:
        self._cancel_tick()
        self.target = None
        self.running_state = SessionState.COMPLETED

        sprint = self._sprint
        if sprint is not None and sprint.work_completed_at is None:
            sprint.work_completed_at = now
            sprint.work_duration_sec = self.work_seconds

        logger.info("Focus phase completed")

    def _complete_break(self, now: datetime) -> None:
        self._cancel_tick()
        self.target = None
        self.running_state = SessionState.COMPLETED

        sprint = self._sprint
        if sprint is None or sprint.work_completed_at is None:
            return
        if sprint.break_completed_at is None:
            sprint.break_completed_at = now
            sprint.break_duration_sec = self.break_seconds

        logger.info("Break phase completed")
        self._finalize()

    def _finalize(self) -> None:
        """Award, mirror and notify for a sprint that reached Completed(Break)"""
        sprint = self._sprint
        if self._finalized or sprint is None or not sprint.is_complete:
            return
        self._finalized = True

        reward = None
        eligible = sprint.is_rewardable
        if eligible:
            reward = self.reward_service.award_sprint(
                sprint.user_id,
                sprint.work_duration_sec,
                completed_at=sprint.break_completed_at,
            )
        else:
            logger.warning(f"Sprint {sprint.id} finished without reward eligibility")

        self._mirror_update({
            "break_completed_at": sprint.break_completed_at,
            "break_duration_sec": sprint.break_duration_sec,
            "reward_eligible": eligible,
            "coins_earned": reward.amount if reward else 0,
        })

        completion = SprintCompletion(
            linked_task_id=sprint.linked_task_id,
            linked_habit_id=sprint.linked_habit_id,
            work_duration_sec=sprint.work_duration_sec,
            break_duration_sec=sprint.break_duration_sec,
            reward_eligible=eligible,
            reward=reward,
        )

        # Back to Idle before notifying so the callback may start a new sprint
        self.last_completed = sprint.snapshot()
        self.verification.reset()
        self._sprint = None
        self._link = None
        self.phase = Phase.FOCUS
        self.running_state = SessionState.IDLE
        self.seconds_left = self.work_seconds

        callback = self._completion_callback
        if callback is not None:
            try:
                callback(completion)
            except Exception:
                logger.exception("Sprint completion callback failed")

    def _revoke_reward(self, generation: int) -> None:
        if generation != self._generation or self._sprint is None:
            return
        self._sprint.reward_eligible = False
        self._mirror_update({"reward_eligible": False})
        logger.warning(f"Reward revoked for sprint {self._sprint.id}: verification failed")

    def _mark_verified(self, generation: int) -> None:
        if generation != self._generation or self._sprint is None:
            return
        self._sprint.verification_passed = True

    def _announce_challenge(self, generation: int) -> None:
        listener = self.on_verification_challenge
        if generation != self._generation or listener is None:
            return
        try:
            listener()
        except Exception:
            logger.exception("Verification challenge listener failed")

    def _arm_tick(self) -> None:
        self._cancel_tick()
        generation = self._generation
        self._tick_handle = self.timers.call_every(
            TICK_INTERVAL_SECONDS,
            lambda: self._on_tick(generation),
            name="session-tick",
        )

    def _on_tick(self, generation: int) -> None:
        if generation == self._generation:
            self.tick()

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _mirror(self, operation: str, func: Callable, *args: Any):
        """Best-effort write to the store; failures leave local state untouched"""
        try:
            return func(*args)
        except (PersistenceException, SprintNotFoundException) as e:
            logger.error(f"Sprint {operation} failed, continuing locally: {e}")
            return None

    def _mirror_update(self, fields: Dict[str, Any]) -> None:
        if self._sprint is None or self._sprint.id is None:
            return
        self._mirror("update", self.persistence.update_sprint_record, self._sprint.id, fields)
