"""
Reward pipeline service.
Builds reward contexts from daily counters, the completion history and the
user's stats, runs the reward engine and forwards the deltas to the store.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from focusup.constants import (
    COMPLETION_KIND_HABIT,
    COMPLETION_KIND_SPRINT,
    COMPLETION_KIND_TASK,
    DUPLICATE_WINDOW_HOURS,
    RAPID_COMPLETION_COUNT,
    RECENT_COMPLETIONS_LIMIT,
)
from focusup.domain import AttributeKey, TaskPriority, UserAggregate
from focusup.exceptions import LevelUpNotAllowedException, PersistenceException, ValidationException
from focusup.schemas import LevelUpCheck, RewardContext, RewardResult, TaskCompletionResponse
from focusup.services import integrity_checker, reward_engine
from focusup.services.daily_tracker import DailyTracker

logger = logging.getLogger("focusup.rewards")


class RewardService:
    """Service for awarding XP and coins"""

    def __init__(
        self,
        persistence,
        tracker: DailyTracker,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.persistence = persistence
        self.tracker = tracker
        self.clock = clock
        self._last_known: Dict[str, UserAggregate] = {}

    def get_stats(self, user_id: str) -> UserAggregate:
        """Get the user's aggregate (last-known copy if the store fails)"""
        try:
            aggregate = self.persistence.read_user_aggregate(user_id)
        except PersistenceException as e:
            logger.error(f"Reading stats for {user_id} failed: {e}")
            return self._last_known.get(user_id) or UserAggregate(user_id=user_id)
        self._last_known[user_id] = aggregate
        return aggregate

    def _save_stats(self, aggregate: UserAggregate) -> None:
        self._last_known[aggregate.user_id] = aggregate
        try:
            self.persistence.write_user_aggregate(aggregate)
        except PersistenceException as e:
            logger.error(f"Writing stats for {aggregate.user_id} failed: {e}")

    def _log_completion(self, user_id: str, kind: str, title: Optional[str], at: datetime) -> None:
        try:
            self.persistence.log_completion(user_id, kind, title, at)
        except PersistenceException as e:
            logger.error(f"Logging {kind} completion for {user_id} failed: {e}")

    def _recent(self, user_id: str, kind: str, since: datetime):
        try:
            return self.persistence.recent_completions(user_id, kind, since, RECENT_COMPLETIONS_LIMIT)
        except PersistenceException as e:
            logger.error(f"Reading recent {kind} completions for {user_id} failed: {e}")
            return []

    def complete_habit(
        self,
        user_id: str,
        attribute: AttributeKey,
        title: str = "",
        during_focus: bool = False
    ) -> RewardResult:
        """
        Award XP for a completed habit to its attribute.

        The habit counts as the Nth of the day (counter before increment + 1)
        and the variety bonus uses the attributes worked before this one.

        Returns:
            RewardResult with XP earned
        """
        now = self.clock()
        attribute = AttributeKey(attribute)
        counters = self.tracker.current_counters(user_id)
        aggregate = self.get_stats(user_id)

        ctx = RewardContext(
            item_number=counters.habits_completed + 1,
            during_focus=during_focus,
            time_of_day=now.hour,
            streak=aggregate.current_streak,
            all_attributes_worked_today=counters.all_attributes_worked,
        )
        result = reward_engine.habit_reward(ctx)

        aggregate.attributes[attribute] = aggregate.attributes.get(attribute, 0) + result.amount
        self._save_stats(aggregate)
        self.tracker.increment_habit(user_id, attribute)
        self._log_completion(user_id, COMPLETION_KIND_HABIT, title, now)

        logger.info(f"Habit reward for {user_id}: {result.amount} XP to {attribute.value}")
        return result

    def complete_task(
        self,
        user_id: str,
        priority: TaskPriority,
        title: str,
        during_focus: bool = False
    ) -> TaskCompletionResponse:
        """
        Award coins for a completed task, applying anti-cheat penalties.

        Duplicate check: task titles completed in the last 24 hours.
        Rapid check: the latest task completions plus this one.

        Returns:
            TaskCompletionResponse with coins earned and spam score
        """
        now = self.clock()
        counters = self.tracker.current_counters(user_id)
        aggregate = self.get_stats(user_id)

        recent = self._recent(
            user_id, COMPLETION_KIND_TASK, now - timedelta(hours=DUPLICATE_WINDOW_HOURS)
        )
        is_duplicate = integrity_checker.is_duplicate_title(title, recent, now=now)
        timestamps = [completed_at for _, completed_at in recent][-(RAPID_COMPLETION_COUNT - 1):]
        is_rapid = integrity_checker.is_rapid_completion(timestamps + [now])
        is_generic = integrity_checker.is_generic_title(title)

        ctx = RewardContext(
            item_number=counters.tasks_completed + 1,
            during_focus=during_focus,
            is_duplicate=is_duplicate,
            is_rapid_completion=is_rapid,
            time_of_day=now.hour,
            streak=aggregate.current_streak,
        )
        result = reward_engine.task_reward(priority, ctx)
        score = integrity_checker.spam_score(
            is_duplicate,
            is_rapid,
            is_generic,
            counters.tasks_completed + counters.habits_completed
        )

        aggregate.coins += result.amount
        self._save_stats(aggregate)
        self.tracker.increment_task(user_id)
        self._log_completion(user_id, COMPLETION_KIND_TASK, title, now)

        if score >= 0.5:
            logger.warning(f"High spam score {score} for {user_id} task '{title}'")
        logger.info(f"Task reward for {user_id}: {result.amount} coins")
        return TaskCompletionResponse(**result.model_dump(), spam_score=score)

    def award_sprint(
        self,
        user_id: str,
        work_duration_sec: int,
        completed_at: Optional[datetime] = None
    ) -> RewardResult:
        """
        Award coins for a finished sprint and add its focus time to the stats.

        Args:
            user_id: Sprint owner
            work_duration_sec: Length of the focus phase
            completed_at: Break completion time; sets the time-of-day bucket

        Returns:
            RewardResult with coins earned
        """
        completed_at = completed_at or self.clock()
        counters = self.tracker.current_counters(user_id)
        aggregate = self.get_stats(user_id)

        ctx = RewardContext(
            item_number=counters.sprints_completed + 1,
            during_focus=True,
            time_of_day=completed_at.hour,
            streak=aggregate.current_streak,
            all_attributes_worked_today=counters.all_attributes_worked,
        )
        result = reward_engine.sprint_reward(ctx)

        aggregate.coins += result.amount
        aggregate.total_focus_time += work_duration_sec
        aggregate.total_sessions += 1
        aggregate.total_sprints += 1
        self._save_stats(aggregate)
        self.tracker.increment_sprint(user_id)
        self._log_completion(user_id, COMPLETION_KIND_SPRINT, None, completed_at)

        logger.info(f"Sprint reward for {user_id}: {result.amount} coins")
        return result

    def update_streak(self, user_id: str, new_streak: int) -> UserAggregate:
        """
        Set the user's current streak; the longest streak never decreases.

        Raises:
            ValidationException: If the streak is negative
        """
        if new_streak < 0:
            raise ValidationException("current_streak", "must not be negative")

        aggregate = self.get_stats(user_id)
        aggregate.current_streak = new_streak
        aggregate.longest_streak = max(aggregate.longest_streak, new_streak)
        self._save_stats(aggregate)

        logger.info(f"Streak for {user_id} set to {new_streak} (longest {aggregate.longest_streak})")
        return aggregate

    def level_status(self, user_id: str) -> Tuple[int, LevelUpCheck]:
        """Current character level and whether the next one is unlocked"""
        aggregate = self.get_stats(user_id)
        level = reward_engine.character_level(aggregate.attributes, aggregate.coins)
        return level, reward_engine.can_level_up(level, aggregate.attributes, aggregate.coins)

    def level_up(self, user_id: str) -> LevelUpCheck:
        """
        Pay the gate cost for the next character level.

        Raises:
            LevelUpNotAllowedException: If the gate is not met
        """
        _, check = self.level_status(user_id)
        if not check.can_level:
            raise LevelUpNotAllowedException(check.reason or "requirements not met")

        if check.cost:
            aggregate = self.get_stats(user_id)
            aggregate.coins -= check.cost
            self._save_stats(aggregate)

        logger.info(f"Level up for {user_id}, paid {check.cost or 0} coins")
        return check
