"""
Daily counters service.
Tracks per-user, per-day completion counts that feed diminishing returns.
A new local calendar day is detected lazily on access; there is no
midnight job.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Set

from focusup.domain import AttributeKey, DailyStats
from focusup.exceptions import PersistenceException

logger = logging.getLogger("focusup.tracker")


class DailyTracker:
    """Service for daily completion counters"""

    def __init__(self, persistence, clock: Callable[[], datetime] = datetime.now):
        self.persistence = persistence
        self.clock = clock
        # Last-known counters per user, used when the store is unreachable
        self._last_known: Dict[str, DailyStats] = {}
        # Users whose latest write did not reach the store
        self._unsynced: Set[str] = set()

    def current_counters(self, user_id: str) -> DailyStats:
        """
        Get today's counters for a user.

        Returns a zeroed record when the stored day is not today. If the
        store fails, or holds older values than a write that failed,
        the last-known counters for today win.

        Returns:
            A copy of today's DailyStats
        """
        today = self.clock().date()

        cached = self._last_known.get(user_id)
        if user_id in self._unsynced and cached and cached.date == today:
            return cached.copy()

        try:
            stored = self.persistence.read_daily_counters(user_id, today)
        except PersistenceException as e:
            logger.error(f"Reading daily counters for {user_id} failed: {e}")
            if cached and cached.date == today:
                return cached.copy()
            return DailyStats(user_id=user_id, date=today)

        stats = stored if stored and stored.date == today else DailyStats(user_id=user_id, date=today)
        self._last_known[user_id] = stats.copy()
        return stats

    def next_habit_number(self, user_id: str) -> int:
        return self.current_counters(user_id).habits_completed + 1

    def next_task_number(self, user_id: str) -> int:
        return self.current_counters(user_id).tasks_completed + 1

    def next_sprint_number(self, user_id: str) -> int:
        return self.current_counters(user_id).sprints_completed + 1

    def all_attributes_worked_today(self, user_id: str) -> bool:
        return self.current_counters(user_id).all_attributes_worked

    def increment_habit(self, user_id: str, attribute: AttributeKey) -> DailyStats:
        """Count a habit and mark its attribute as worked today"""
        stats = self.current_counters(user_id)
        stats.habits_completed += 1
        stats.attributes_worked.add(AttributeKey(attribute))
        return self._save(stats)

    def increment_task(self, user_id: str) -> DailyStats:
        stats = self.current_counters(user_id)
        stats.tasks_completed += 1
        return self._save(stats)

    def increment_sprint(self, user_id: str) -> DailyStats:
        stats = self.current_counters(user_id)
        stats.sprints_completed += 1
        return self._save(stats)

    def _save(self, stats: DailyStats) -> DailyStats:
        self._last_known[stats.user_id] = stats.copy()
        try:
            self.persistence.write_daily_counters(stats)
        except PersistenceException as e:
            logger.error(f"Writing daily counters for {stats.user_id} failed: {e}")
            self._unsynced.add(stats.user_id)
        else:
            self._unsynced.discard(stats.user_id)
        return stats
