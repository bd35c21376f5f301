"""
Persistence gateway.
Implements the store contract used by the session engine on top of
SQLAlchemy repositories. Every call may raise PersistenceException;
callers decide whether the failure is fatal (for the engine it never is).
"""
import json
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from focusup.domain import ATTRIBUTE_COLUMNS, AttributeKey, DailyStats, UserAggregate
from focusup.exceptions import PersistenceException, SprintNotFoundException
from focusup.models import CompletionLog, DailyCounters, FocusSprint
from focusup.repositories.sprint_repository import SprintRepository
from focusup.repositories.stats_repository import (
    CompletionLogRepository, DailyCountersRepository, UserStatsRepository
)

logger = logging.getLogger("focusup.persistence")


class SqlPersistence:
    """Store gateway backed by a SQLAlchemy session factory"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.sprint_repo = SprintRepository()
        self.counters_repo = DailyCountersRepository()
        self.stats_repo = UserStatsRepository()
        self.log_repo = CompletionLogRepository()

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Rolled back {operation}: {e}")
            raise PersistenceException(operation, str(e)) from e
        finally:
            db.close()

    # Sprints

    def create_sprint_record(self, fields: Dict[str, Any]) -> Optional[int]:
        """Insert a sprint row and return its ID"""
        with self._session("create_sprint") as db:
            sprint = self.sprint_repo.create(db, FocusSprint(**fields))
            return sprint.id

    def update_sprint_record(self, sprint_id: int, fields: Dict[str, Any]) -> None:
        """Apply field updates to an existing sprint row"""
        with self._session("update_sprint") as db:
            sprint = self.sprint_repo.get_by_id(db, sprint_id)
            if not sprint:
                raise SprintNotFoundException(sprint_id)
            for name, value in fields.items():
                setattr(sprint, name, value)
            self.sprint_repo.update(db, sprint)

    def get_sprint_record(self, sprint_id: int) -> Optional[FocusSprint]:
        with self._session("get_sprint") as db:
            sprint = self.sprint_repo.get_by_id(db, sprint_id)
            if sprint:
                db.expunge(sprint)
            return sprint

    def recent_sprint_records(self, user_id: str, limit: int = 10) -> List[FocusSprint]:
        """The user's latest sprint rows, newest first, detached from the session"""
        with self._session("recent_sprints") as db:
            sprints = self.sprint_repo.get_recent(db, user_id, limit)
            for sprint in sprints:
                db.expunge(sprint)
            return sprints

    # Daily counters

    def read_daily_counters(self, user_id: str, target_date: date) -> Optional[DailyStats]:
        """Get stored counters for a date, or None if that day has no row yet"""
        with self._session("read_daily_counters") as db:
            row = self.counters_repo.get_by_date(db, user_id, target_date)
            if not row:
                return None
            return DailyStats(
                user_id=row.user_id,
                date=row.date,
                habits_completed=row.habits_completed or 0,
                tasks_completed=row.tasks_completed or 0,
                sprints_completed=row.sprints_completed or 0,
                attributes_worked=_decode_attributes(row.attributes_worked),
            )

    def write_daily_counters(self, stats: DailyStats) -> None:
        """Upsert counters for (user, date)"""
        with self._session("write_daily_counters") as db:
            row = self.counters_repo.get_by_date(db, stats.user_id, stats.date)
            encoded = json.dumps(sorted(key.value for key in stats.attributes_worked))
            if not row:
                row = DailyCounters(user_id=stats.user_id, date=stats.date)
                _apply_counters(row, stats, encoded)
                self.counters_repo.create(db, row)
                return
            _apply_counters(row, stats, encoded)
            self.counters_repo.update(db, row)

    # User aggregate

    def read_user_aggregate(self, user_id: str) -> UserAggregate:
        """Get coins, attribute XP and streak (zeroed row created on first read)"""
        with self._session("read_user_aggregate") as db:
            row = self.stats_repo.get_or_create(db, user_id)
            return UserAggregate(
                user_id=user_id,
                coins=row.total_coins or 0,
                attributes={
                    key: getattr(row, column) or 0
                    for key, column in ATTRIBUTE_COLUMNS.items()
                },
                current_streak=row.current_streak or 0,
                longest_streak=row.longest_streak or 0,
                total_focus_time=row.total_focus_time or 0,
                total_sessions=row.total_sessions or 0,
                total_sprints=row.total_sprints or 0,
            )

    def write_user_aggregate(self, aggregate: UserAggregate) -> None:
        with self._session("write_user_aggregate") as db:
            row = self.stats_repo.get_or_create(db, aggregate.user_id)
            row.total_coins = aggregate.coins
            for key, column in ATTRIBUTE_COLUMNS.items():
                setattr(row, column, aggregate.attributes.get(key, 0))
            row.current_streak = aggregate.current_streak
            row.longest_streak = max(aggregate.longest_streak, aggregate.current_streak)
            row.total_focus_time = aggregate.total_focus_time
            row.total_sessions = aggregate.total_sessions
            row.total_sprints = aggregate.total_sprints
            self.stats_repo.update(db, row)

    # Completion history

    def log_completion(
        self,
        user_id: str,
        kind: str,
        title: Optional[str],
        completed_at: datetime
    ) -> None:
        with self._session("log_completion") as db:
            self.log_repo.create(db, CompletionLog(
                user_id=user_id,
                kind=kind,
                title=title,
                completed_at=completed_at
            ))

    def recent_completions(
        self,
        user_id: str,
        kind: str,
        since: datetime,
        limit: int
    ) -> List[Tuple[str, datetime]]:
        """(title, completed_at) pairs since a point in time, oldest first"""
        with self._session("recent_completions") as db:
            rows = self.log_repo.get_since(db, user_id, kind, since, limit)
            return [(row.title or "", row.completed_at) for row in rows]


def _apply_counters(row: DailyCounters, stats: DailyStats, encoded_attributes: str) -> None:
    row.habits_completed = stats.habits_completed
    row.tasks_completed = stats.tasks_completed
    row.sprints_completed = stats.sprints_completed
    row.attributes_worked = encoded_attributes


def _decode_attributes(raw: Optional[str]) -> set:
    try:
        values = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        values = []
    return {AttributeKey(value) for value in values if value in AttributeKey._value2member_map_}
