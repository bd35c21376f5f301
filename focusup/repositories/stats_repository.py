"""
Stats repository - Data access layer for daily counters, user stats
and the completion log.
"""
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from focusup.models import DailyCounters, UserStats, CompletionLog


class DailyCountersRepository:
    """Repository for DailyCounters data access"""

    @staticmethod
    def get_by_date(db: Session, user_id: str, target_date: date) -> Optional[DailyCounters]:
        """Get counters for a user on a specific date"""
        return db.query(DailyCounters).filter(
            DailyCounters.user_id == user_id,
            DailyCounters.date == target_date
        ).first()

    @staticmethod
    def create(db: Session, counters: DailyCounters) -> DailyCounters:
        """Create new counters row"""
        db.add(counters)
        db.commit()
        db.refresh(counters)
        return counters

    @staticmethod
    def update(db: Session, counters: DailyCounters) -> DailyCounters:
        """Update existing counters row"""
        db.commit()
        db.refresh(counters)
        return counters


class UserStatsRepository:
    """Repository for UserStats data access"""

    @staticmethod
    def get_by_user(db: Session, user_id: str) -> Optional[UserStats]:
        return db.query(UserStats).filter(UserStats.user_id == user_id).first()

    @staticmethod
    def get_or_create(db: Session, user_id: str) -> UserStats:
        """
        Get stats for a user (creates zeroed row if not exists).

        Returns:
            UserStats object
        """
        stats = UserStatsRepository.get_by_user(db, user_id)
        if not stats:
            stats = UserStats(user_id=user_id)
            db.add(stats)
            db.commit()
            db.refresh(stats)
        return stats

    @staticmethod
    def update(db: Session, stats: UserStats) -> UserStats:
        db.commit()
        db.refresh(stats)
        return stats


class CompletionLogRepository:
    """Repository for CompletionLog data access"""

    @staticmethod
    def create(db: Session, entry: CompletionLog) -> CompletionLog:
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def get_since(
        db: Session,
        user_id: str,
        kind: str,
        since: datetime,
        limit: int
    ) -> List[CompletionLog]:
        """Get completions of one kind since a point in time, oldest first"""
        rows = db.query(CompletionLog).filter(
            CompletionLog.user_id == user_id,
            CompletionLog.kind == kind,
            CompletionLog.completed_at >= since
        ).order_by(CompletionLog.completed_at.desc()).limit(limit).all()
        return list(reversed(rows))
