from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, UniqueConstraint
from datetime import datetime
from focusup.database import Base


class FocusSprint(Base):
    __tablename__ = "focus_sprints"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)

    # At most one of these is set
    linked_task_id = Column(String, nullable=True)
    linked_habit_id = Column(String, nullable=True)

    work_started_at = Column(DateTime, nullable=True)
    work_completed_at = Column(DateTime, nullable=True)
    work_duration_sec = Column(Integer, nullable=True)
    break_started_at = Column(DateTime, nullable=True)
    break_completed_at = Column(DateTime, nullable=True)
    break_duration_sec = Column(Integer, nullable=True)

    # Reward outcome (filled on finalize)
    reward_eligible = Column(Boolean, default=True)
    coins_earned = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.now)


class DailyCounters(Base):
    __tablename__ = "daily_counters"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_counters_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    habits_completed = Column(Integer, default=0)
    tasks_completed = Column(Integer, default=0)
    sprints_completed = Column(Integer, default=0)

    # JSON array of attribute keys, e.g. '["CO", "PH"]'
    attributes_worked = Column(String, default="[]")

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class UserStats(Base):
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)

    total_coins = Column(Integer, default=0)

    # Attribute XP accumulators
    xp_physical = Column(Integer, default=0)
    xp_cognitive = Column(Integer, default=0)
    xp_heart = Column(Integer, default=0)
    xp_soul = Column(Integer, default=0)

    current_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)

    total_focus_time = Column(Integer, default=0)  # Seconds of completed focus phases
    total_sessions = Column(Integer, default=0)
    total_sprints = Column(Integer, default=0)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class CompletionLog(Base):
    __tablename__ = "completion_log"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False)  # task, habit, sprint
    title = Column(String, nullable=True)
    completed_at = Column(DateTime, default=datetime.now, index=True)
