from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, Optional

from focusup.domain import AttributeKey, Phase, SessionState, TaskPriority


# Reward engine input/output
class RewardContext(BaseModel):
    item_number: int = Field(default=1, ge=1)  # Nth item of its kind today, counting this one
    during_focus: bool = False
    is_duplicate: bool = False
    is_rapid_completion: bool = False
    time_of_day: int = Field(default=12, ge=0, le=23)
    streak: int = Field(default=0, ge=0)
    all_attributes_worked_today: bool = False


class RewardResult(BaseModel):
    amount: int
    base_amount: int
    multipliers: Dict[str, float] = Field(default_factory=dict)  # insertion order = application order
    message: str


class LevelUpCheck(BaseModel):
    can_level: bool
    reason: Optional[str] = None
    cost: Optional[int] = None


# Session API

class DurationsUpdate(BaseModel):
    work_seconds: int
    break_seconds: int


class LinkUpdate(BaseModel):
    task_id: Optional[str] = None
    habit_id: Optional[str] = None


class SprintResponse(BaseModel):
    id: Optional[int] = None
    user_id: Optional[str] = None
    linked_task_id: Optional[str] = None
    linked_habit_id: Optional[str] = None
    work_started_at: Optional[datetime] = None
    work_completed_at: Optional[datetime] = None
    work_duration_sec: Optional[int] = None
    break_started_at: Optional[datetime] = None
    break_completed_at: Optional[datetime] = None
    break_duration_sec: Optional[int] = None
    verification_required: bool = False
    verification_passed: bool = False
    reward_eligible: bool = True

    class Config:
        from_attributes = True


class SessionStateResponse(BaseModel):
    phase: Phase
    running_state: SessionState
    seconds_left: int
    display: str  # mm:ss
    work_seconds: int
    break_seconds: int
    verification_pending: bool = False
    sprint: SprintResponse


# Rewards API
class HabitCompletionRequest(BaseModel):
    attribute: AttributeKey
    title: str = Field(default="", max_length=200)


class TaskCompletionRequest(BaseModel):
    priority: TaskPriority = TaskPriority.MEDIUM
    title: str = Field(..., min_length=1, max_length=200)


class StreakUpdate(BaseModel):
    current_streak: int = Field(..., ge=0)


class SprintRecordResponse(BaseModel):
    id: int
    linked_task_id: Optional[str] = None
    linked_habit_id: Optional[str] = None
    work_started_at: Optional[datetime] = None
    work_duration_sec: Optional[int] = None
    break_completed_at: Optional[datetime] = None
    break_duration_sec: Optional[int] = None
    reward_eligible: bool = True
    coins_earned: int = 0

    class Config:
        from_attributes = True


class TaskCompletionResponse(RewardResult):
    spam_score: float = 0.0


class UserStatsResponse(BaseModel):
    user_id: str
    total_coins: int
    attributes: Dict[AttributeKey, int]
    attribute_levels: Dict[AttributeKey, int]
    character_level: int
    current_streak: int
    longest_streak: int
    total_focus_time: int
    total_sessions: int
    total_sprints: int


class LevelStatusResponse(BaseModel):
    character_level: int
    check: LevelUpCheck
