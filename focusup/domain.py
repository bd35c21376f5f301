"""
Core domain types for focus sprints and rewards.
In-memory shapes only; database rows live in focusup.models.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Set, Union

if TYPE_CHECKING:
    from focusup.schemas import RewardResult


class Phase(str, Enum):
    FOCUS = "focus"
    BREAK = "break"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class AttributeKey(str, Enum):
    PHYSICAL = "PH"
    COGNITIVE = "CO"
    HEART = "EM"
    SOUL = "SO"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# UserStats column holding each attribute's XP
ATTRIBUTE_COLUMNS = {
    AttributeKey.PHYSICAL: "xp_physical",
    AttributeKey.COGNITIVE: "xp_cognitive",
    AttributeKey.HEART: "xp_heart",
    AttributeKey.SOUL: "xp_soul",
}


def empty_attributes() -> Dict[AttributeKey, int]:
    return {key: 0 for key in AttributeKey}


@dataclass(frozen=True)
class TaskLink:
    task_id: str


@dataclass(frozen=True)
class HabitLink:
    habit_id: str


Link = Optional[Union[TaskLink, HabitLink]]


@dataclass
class Sprint:
    """One focus phase plus its break, owned by a SessionController"""
    user_id: Optional[str] = None
    id: Optional[int] = None
    link: Link = None
    work_started_at: Optional[datetime] = None
    work_completed_at: Optional[datetime] = None
    work_duration_sec: Optional[int] = None
    break_started_at: Optional[datetime] = None
    break_completed_at: Optional[datetime] = None
    break_duration_sec: Optional[int] = None
    verification_required: bool = False
    verification_passed: bool = False
    reward_eligible: bool = True

    @property
    def linked_task_id(self) -> Optional[str]:
        return self.link.task_id if isinstance(self.link, TaskLink) else None

    @property
    def linked_habit_id(self) -> Optional[str]:
        return self.link.habit_id if isinstance(self.link, HabitLink) else None

    @property
    def is_complete(self) -> bool:
        return self.work_completed_at is not None and self.break_completed_at is not None

    @property
    def is_rewardable(self) -> bool:
        """Both phases done, not revoked, and any scheduled check passed"""
        if not self.is_complete or not self.reward_eligible:
            return False
        return self.verification_passed or not self.verification_required

    def snapshot(self) -> "Sprint":
        return replace(self)


@dataclass(frozen=True)
class SprintCompletion:
    """Payload handed to the completion callback"""
    linked_task_id: Optional[str]
    linked_habit_id: Optional[str]
    work_duration_sec: int
    break_duration_sec: int
    reward_eligible: bool = True
    reward: Optional["RewardResult"] = None


@dataclass
class DailyStats:
    """Per-user counters for one local calendar day"""
    user_id: str
    date: date
    habits_completed: int = 0
    tasks_completed: int = 0
    sprints_completed: int = 0
    attributes_worked: Set[AttributeKey] = field(default_factory=set)

    @property
    def all_attributes_worked(self) -> bool:
        return len(self.attributes_worked) == len(AttributeKey)

    def copy(self) -> "DailyStats":
        return replace(self, attributes_worked=set(self.attributes_worked))


@dataclass
class UserAggregate:
    """Coins, attribute XP and streak for one user"""
    user_id: str
    coins: int = 0
    attributes: Dict[AttributeKey, int] = field(default_factory=empty_attributes)
    current_streak: int = 0
    longest_streak: int = 0
    total_focus_time: int = 0
    total_sessions: int = 0
    total_sprints: int = 0
