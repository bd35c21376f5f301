"""
Reward calculation engine.
Pure functions for the XP curve, diminishing returns and character level gates.
No I/O and no randomness: the same inputs always produce the same result.
"""
import math
from functools import lru_cache
from typing import Dict, Mapping

from focusup.constants import (
    HABIT_BASE_XP,
    TASK_BASE_COINS,
    SPRINT_BASE_COINS,
    FOCUS_MULTIPLIER,
    NON_FOCUS_MULTIPLIER,
    DUPLICATE_PENALTY,
    RAPID_COMPLETION_PENALTY,
    VARIETY_BONUS,
    STREAK_BONUS_CAP,
    STREAK_BONUS_DIVISOR,
    TASK_DECAY_RATE,
    TASK_DECAY_FLOOR,
    SPRINT_DECAY_STEP,
    SPRINT_DECAY_FLOOR,
    TIME_BONUS_MORNING,
    TIME_BONUS_AFTERNOON,
    TIME_BONUS_EVENING,
    TIME_BONUS_LATE_NIGHT,
    ATTRIBUTE_MAX_LEVEL,
    CHARACTER_MAX_LEVEL,
    COINS_PER_EFFECTIVE_XP,
    LEVEL_GATES,
)
from focusup.domain import AttributeKey, TaskPriority
from focusup.schemas import LevelUpCheck, RewardContext, RewardResult


@lru_cache(maxsize=None)
def xp_required_for_level(level: int) -> int:
    """
    Cumulative XP needed to reach a level.

    Formula: floor(sum_{i=1}^{level-1} floor(i + 300 * 2^(i/7)) / 4)

    Level 1 needs 0 XP. The same curve serves attributes (max 50)
    and the character (max 99).
    """
    if level <= 1:
        return 0

    total = 0
    for i in range(1, level):
        total += math.floor(i + 300 * 2 ** (i / 7))
    return total // 4


def xp_to_level(xp: int, max_level: int = ATTRIBUTE_MAX_LEVEL) -> int:
    """
    Convert XP to a level (inverse of xp_required_for_level).

    Returns the largest level whose requirement is <= xp, capped at max_level.
    """
    if xp <= 0:
        return 1

    for level in range(2, max_level + 1):
        if xp < xp_required_for_level(level):
            return level - 1
    return max_level


def attribute_levels(attributes: Mapping[AttributeKey, int]) -> Dict[AttributeKey, int]:
    return {key: xp_to_level(attributes.get(key, 0)) for key in AttributeKey}


def character_level(attributes: Mapping[AttributeKey, int], coins: int) -> int:
    """
    Character level from the sum of attribute XP plus a coin bonus.

    Every 100 coins count as 1 effective XP.
    """
    total_xp = sum(attributes.values())
    coin_bonus = max(0, coins) // COINS_PER_EFFECTIVE_XP
    return xp_to_level(total_xp + coin_bonus, max_level=CHARACTER_MAX_LEVEL)


def focus_multiplier(during_focus: bool) -> float:
    return FOCUS_MULTIPLIER if during_focus else NON_FOCUS_MULTIPLIER


def task_diminishing_factor(item_number: int) -> float:
    """max(0.2, 0.9^(n-1)): exponential decay that never reaches zero"""
    return max(TASK_DECAY_FLOOR, TASK_DECAY_RATE ** (item_number - 1))


def sprint_diminishing_factor(item_number: int) -> float:
    """Linear decay by 10% per sprint, minimum 25%"""
    return max(SPRINT_DECAY_FLOOR, 1.0 - (item_number - 1) * SPRINT_DECAY_STEP)


def time_of_day_multiplier(hour: int) -> float:
    """
    Sprint multiplier by hour bucket.

    - [6, 12):  morning, 1.2
    - [14, 18): afternoon, 1.1
    - [23, 24) and [0, 5): late night, 0.8
    - anything else: 1.0
    """
    if 6 <= hour < 12:
        return TIME_BONUS_MORNING
    if 14 <= hour < 18:
        return TIME_BONUS_AFTERNOON
    if hour >= 23 or hour < 5:
        return TIME_BONUS_LATE_NIGHT
    return TIME_BONUS_EVENING


def _product(multipliers: Mapping[str, float]) -> float:
    total = 1.0
    for value in multipliers.values():
        total *= value
    return total


def ordinal(n: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th', 23 -> '23rd'"""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def habit_reward(ctx: RewardContext) -> RewardResult:
    """
    Calculate habit XP with diminishing returns.

    Formula: Base × (1/√n) × Focus × min(1.5, 1 + streak/20) × Variety

    Multipliers are combined before flooring, and the result is never
    below 1 XP so a completed habit always earns something.

    Args:
        ctx: Reward context; item_number is the habit's ordinal today

    Returns:
        RewardResult with XP amount and applied multipliers
    """
    multipliers = {
        "diminishing": 1 / math.sqrt(ctx.item_number),
        "focus": focus_multiplier(ctx.during_focus),
        "streak": min(STREAK_BONUS_CAP, 1.0 + ctx.streak / STREAK_BONUS_DIVISOR),
        "variety": VARIETY_BONUS if ctx.all_attributes_worked_today else 1.0,
    }

    amount = max(1, math.floor(HABIT_BASE_XP * _product(multipliers)))

    return RewardResult(
        amount=amount,
        base_amount=HABIT_BASE_XP,
        multipliers=multipliers,
        message=f"+{amount} XP earned! ({ordinal(ctx.item_number)} habit today)",
    )


def task_reward(priority: TaskPriority, ctx: RewardContext) -> RewardResult:
    """
    Calculate task coins with diminishing returns and anti-cheat penalties.

    Formula: Base × max(0.2, 0.9^(n-1)) × Focus × Duplicate × Rapid

    Duplicate and rapid penalties (0.5 each) compound when both apply.

    Args:
        priority: Task priority (low=3, medium=6, high=10 base coins)
        ctx: Reward context; item_number is the task's ordinal today

    Returns:
        RewardResult with coin amount and applied multipliers
    """
    base = TASK_BASE_COINS[TaskPriority(priority).value]

    multipliers = {
        "diminishing": task_diminishing_factor(ctx.item_number),
        "focus": focus_multiplier(ctx.during_focus),
    }
    if ctx.is_duplicate:
        multipliers["duplicate"] = DUPLICATE_PENALTY
    if ctx.is_rapid_completion:
        multipliers["rapid"] = RAPID_COMPLETION_PENALTY

    amount = math.floor(base * _product(multipliers))

    message = f"+{amount} coins earned! ({ordinal(ctx.item_number)} task today)"
    if ctx.is_duplicate:
        message += " [Duplicate detected]"
    if ctx.is_rapid_completion:
        message += " [Slow down!]"

    return RewardResult(
        amount=amount,
        base_amount=base,
        multipliers=multipliers,
        message=message,
    )


def sprint_reward(ctx: RewardContext) -> RewardResult:
    """
    Calculate sprint coins from time of day and today's sprint count.

    Formula: 5 × TimeOfDay × max(0.25, 1 - (n-1) × 0.1)
    """
    multipliers = {
        "time_of_day": time_of_day_multiplier(ctx.time_of_day),
        "diminishing": sprint_diminishing_factor(ctx.item_number),
    }

    amount = math.floor(SPRINT_BASE_COINS * _product(multipliers))

    return RewardResult(
        amount=amount,
        base_amount=SPRINT_BASE_COINS,
        multipliers=multipliers,
        message=f"+{amount} coins for sprint #{ctx.item_number}!",
    )


def can_level_up(
    current_level: int,
    attributes: Mapping[AttributeKey, int],
    coins: int
) -> LevelUpCheck:
    """
    Check whether the character may advance to current_level + 1.

    Gates exist at levels 10, 20, ..., 90 and 99. Checks run in order
    (coins first, then attribute requirements) and the first unmet one
    is reported. Levels without a gate pass at no cost.

    Args:
        current_level: Current character level
        attributes: Attribute XP by key
        coins: Coins currently held

    Returns:
        LevelUpCheck with can_level, reason (on failure) and cost
    """
    if current_level >= CHARACTER_MAX_LEVEL:
        return LevelUpCheck(can_level=False, reason=f"Max level ({CHARACTER_MAX_LEVEL}) reached!")

    gate = LEVEL_GATES.get(current_level + 1)
    if gate is None:
        return LevelUpCheck(can_level=True, cost=0)

    required_coins = gate["coins"]
    if coins < required_coins:
        return LevelUpCheck(
            can_level=False,
            reason=f"Need {required_coins} coins (you have {coins})",
            cost=required_coins,
        )

    levels = list(attribute_levels(attributes).values())
    average = sum(levels) / len(levels)

    if "min_average" in gate and average < gate["min_average"]:
        return LevelUpCheck(
            can_level=False,
            reason=f"Need average attribute level {gate['min_average']} (current: {average:.1f})",
            cost=required_coins,
        )

    if "min_single" in gate and max(levels) < gate["min_single"]:
        return LevelUpCheck(
            can_level=False,
            reason=f"Need at least one attribute at level {gate['min_single']}",
            cost=required_coins,
        )

    for key, count, label in (("min_two", 2, "two"), ("min_three", 3, "three")):
        if key in gate:
            qualifying = sum(1 for level in levels if level >= gate[key])
            if qualifying < count:
                return LevelUpCheck(
                    can_level=False,
                    reason=f"Need at least {label} attributes at level {gate[key]}",
                    cost=required_coins,
                )

    if "all_min" in gate and min(levels) < gate["all_min"]:
        return LevelUpCheck(
            can_level=False,
            reason=f"All attributes must be at least level {gate['all_min']}",
            cost=required_coins,
        )

    if gate.get("all_max") and min(levels) < ATTRIBUTE_MAX_LEVEL:
        return LevelUpCheck(
            can_level=False,
            reason=f"All attributes must be level {ATTRIBUTE_MAX_LEVEL}",
            cost=required_coins,
        )

    return LevelUpCheck(can_level=True, cost=required_coins)
