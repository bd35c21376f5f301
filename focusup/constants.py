"""
Application constants.
Reward tunables, pomodoro limits and runtime defaults.
"""

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/focusup"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

# Auth
API_KEY_ENV = "FOCUSUP_API_KEY"
API_KEY_HEADER = "X-API-Key"
DEFAULT_API_KEY = "change-me-in-production"

# Database
DEFAULT_DATABASE_URL = "sqlite:///./focusup.db"

# Pomodoro timer (seconds)
DEFAULT_WORK_SECONDS = 25 * 60
DEFAULT_BREAK_SECONDS = 5 * 60
MIN_WORK_SECONDS = 1 * 60
MAX_WORK_SECONDS = 60 * 60
MIN_BREAK_SECONDS = 1 * 60
MAX_BREAK_SECONDS = 30 * 60
TICK_INTERVAL_SECONDS = 1

# Base rewards
HABIT_BASE_XP = 10
TASK_BASE_COINS = {
    "low": 3,
    "medium": 6,
    "high": 10,
}
SPRINT_BASE_COINS = 5

# Multipliers
FOCUS_MULTIPLIER = 2.0          # Completed during a focus phase
NON_FOCUS_MULTIPLIER = 0.5      # Completed outside a focus phase
DUPLICATE_PENALTY = 0.5
RAPID_COMPLETION_PENALTY = 0.5
VARIETY_BONUS = 1.25            # All 4 attributes worked today
STREAK_BONUS_CAP = 1.5
STREAK_BONUS_DIVISOR = 20

# Diminishing returns
TASK_DECAY_RATE = 0.9
TASK_DECAY_FLOOR = 0.2
SPRINT_DECAY_STEP = 0.1
SPRINT_DECAY_FLOOR = 0.25

# Time-of-day multipliers for sprints
TIME_BONUS_MORNING = 1.2        # [6, 12)
TIME_BONUS_AFTERNOON = 1.1      # [14, 18)
TIME_BONUS_EVENING = 1.0        # everything else
TIME_BONUS_LATE_NIGHT = 0.8     # [23, 24) and [0, 5)

# XP curve
ATTRIBUTE_MAX_LEVEL = 50
CHARACTER_MAX_LEVEL = 99
COINS_PER_EFFECTIVE_XP = 100

# Character level gates, keyed by the level being reached
LEVEL_GATES = {
    10: {"coins": 100, "min_average": 5},
    20: {"coins": 500, "min_average": 10, "min_single": 8},
    30: {"coins": 2000, "min_average": 15, "min_two": 12},
    40: {"coins": 5000, "min_average": 20, "min_three": 18},
    50: {"coins": 15000, "min_average": 25, "all_min": 22},
    60: {"coins": 40000, "min_average": 30, "all_min": 25},
    70: {"coins": 80000, "min_average": 35, "all_min": 30},
    80: {"coins": 150000, "min_average": 40, "all_min": 35},
    90: {"coins": 300000, "min_average": 45, "all_min": 40},
    99: {"coins": 1000000, "all_max": True},
}

# Integrity checks
DUPLICATE_WINDOW_HOURS = 24
DUPLICATE_MAX_DISTANCE = 3      # Edit distance must be strictly below this
DUPLICATE_MIN_TITLE_LENGTH = 5  # Titles this short or shorter skip fuzzy matching
RAPID_COMPLETION_COUNT = 5
RAPID_COMPLETION_SECONDS = 60
GENERIC_TITLE_MIN_LENGTH = 3
GENERIC_TITLES = frozenset([
    "a", "test", "123", "task", "work", "stuff",
    "todo", "thing", "asdf", "qwerty",
])
SPAM_WEIGHT_DUPLICATE = 0.3
SPAM_WEIGHT_RAPID = 0.3
SPAM_WEIGHT_GENERIC = 0.2
SPAM_WEIGHT_VOLUME = 0.2
SPAM_VOLUME_THRESHOLD = 20

# Verification
VERIFICATION_MINUTE_MARKS = (8, 15, 20)
VERIFICATION_TIMEOUT_SECONDS = 60

# Completion log kinds
COMPLETION_KIND_TASK = "task"
COMPLETION_KIND_HABIT = "habit"
COMPLETION_KIND_SPRINT = "sprint"
RECENT_COMPLETIONS_LIMIT = 50

# CORS
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8081",
    "http://localhost:19006",
]
