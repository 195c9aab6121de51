"""Constants for FocusFlow.

This module centralizes all magic numbers and default values used throughout the application.
"""


# Task defaults
DEFAULT_TASK_TITLE = "Untitled"
MAX_TITLE_LENGTH = 200
AI_TITLE_MAX_LENGTH = 38

# Flexible task constraints (minutes)
MIN_FLEXIBLE_DURATION_MIN = 15
MAX_FLEXIBLE_DURATION_MIN = 240
DEFAULT_EARLIEST_START = "06:00"
DEFAULT_LATEST_END = "22:00"
MAX_PREFERRED_TIME_SLOTS = 3

# Flexible slot search
SUGGESTION_STEP_MINUTES = 15
TIME_SLOT_RANGES = {
    "morning": ("06:00", "12:00"),
    "afternoon": ("12:00", "18:00"),
    "evening": ("18:00", "23:00"),
}

# Client timer intervals (seconds)
TIMER_TICK_SECONDS = 1.0
DURATION_BATCH_SECONDS = 30.0
NOW_UPDATE_SECONDS = 10.0
RUNNING_TIMER_POLL_SECONDS = 5.0

# Daily reset runs at this local time
DAILY_RESET_HOUR = 0
DAILY_RESET_MINUTE = 1
