# FreeHand: Scheduler Module
#
# Work-hours schedule that pauses automation outside configured hours.

from .wake_scheduler import (
    WakeScheduler,
    is_within_work_hours,
    next_transition,
    parse_hhmm,
    weekday_index,
)

__all__ = [
    "WakeScheduler",
    "is_within_work_hours",
    "next_transition",
    "parse_hhmm",
    "weekday_index",
]
