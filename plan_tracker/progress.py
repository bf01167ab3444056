"""Streak and completion bookkeeping for a plan's progress record."""

import math
from typing import Dict, Tuple


def apply_completion(progress: Dict, day: int) -> Dict:
    """Return the counter updates for completing ``day``.

    ``completed_days`` always goes up by one. The streak only grows when
    ``day`` is the day the tracker expects next, which then moves forward.
    """
    on_schedule = progress['current_day'] == day
    streak = progress['current_streak'] + 1 if on_schedule else progress['current_streak']
    return {
        'completed_days': progress['completed_days'] + 1,
        'current_day': day + 1 if on_schedule else progress['current_day'],
        'current_streak': streak,
        'longest_streak': max(streak, progress['longest_streak']),
    }


def completion_percentage(completed_days: int, total_days: int) -> int:
    # Not clamped: extra completions can push this past 100.
    if total_days <= 0:
        return 0
    return int(math.floor(completed_days / total_days * 100 + 0.5))


def week_and_weekday(day: int) -> Tuple[int, int]:
    """Day 1 is weekday 1 of week 1."""
    return (day - 1) // 7 + 1, (day - 1) % 7 + 1
