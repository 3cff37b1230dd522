"""
Clock Model

Pure helpers that turn a wall-clock start timestamp and an elapsed
counter into what a display shows. No I/O and no state; "now" is
always passed in so every client computes the same value from the
same snapshot.

All timestamps are epoch milliseconds.
"""

import time
from typing import Optional


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def elapsed_while_active(now: int, start_timestamp: int) -> int:
    """
    Whole seconds elapsed since start_timestamp.

    Clamped at zero: a start timestamp in the future (sender clock ahead
    of ours) shows a full countdown instead of a negative one.
    """
    return max(0, (now - start_timestamp) // 1000)


def backdated_start(now: int, seconds_elapsed: int) -> int:
    """Start timestamp that yields seconds_elapsed when measured at now."""
    return now - seconds_elapsed * 1000


def remaining_seconds(duration_minutes: int, seconds_elapsed: int) -> int:
    return max(0, duration_minutes * 60 - seconds_elapsed)


def progress_fraction(duration_minutes: int, seconds_elapsed: int) -> float:
    """Fraction of the slot still remaining, in [0, 1]. Zero-length slots give 0."""
    total = duration_minutes * 60
    if total <= 0:
        return 0.0
    fraction = remaining_seconds(duration_minutes, seconds_elapsed) / total
    return min(1.0, max(0.0, fraction))


def time_to_minutes(value: Optional[str]) -> int:
    """
    Minutes since midnight for a local "HH:MM" string.

    Empty values give 0.
    """
    if not value:
        return 0
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def format_time_of_day(minutes: int) -> str:
    """
    12-hour clock label for minutes since midnight.

    Wraps past midnight. Examples:
        540 -> "9:00 AM"
        785 -> "1:05 PM"
        0   -> "12:00 AM"
    """
    hours = (minutes // 60) % 24
    mins = minutes % 60
    suffix = "PM" if hours >= 12 else "AM"
    hour12 = hours % 12 or 12
    return f"{hour12}:{mins:02d} {suffix}"


def format_countdown(seconds: int) -> str:
    """MM:SS label for a countdown (sign dropped)."""
    seconds = abs(int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
