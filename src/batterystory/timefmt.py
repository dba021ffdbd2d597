"""Minute-of-day arithmetic, labels and rounding helpers."""

import math
from decimal import ROUND_HALF_UP, Decimal

MINUTES_PER_DAY = 24 * 60
SAMPLE_STEP_MINUTES = 5


def normalize_minute(minute: int) -> int:
    """Wrap any integer minute into 0..1439."""
    return minute % MINUTES_PER_DAY


def snap_to_step(minute: float, step: int = SAMPLE_STEP_MINUTES) -> int:
    """Round a minute to the nearest multiple of step (halves round up)."""
    if step <= 0:
        return minute
    return int(math.floor(minute / step + 0.5)) * step


def round_half_up(value: float, decimals: int = 2) -> float:
    """Round to a fixed number of decimals, halves away from zero.

    Works on the exact binary value so results match fixed-point
    formatting rather than Python's round-half-even.
    """
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def minutes_to_label(minute: int) -> str:
    """Format minutes since midnight as '5:05 PM'."""
    normalized = normalize_minute(minute)
    hours24, mins = divmod(normalized, 60)
    meridiem = "PM" if hours24 >= 12 else "AM"
    hours12 = 12 if hours24 % 12 == 0 else hours24 % 12
    return f"{hours12}:{mins:02d} {meridiem}"


def format_window(start_min: int, end_min: int) -> str:
    """Format a range like '5:00–7:00 PM' or '11:00 AM–1:00 PM'."""
    start_time, start_meridiem = minutes_to_label(start_min).split(" ")
    end_time, end_meridiem = minutes_to_label(end_min).split(" ")

    if start_meridiem == end_meridiem:
        return f"{start_time}–{end_time} {end_meridiem}"
    return f"{start_time} {start_meridiem}–{end_time} {end_meridiem}"


def format_sample_time(minute: int) -> str:
    """Label a minute after snapping it to the sample grid."""
    return minutes_to_label(snap_to_step(minute))


def parse_minutes(value: str | int) -> int:
    """Parse 'HH:MM' (or a plain minute count) into minutes since midnight."""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if ":" not in text:
        return int(text)
    parts = text.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time: {value!r}")
    hours, mins = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 24 and 0 <= mins < 60) or (hours == 24 and mins):
        raise ValueError(f"Invalid time: {value!r}")
    return hours * 60 + mins
