"""Common utilities for the corridor engine."""
import math
import re

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})")


def round_half_up(value):
    """Round .5 away from zero for positive scores (round() would go to even)."""
    return int(math.floor(value + 0.5))


def clamp_int(value, lo, hi):
    return int(max(lo, min(hi, round_half_up(value))))


def parse_hhmm(value):
    """Parse "HH:MM" (seconds ignored) into minutes after midnight."""
    match = _HHMM.match(str(value))
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def minutes_between(earlier, later):
    """Absolute gap in minutes between two "HH:MM" times on the same day."""
    return abs(parse_hhmm(later) - parse_hhmm(earlier))
