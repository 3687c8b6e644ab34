"""Time range helpers for appointment windows.

Windows are half-open intervals ``[start, end)``: an appointment ending at 10:00 and
another starting at 10:00 do not overlap.
"""

from datetime import datetime, timedelta


def overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """
    Check whether two half-open windows intersect.

    Covers partial overlap on either side and full containment. Adjacent windows
    (``a_end == b_start``) do not overlap.

    Args:
        a_start: Start of the first window
        a_end: End of the first window
        b_start: Start of the second window
        b_end: End of the second window

    Returns:
        True if the windows share any instant
    """
    return a_start < b_end and b_start < a_end


def duration_minutes(start: datetime, end: datetime) -> int:
    """Length of ``[start, end)`` rounded to the nearest whole minute."""
    return round((end - start).total_seconds() / 60)


def window_end(start: datetime, minutes: int) -> datetime:
    """End of a window starting at ``start`` and lasting ``minutes``."""
    return start + timedelta(minutes=minutes)


def hours_until(moment: datetime, now: datetime) -> float:
    """Hours from ``now`` until ``moment`` (negative once it has passed)."""
    return (moment - now).total_seconds() / 3600
