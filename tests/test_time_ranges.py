"""Tests for appointment window helpers."""

from datetime import UTC, datetime, timedelta

import pytest

from app.core.time_ranges import duration_minutes, hours_until, overlaps, window_end


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 15, hour, minute, tzinfo=UTC)


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ((at(9), at(10)), (at(9, 30), at(10, 30)), True),
        ((at(9, 30), at(10, 30)), (at(9), at(10)), True),
        ((at(9), at(12)), (at(10), at(11)), True),
        ((at(9), at(10)), (at(9), at(10)), True),
        ((at(9), at(10)), (at(10), at(11)), False),
        ((at(9), at(10)), (at(11), at(12)), False),
    ],
)
def test_overlaps(a, b, expected) -> None:
    """Partial overlap, containment and identical windows intersect; disjoint ones do not."""
    assert overlaps(*a, *b) is expected


def test_overlaps_is_symmetric() -> None:
    """Swapping the windows never changes the answer."""
    windows = [
        (at(8), at(9)),
        (at(8, 30), at(9, 30)),
        (at(9), at(10)),
        (at(9, 15), at(9, 45)),
        (at(10), at(11)),
    ]
    for a in windows:
        for b in windows:
            assert overlaps(*a, *b) == overlaps(*b, *a)


def test_adjacent_windows_do_not_overlap() -> None:
    """An appointment ending at 10:00 leaves 10:00 free."""
    assert overlaps(at(9), at(10), at(10), at(11)) is False
    assert overlaps(at(10), at(11), at(9), at(10)) is False


def test_window_end_and_duration() -> None:
    """A 50 minute window ends exactly 50 minutes later."""
    end = window_end(at(9), 50)
    assert end - at(9) == timedelta(minutes=50)
    assert duration_minutes(at(9), end) == 50


def test_hours_until() -> None:
    """Negative once the moment has passed."""
    assert hours_until(at(10), at(9)) == 1
    assert hours_until(at(9), at(10)) == -1
    assert hours_until(at(9, 30), at(9)) == 0.5
