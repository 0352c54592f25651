"""Tests for interval arithmetic."""

from datetime import date, datetime, time

import pytest

from app.services.time_grid import (
    Interval,
    WorkingWindow,
    candidate_starts,
    minute_marks,
    parse_hhmm,
)

DAY = date(2024, 6, 1)


def dt(hour, minute=0):
    return datetime.combine(DAY, time(hour, minute))


def test_touching_intervals_do_not_overlap():
    assert not Interval(dt(9), dt(9, 30)).overlaps(Interval(dt(9, 30), dt(10)))
    assert Interval(dt(9), dt(9, 31)).overlaps(Interval(dt(9, 30), dt(10)))


def test_containing_interval_overlaps():
    assert Interval(dt(9), dt(12)).overlaps(Interval(dt(10), dt(10, 15)))


def test_empty_interval_rejected():
    with pytest.raises(ValueError):
        Interval(dt(10), dt(10))


def test_working_window_anchors_on_day():
    window = WorkingWindow(parse_hhmm("08:00"), parse_hhmm("20:00"), 30)
    day_window = window.on(DAY)
    assert day_window == Interval(dt(8), dt(20))
    assert WorkingWindow(time(10), time(9)).on(DAY) is None


def test_candidate_starts_follow_granularity():
    starts = list(candidate_starts(Interval(dt(9), dt(10)), 15))
    assert starts == [dt(9), dt(9, 15), dt(9, 30), dt(9, 45)]


def test_minute_marks_cover_interval():
    marks = list(minute_marks(Interval(dt(9), dt(9, 3))))
    assert marks == [dt(9), dt(9, 1), dt(9, 2)]
