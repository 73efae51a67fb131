"""Tests for timeline scheduling (Layer 1d)."""

from datetime import datetime

from emcee_producer.models import LayoutSegment
from emcee_producer.timeline import format_clock, schedule, time_after_minutes


def test_format_clock():
    """Twelve-hour clock with zero padding."""
    assert format_clock(datetime(2025, 3, 1, 9, 5)) == "09:05 AM"
    assert format_clock(datetime(2025, 3, 1, 13, 30)) == "01:30 PM"


def test_schedule_runs_clock_in_order():
    """Each segment starts where the previous one ended."""
    segments = [
        LayoutSegment(name="B", type="keynote", duration=30, order=2),
        LayoutSegment(name="A", type="introduction", duration=5, order=1),
        LayoutSegment(name="C", type="break", duration=15, order=3),
    ]
    scheduled = schedule(segments, datetime(2025, 3, 1, 9, 0))
    assert [s.name for s in scheduled] == ["A", "B", "C"]
    assert [(s.start_time, s.end_time) for s in scheduled] == [
        ("09:00 AM", "09:05 AM"),
        ("09:05 AM", "09:35 AM"),
        ("09:35 AM", "09:50 AM"),
    ]


def test_schedule_accepts_iso_string_and_leaves_input_untouched():
    segments = [LayoutSegment(name="A", type="introduction", duration=90, order=1)]
    scheduled = schedule(segments, "2025-03-01T11:00")
    assert scheduled[0].end_time == "12:30 PM"
    assert segments[0].start_time is None


def test_schedule_is_stable_for_equal_orders():
    """Equal orders keep their input order."""
    segments = [
        LayoutSegment(name="first", type="x", duration=10, order=1),
        LayoutSegment(name="second", type="x", duration=10, order=1),
    ]
    assert [s.name for s in schedule(segments, "2025-03-01T09:00")] == ["first", "second"]


def test_time_after_minutes():
    assert time_after_minutes(45, datetime(2025, 3, 1, 10, 0)) == "10:45 AM"
