"""Assign wall-clock start and end times to layout segments."""

import dataclasses
from datetime import datetime, timedelta

from emcee_producer.constants import CLOCK_FORMAT
from emcee_producer.models import LayoutSegment


def format_clock(moment: datetime) -> str:
    return moment.strftime(CLOCK_FORMAT)


def parse_start(event_start: datetime | str) -> datetime:
    if isinstance(event_start, datetime):
        return event_start
    return datetime.fromisoformat(event_start)


def time_after_minutes(minutes: int, now: datetime | None = None) -> str:
    """Clock time `minutes` from now, e.g. for "be back by 10:45 AM"."""
    if now is None:
        now = datetime.now()
    return format_clock(now + timedelta(minutes=minutes))


def schedule(segments: list[LayoutSegment], event_start: datetime | str) -> list[LayoutSegment]:
    """Return copies of segments, in order, with start_time/end_time filled in.

    Stable sort on order; each segment starts where the previous one ended.
    """
    clock = parse_start(event_start)
    scheduled = []
    for segment in sorted(segments, key=lambda s: s.order):
        end = clock + timedelta(minutes=segment.duration)
        scheduled.append(dataclasses.replace(
            segment,
            start_time=format_clock(clock),
            end_time=format_clock(end),
            custom_properties=dict(segment.custom_properties),
        ))
        clock = end
    return scheduled
