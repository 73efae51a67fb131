"""Split an event's running time into an ordered program of segments."""

from emcee_producer.constants import (
    CATEGORY_PRIORITY,
    DEFAULT_TOTAL_MINUTES,
    DEFAULT_TOTAL_MINUTES_FALLBACK,
    FALLBACK_CATEGORY,
    LAYOUT_TEMPLATES,
)
from emcee_producer.models import LayoutSegment, round_half_up


def resolve_category(event_type: str | None) -> str:
    """Map a free-form event type onto a template key.

    Case-insensitive substring match, first hit wins in CATEGORY_PRIORITY
    order; anything else is "general".
    """
    lowered = (event_type or "").lower()
    for category in CATEGORY_PRIORITY:
        if category in lowered:
            return category
    return FALLBACK_CATEGORY


def default_total_minutes(event_type: str | None) -> int:
    return DEFAULT_TOTAL_MINUTES.get(resolve_category(event_type), DEFAULT_TOTAL_MINUTES_FALLBACK)


def template_percent_total(event_type: str | None) -> float:
    """Sum of template percentages. Not guaranteed to be 1.0."""
    entries = LAYOUT_TEMPLATES[resolve_category(event_type)]
    return round(sum(entry[3] for entry in entries), 4)


def allocate(event_type: str | None, total_minutes: int) -> list[LayoutSegment]:
    """Build the layout segments for an event.

    Each duration is max(floor, round(total * percent)). Floors are applied
    without renormalizing, so the durations may not add up to total_minutes.
    """
    entries = LAYOUT_TEMPLATES[resolve_category(event_type)]
    segments = []
    for position, (name, seg_type, description, percent, floor) in enumerate(entries, start=1):
        duration = max(floor, round_half_up(total_minutes * percent))
        segments.append(LayoutSegment(
            name=name,
            type=seg_type,
            description=description,
            duration=duration,
            order=position,
        ))
    return segments
