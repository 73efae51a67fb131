"""Data models for event layouts and emcee scripts."""

import math
import uuid
from dataclasses import asdict, dataclass, field

from emcee_producer.constants import CHUNK_ORDER_STRIDE, EVENT_STATUS_DRAFT, SUB_ORDER_STRIDE


def new_segment_id() -> str:
    return uuid.uuid4().hex


def round_half_up(value: float) -> int:
    """Round .5 away from zero, the way the template arithmetic expects.

    Python's round() uses banker's rounding (round(4.5) == 4), which would
    turn a 5-minute closing segment into 4.
    """
    if value < 0:
        return -round_half_up(-value)
    return int(math.floor(value + 0.5))


@dataclass
class Event:
    event_id: int
    title: str
    event_type: str
    status: str = EVENT_STATUS_DRAFT
    duration_minutes: int | None = None
    starts_at: str | None = None       # ISO datetime
    updated_at: str = ""


@dataclass
class LayoutSegment:
    name: str
    type: str
    description: str = ""
    duration: int = 0                  # minutes
    order: int = 0                     # 1..N within a layout
    id: str = field(default_factory=new_segment_id)
    start_time: str | None = None      # "09:05 AM"
    end_time: str | None = None
    custom_properties: dict = field(default_factory=dict)

    def to_document(self) -> dict:
        """camelCase form used by the embedded layout document."""
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "duration": self.duration,
            "order": self.order,
        }
        if self.start_time is not None:
            data["startTime"] = self.start_time
        if self.end_time is not None:
            data["endTime"] = self.end_time
        if self.custom_properties:
            data["customProperties"] = dict(self.custom_properties)
        return data

    @classmethod
    def from_document(cls, data: dict) -> "LayoutSegment":
        return cls(
            id=data.get("id") or new_segment_id(),
            name=data.get("name", ""),
            type=data.get("type", ""),
            description=data.get("description", ""),
            duration=int(data.get("duration", 0)),
            order=int(data.get("order", 0)),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            custom_properties=dict(data.get("customProperties") or {}),
        )


@dataclass
class Layout:
    event_id: int
    segments: list[LayoutSegment] = field(default_factory=list)
    total_duration: int = 0
    version: int = 1
    last_updated: str = ""
    source: str = "normalized"         # "normalized" or "document"

    def to_document(self) -> dict:
        return {
            "segments": [s.to_document() for s in self.segments],
            "totalDuration": self.total_duration,
            "lastUpdated": self.last_updated,
            "version": self.version,
        }

    @classmethod
    def from_document(cls, event_id: int, data: dict) -> "Layout":
        segments = [LayoutSegment.from_document(s) for s in data.get("segments", [])]
        segments.sort(key=lambda s: s.order)
        return cls(
            event_id=event_id,
            segments=segments,
            total_duration=int(data.get("totalDuration", 0)),
            version=int(data.get("version") or 0),
            last_updated=data.get("lastUpdated", ""),
            source="document",
        )

    def to_dict(self) -> dict:
        data = self.to_document()
        data["eventId"] = self.event_id
        data["source"] = self.source
        return data


def renumber(segments: list[LayoutSegment]) -> None:
    """Rewrite order as 1..N following list position, in-place."""
    for position, segment in enumerate(segments, start=1):
        segment.order = position


def place_segment(segments: list[LayoutSegment], segment: LayoutSegment) -> None:
    """Insert at segment.order (append when unset or past the end), then renumber.

    `segments` must already be sorted by order.
    """
    if 1 <= segment.order <= len(segments):
        segments.insert(segment.order - 1, segment)
    else:
        segments.append(segment)
    renumber(segments)


def move_segment(segments: list[LayoutSegment], segment: LayoutSegment, new_order: int) -> None:
    """Move an existing segment to new_order (clamped to 1..N), then renumber."""
    segments.remove(segment)
    index = min(max(new_order, 1), len(segments) + 1) - 1
    segments.insert(index, segment)
    renumber(segments)


@dataclass
class ScriptSegment:
    event_id: int
    layout_segment_id: str
    segment_type: str
    content: str
    timing: int                        # seconds
    layout_order: int
    sub_order: int = 0                 # 0 primary, 1..3 satellites
    chunk_index: int | None = None     # None until split into chunks
    status: str = "draft"
    id: int | None = None
    audio_path: str | None = None

    @property
    def base_order(self) -> int:
        return self.layout_order * SUB_ORDER_STRIDE + self.sub_order

    @property
    def order(self) -> int:
        """Flat integer order handed to downstream consumers."""
        if self.chunk_index is None:
            return self.base_order
        return self.base_order * CHUNK_ORDER_STRIDE + self.chunk_index

    @property
    def sort_key(self) -> tuple[int, int, int]:
        chunk = -1 if self.chunk_index is None else self.chunk_index
        return (self.layout_order, self.sub_order, chunk)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["order"] = self.order
        return data


@dataclass
class Result:
    """Uniform workflow outcome: {success, data?, error?, message?}."""
    success: bool
    data: dict | None = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, data: dict | None = None, message: str | None = None) -> "Result":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str) -> "Result":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        out = {"success": self.success}
        for key in ("data", "error", "message"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out
