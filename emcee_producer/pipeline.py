"""Public workflows: layout generation, script expansion, chunking, edits, rendering.

Every workflow returns a Result. Validation and not-found errors become
failed results carrying their message; storage failures and anything else
are logged and reported as a generic failure.
"""

import asyncio
import dataclasses
import functools
import logging
import os
import re
import threading
import weakref
from datetime import datetime
from typing import Callable

from emcee_producer.allocator import allocate, default_total_minutes
from emcee_producer.chunker import chunk_segment
from emcee_producer.constants import (
    CHUNK_TARGET_WORDS,
    EVENT_STATUS_AUDIO_READY,
    EVENT_STATUS_LAYOUT_READY,
    EVENT_STATUS_SCRIPTING,
    NARRATOR_VOICE,
    SCRIPT_STATUSES,
)
from emcee_producer.errors import EmceeError, NotFoundError, PersistenceError, ValidationError
from emcee_producer.models import Event, LayoutSegment, Result, ScriptSegment
from emcee_producer.reconciler import PersistenceReconciler
from emcee_producer.storage import UPDATABLE_FIELDS, Database
from emcee_producer.templates import expand
from emcee_producer.timeline import parse_start, schedule
from emcee_producer.tts import render_segments

logger = logging.getLogger(__name__)

_EVENT_ID_RE = re.compile(r"[0-9]+")

# Per-event advisory locks; process-local only. An entry lives only while
# some caller holds a reference to its lock.
_event_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_event_locks_guard = threading.Lock()


def event_lock(event_id: int) -> threading.Lock:
    with _event_locks_guard:
        return _event_locks.setdefault(event_id, threading.Lock())


def parse_event_id(value) -> int:
    """Accept a positive int or a string of digits."""
    if isinstance(value, int) and not isinstance(value, bool):
        event_id = value
    elif isinstance(value, str) and _EVENT_ID_RE.fullmatch(value.strip()):
        event_id = int(value.strip())
    else:
        raise ValidationError(f"Invalid event ID format: {value!r}")
    if event_id < 1:
        raise ValidationError(f"Invalid event ID format: {value!r}")
    return event_id


def _check_target_words(target_words) -> int:
    if isinstance(target_words, bool) or not isinstance(target_words, int) or target_words < 1:
        raise ValidationError(f"target_words must be a positive integer, got {target_words!r}")
    return target_words


def _check_duration(duration) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        raise ValidationError(f"Duration must be a non-negative integer, got {duration!r}")
    return duration


def _check_segment_text(fields: dict) -> None:
    """Reject layout segment values the tables would refuse."""
    for key in ("name", "type"):
        if key in fields:
            value = fields[key]
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Segment {key} must be a non-empty string, got {value!r}")
    if "description" in fields and not isinstance(fields["description"], str):
        raise ValidationError(f"Segment description must be a string, got {fields['description']!r}")
    for key in ("start_time", "end_time"):
        if fields.get(key) is not None and not isinstance(fields[key], str):
            raise ValidationError(f"Segment {key} must be a string, got {fields[key]!r}")
    if "custom_properties" in fields and not isinstance(fields["custom_properties"], dict):
        raise ValidationError(f"Custom properties must be an object, got {fields['custom_properties']!r}")


def workflow(func):
    """Turn raised errors into failed Results at the public boundary."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Result:
        try:
            return func(*args, **kwargs)
        except PersistenceError:
            # Both storage shapes failed; details stay in the server log.
            logger.exception("%s failed", func.__name__)
            return Result.fail(f"Failed to {func.__name__.replace('_', ' ')}")
        except EmceeError as e:
            logger.info("%s: %s", func.__name__, e)
            return Result.fail(str(e))
        except Exception:
            logger.exception("%s failed", func.__name__)
            return Result.fail(f"Failed to {func.__name__.replace('_', ' ')}")
    return wrapper


class PipelineOrchestrator:
    def __init__(self, db: Database, now: Callable[[], datetime] | None = None):
        self.db = db
        self.store = PersistenceReconciler(db)
        self.now = now or datetime.now

    def _require_event(self, event_id: int) -> Event:
        event = self.store.events.get(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    # --- Events ---

    @workflow
    def create_event(
        self,
        title: str,
        event_type: str = "general",
        duration_minutes: int | None = None,
        starts_at: str | None = None,
    ) -> Result:
        if not title or not title.strip():
            raise ValidationError("Event title is required")
        if duration_minutes is not None:
            _check_duration(duration_minutes)
        if starts_at is not None:
            try:
                starts_at = parse_start(starts_at).isoformat()
            except ValueError as e:
                raise ValidationError(f"Invalid start time {starts_at!r}: {e}") from e
        event = self.store.events.create(title.strip(), event_type or "general", duration_minutes, starts_at)
        return Result.ok({"event": dataclasses.asdict(event)}, f"Created event {event.event_id}")

    # --- Layout ---

    @workflow
    def generate_layout(self, event_id) -> Result:
        event_id = parse_event_id(event_id)
        with event_lock(event_id):
            event = self._require_event(event_id)
            total = event.duration_minutes or default_total_minutes(event.event_type)
            segments = allocate(event.event_type, total)
            layout = self.store.create_layout(event_id, segments, total)
            self.store.events.set_status(event_id, EVENT_STATUS_LAYOUT_READY)
        return Result.ok(
            {"layout": layout.to_dict()},
            f"Generated {len(layout.segments)} segments ({layout.total_duration} minutes)",
        )

    @workflow
    def get_layout(self, event_id) -> Result:
        event_id = parse_event_id(event_id)
        self._require_event(event_id)
        layout = self.store.read_layout(event_id)
        if layout is None:
            raise NotFoundError(f"No layout found for event {event_id}")
        return Result.ok({"layout": layout.to_dict()})

    @workflow
    def add_segment(
        self,
        event_id,
        name: str,
        segment_type: str,
        duration: int,
        description: str = "",
        order: int | None = None,
        custom_properties: dict | None = None,
    ) -> Result:
        event_id = parse_event_id(event_id)
        if not name or not segment_type:
            raise ValidationError("Segment name and type are required")
        fields = {"name": name, "type": segment_type, "description": description}
        if custom_properties is not None:
            fields["custom_properties"] = custom_properties
        _check_segment_text(fields)
        _check_duration(duration)
        if order is not None and (isinstance(order, bool) or not isinstance(order, int) or order < 1):
            raise ValidationError(f"Order must be a positive integer, got {order!r}")
        self._require_event(event_id)
        segment = LayoutSegment(
            name=name,
            type=segment_type,
            description=description,
            duration=duration,
            order=order or 0,
            custom_properties=dict(custom_properties or {}),
        )
        layout = self.store.add_segment(event_id, segment)
        return Result.ok({"layout": layout.to_dict(), "segmentId": segment.id}, f"Added segment {name}")

    @workflow
    def update_segment(self, event_id, segment_id: str, updates: dict) -> Result:
        event_id = parse_event_id(event_id)
        if not updates:
            raise ValidationError("No fields to update")
        unknown = set(updates) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "duration" in updates:
            _check_duration(updates["duration"])
        if "order" in updates:
            order = updates["order"]
            if isinstance(order, bool) or not isinstance(order, int) or order < 1:
                raise ValidationError(f"Order must be a positive integer, got {order!r}")
        _check_segment_text(updates)
        self._require_event(event_id)
        layout = self.store.update_segment(event_id, segment_id, updates)
        return Result.ok({"layout": layout.to_dict()}, f"Updated segment {segment_id}")

    @workflow
    def delete_segment(self, event_id, segment_id: str) -> Result:
        event_id = parse_event_id(event_id)
        self._require_event(event_id)
        layout = self.store.delete_segment(event_id, segment_id)
        return Result.ok({"layout": layout.to_dict()}, f"Deleted segment {segment_id}")

    @workflow
    def schedule_layout(self, event_id, start: datetime | str | None = None, persist: bool = False) -> Result:
        """Compute start/end clock times; the event's start time is used when none is given."""
        event_id = parse_event_id(event_id)
        event = self._require_event(event_id)
        start = start or event.starts_at
        if start is None:
            raise ValidationError(f"Event {event_id} has no start time; pass one explicitly")
        try:
            start = parse_start(start)
        except ValueError as e:
            raise ValidationError(f"Invalid start time {start!r}: {e}") from e
        layout = self.store.read_layout(event_id)
        if layout is None or not layout.segments:
            raise NotFoundError(f"No layout found for event {event_id}")
        scheduled = schedule(layout.segments, start)
        if persist:
            layout = self.store.store_schedule(layout, scheduled)
        else:
            layout = dataclasses.replace(layout, segments=scheduled)
        return Result.ok({"layout": layout.to_dict()})

    @workflow
    def rebuild_layout_document(self, event_id) -> Result:
        event_id = parse_event_id(event_id)
        self._require_event(event_id)
        document = self.store.rebuild_document(event_id)
        return Result.ok({"layout": document.to_dict()}, f"Rebuilt layout document (version {document.version})")

    # --- Script ---

    @workflow
    def generate_script_from_layout(self, event_id, chunk: bool = True, target_words: int = CHUNK_TARGET_WORDS) -> Result:
        event_id = parse_event_id(event_id)
        _check_target_words(target_words)
        with event_lock(event_id):
            event = self._require_event(event_id)
            layout = self.store.read_layout(event_id)
            if layout is None or not layout.segments:
                raise NotFoundError(f"No layout found for event {event_id}; generate a layout first")

            now = self.now()
            drafts = []
            for layout_segment in layout.segments:
                drafts.extend(expand(layout_segment, event.title, event.event_type, event_id, now))
            saved = self.store.create_script_batch(event_id, drafts)
            self.store.events.set_status(event_id, EVENT_STATUS_SCRIPTING)

            data = {}
            message = f"Generated {len(saved)} script segments"
            if chunk:
                summary = self._chunk_many(saved, target_words)
                data["chunking"] = summary
                message = f"{message}; {summary['message']}"
            data["segments"] = [s.to_dict() for s in self.store.scripts.list_for_event(event_id)]
        return Result.ok(data, message)

    @workflow
    def get_script(self, event_id) -> Result:
        event_id = parse_event_id(event_id)
        self._require_event(event_id)
        segments = self.store.scripts.list_for_event(event_id)
        return Result.ok({"segments": [s.to_dict() for s in segments]})

    @workflow
    def update_script_segment(self, segment_id: int, content: str | None = None, status: str | None = None) -> Result:
        fields = {}
        if content is not None:
            fields["content"] = content
        if status is not None:
            if status not in SCRIPT_STATUSES:
                raise ValidationError(f"Unknown script status {status!r}")
            fields["status"] = status
        if not fields:
            raise ValidationError("No fields to update")
        segment = self.store.update_script_segment(segment_id, **fields)
        return Result.ok({"segment": segment.to_dict()})

    def _chunk_one(self, segment: ScriptSegment, target_words: int) -> list[ScriptSegment]:
        chunks = chunk_segment(segment, target_words)
        if len(chunks) == 1 and chunks[0] is segment:
            return [segment]
        return self.store.replace_with_chunks(segment, chunks)

    async def _chunk_concurrently(self, segments: list[ScriptSegment], target_words: int) -> list:
        tasks = [asyncio.to_thread(self._chunk_one, s, target_words) for s in segments]
        return await asyncio.gather(*tasks, return_exceptions=True)

    def _chunk_many(self, segments: list[ScriptSegment], target_words: int) -> dict:
        """Chunk segments concurrently; one failure never stops the others."""
        outcomes = asyncio.run(self._chunk_concurrently(segments, target_words))
        results = []
        for segment, outcome in zip(segments, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Chunking segment %s failed: %s", segment.id, outcome)
                results.append({"segmentId": segment.id, "success": False, "error": str(outcome)})
            else:
                results.append({"segmentId": segment.id, "success": True, "chunks": len(outcome)})
        success_count = sum(1 for r in results if r["success"])
        total_chunks = sum(r.get("chunks", 0) for r in results)
        return {
            "success": success_count > 0,
            "message": f"Processed {success_count}/{len(segments)} segments into {total_chunks} chunks",
            "results": results,
        }

    @workflow
    def chunk_all_segments(self, event_id, target_words: int = CHUNK_TARGET_WORDS) -> Result:
        event_id = parse_event_id(event_id)
        _check_target_words(target_words)
        with event_lock(event_id):
            self._require_event(event_id)
            segments = self.store.scripts.list_for_event(event_id)
            if not segments:
                raise NotFoundError(f"No script segments found for event {event_id}")
            summary = self._chunk_many(segments, target_words)
        return Result(
            success=summary["success"],
            data={"results": summary["results"]},
            message=summary["message"],
            error=None if summary["success"] else "No segments could be chunked",
        )

    @workflow
    def chunk_segment(self, segment_id: int, target_words: int = CHUNK_TARGET_WORDS) -> Result:
        _check_target_words(target_words)
        segment = self.store.scripts.get(segment_id)
        if segment is None:
            raise NotFoundError(f"Script segment {segment_id} not found")
        with event_lock(segment.event_id):
            chunks = self._chunk_one(segment, target_words)
        if len(chunks) == 1:
            return Result.ok({"chunks": [segment.to_dict()]}, "Segment already optimal size")
        return Result.ok(
            {"chunks": [c.to_dict() for c in chunks]},
            f"Split segment into {len(chunks)} chunks",
        )

    # --- Audio ---

    @workflow
    def render_script_audio(self, event_id, output_dir: str, voice: str = NARRATOR_VOICE) -> Result:
        """Render every script segment to MP3 and record where each file went."""
        event_id = parse_event_id(event_id)
        self._require_event(event_id)
        segments = self.store.scripts.list_for_event(event_id)
        if not segments:
            raise NotFoundError(f"No script segments found for event {event_id}")

        os.makedirs(output_dir, exist_ok=True)

        def mark_generating(segment):
            self.store.update_script_segment(segment.id, status="generating")

        results = []
        for segment, path, error in render_segments(segments, output_dir, voice, on_start=mark_generating):
            if error is not None:
                logger.warning("Rendering segment %s failed: %s", segment.id, error)
                self.store.update_script_segment(segment.id, status="draft")
                results.append({"segmentId": segment.id, "success": False, "error": str(error)})
                continue
            self.store.update_script_segment(segment.id, status="generated", audio_path=path)
            results.append({"segmentId": segment.id, "success": True, "audioPath": path})

        success_count = sum(1 for r in results if r["success"])
        if success_count == len(segments):
            self.store.events.set_status(event_id, EVENT_STATUS_AUDIO_READY)
        return Result(
            success=success_count > 0,
            data={"results": results},
            message=f"Generated audio for {success_count}/{len(segments)} segments",
            error=None if success_count else "No segments could be rendered",
        )
