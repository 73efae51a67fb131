"""Keep layouts durable across the normalized tables and the embedded document.

Layout writes try the normalized tables first. If that raises for any
reason, the same mutation is applied to the JSON document stored on the
event row. The two representations are not synchronized by these writes;
rebuild_document() regenerates the document from the tables on request.
"""

import dataclasses
import logging

from emcee_producer.errors import EmceeError, NotFoundError, PersistenceError
from emcee_producer.models import Layout, LayoutSegment, ScriptSegment, move_segment, place_segment, renumber
from emcee_producer.storage import (
    Database,
    EventStore,
    LayoutTableStore,
    ScriptStore,
    apply_updates,
    find_segment,
    utc_now,
)

logger = logging.getLogger(__name__)


class PersistenceReconciler:
    def __init__(self, db: Database):
        self.events = EventStore(db)
        self.layouts = LayoutTableStore(db)
        self.scripts = ScriptStore(db)

    def _with_fallback(self, action: str, event_id: int, primary, fallback) -> Layout:
        try:
            return primary()
        except Exception as e:
            logger.warning(
                "Layout %s for event %s failed on tables (%s); using layout document",
                action, event_id, e,
            )
        try:
            return fallback()
        except EmceeError:
            raise
        except Exception as e:
            raise PersistenceError(f"Layout {action} failed for event {event_id}: {e}") from e

    # --- Document helpers ---

    def _load_document(self, event_id: int, create: bool = False) -> Layout | None:
        data = self.events.get_document(event_id)
        if data is None:
            if not create:
                return None
            return Layout(event_id=event_id, version=0, source="document")
        return Layout.from_document(event_id, data)

    def _save_document(self, layout: Layout) -> Layout:
        layout.version += 1
        layout.last_updated = utc_now()
        layout.source = "document"
        self.events.put_document(layout.event_id, layout.to_document())
        return layout

    # --- Layout writes ---

    def create_layout(self, event_id: int, segments: list[LayoutSegment], total_duration: int) -> Layout:
        def primary():
            return self.layouts.replace(event_id, _copies(segments), total_duration)

        def fallback():
            existing = self._load_document(event_id, create=True)
            layout = Layout(
                event_id=event_id,
                segments=_copies(segments),
                total_duration=total_duration,
                version=existing.version,
            )
            return self._save_document(layout)

        return self._with_fallback("create", event_id, primary, fallback)

    def add_segment(self, event_id: int, segment: LayoutSegment) -> Layout:
        def primary():
            return self.layouts.insert_segment(event_id, dataclasses.replace(segment))

        def fallback():
            layout = self._load_document(event_id, create=True)
            place_segment(layout.segments, dataclasses.replace(segment))
            layout.total_duration += segment.duration
            return self._save_document(layout)

        return self._with_fallback("add", event_id, primary, fallback)

    def update_segment(self, event_id: int, segment_id: str, updates: dict) -> Layout:
        def primary():
            return self.layouts.update_segment(event_id, segment_id, updates)

        def fallback():
            layout = self._load_document(event_id)
            segment = find_segment(layout, segment_id)
            if segment is None:
                raise NotFoundError(f"Segment {segment_id} not found in event {event_id}")
            apply_updates(segment, updates)
            if "order" in updates:
                move_segment(layout.segments, segment, updates["order"])
            if "duration" in updates:
                layout.total_duration = sum(s.duration for s in layout.segments)
            return self._save_document(layout)

        return self._with_fallback("update", event_id, primary, fallback)

    def delete_segment(self, event_id: int, segment_id: str) -> Layout:
        def primary():
            return self.layouts.delete_segment(event_id, segment_id)

        def fallback():
            layout = self._load_document(event_id)
            segment = find_segment(layout, segment_id)
            if segment is None:
                raise NotFoundError(f"Segment {segment_id} not found in event {event_id}")
            layout.segments.remove(segment)
            renumber(layout.segments)
            layout.total_duration -= segment.duration
            return self._save_document(layout)

        return self._with_fallback("delete", event_id, primary, fallback)

    def store_schedule(self, layout: Layout, scheduled: list[LayoutSegment]) -> Layout:
        """Persist start/end times into whichever representation the layout came from."""
        if layout.source == "normalized":
            self.layouts.set_times(scheduled)
            return self.layouts.read(layout.event_id)
        document = dataclasses.replace(layout, segments=_copies(scheduled))
        return self._save_document(document)

    def rebuild_document(self, event_id: int) -> Layout:
        """Overwrite the layout document with the normalized layout."""
        layout = self.layouts.read(event_id)
        if layout is None:
            raise NotFoundError(f"No layout tables for event {event_id}")
        existing = self._load_document(event_id, create=True)
        document = dataclasses.replace(layout, version=existing.version)
        return self._save_document(document)

    # --- Reads ---

    def read_normalized_layout(self, event_id: int) -> Layout | None:
        return self.layouts.read(event_id)

    def read_document_layout(self, event_id: int) -> Layout | None:
        return self._load_document(event_id)

    def read_layout(self, event_id: int) -> Layout | None:
        """Tables when they hold segments, else the document; an empty layout only if nothing better exists."""
        layout = self.layouts.read(event_id)
        if layout is not None and layout.segments:
            return layout
        document = self._load_document(event_id)
        if document is not None and document.segments:
            return document
        return layout or document

    # --- Script writes (tables only) ---

    def create_script_batch(self, event_id: int, drafts: list[ScriptSegment]) -> list[ScriptSegment]:
        return self.scripts.replace_all(event_id, drafts)

    def replace_with_chunks(self, original: ScriptSegment, chunks: list[ScriptSegment]) -> list[ScriptSegment]:
        return self.scripts.replace_with_chunks(original, chunks)

    def update_script_segment(self, segment_id: int, **fields) -> ScriptSegment:
        return self.scripts.update(segment_id, **fields)


def _copies(segments: list[LayoutSegment]) -> list[LayoutSegment]:
    return [
        dataclasses.replace(s, custom_properties=dict(s.custom_properties))
        for s in segments
    ]
