"""SQLite access for events, layouts (table and document form) and script segments.

Every public method opens its own connection and runs as one transaction,
so stores can be used from worker threads without sharing a connection.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

from emcee_producer.constants import DB_PATH, LAYOUT_GENERATED_BY, SQLITE_TIMEOUT_SECONDS
from emcee_producer.errors import NotFoundError
from emcee_producer.models import (
    Event,
    Layout,
    LayoutSegment,
    ScriptSegment,
    move_segment,
    place_segment,
    renumber,
)

logger = logging.getLogger(__name__)

_NO_CHUNK = -1  # stored chunk_index for a segment that has not been split

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    event_type TEXT NOT NULL DEFAULT 'general',
    status TEXT NOT NULL DEFAULT 'draft',
    duration_minutes INTEGER,
    starts_at TEXT,
    event_layout TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS event_layout (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL UNIQUE REFERENCES events(event_id) ON DELETE CASCADE,
    total_duration INTEGER NOT NULL DEFAULT 0,
    layout_version INTEGER NOT NULL DEFAULT 1,
    last_generated_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS layout_segments (
    id TEXT PRIMARY KEY,
    layout_id INTEGER NOT NULL REFERENCES event_layout(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    duration INTEGER NOT NULL,
    "order" INTEGER NOT NULL,
    start_time TEXT,
    end_time TEXT,
    custom_properties TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_layout_segments_layout ON layout_segments(layout_id, "order");
CREATE TABLE IF NOT EXISTS script_segments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL REFERENCES events(event_id) ON DELETE CASCADE,
    layout_segment_id TEXT NOT NULL,
    segment_type TEXT NOT NULL,
    content TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'draft',
    timing INTEGER NOT NULL,
    layout_order INTEGER NOT NULL,
    sub_order INTEGER NOT NULL DEFAULT 0,
    chunk_index INTEGER NOT NULL DEFAULT -1,
    audio_path TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (event_id, layout_segment_id, sub_order, chunk_index)
);
"""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Connection factory and schema owner for one SQLite file."""

    def __init__(self, path: str = DB_PATH):
        self.path = path

    @contextmanager
    def connect(self):
        """One connection, one write-locked transaction; reads inside it are consistent."""
        conn = sqlite3.connect(self.path, timeout=SQLITE_TIMEOUT_SECONDS, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def init_schema(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=SQLITE_TIMEOUT_SECONDS)
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()


# --- Events and the embedded layout document ---

class EventStore:
    def __init__(self, db: Database):
        self.db = db

    def create(
        self,
        title: str,
        event_type: str = "general",
        duration_minutes: int | None = None,
        starts_at: str | None = None,
    ) -> Event:
        now = utc_now()
        with self.db.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO events (title, event_type, duration_minutes, starts_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (title, event_type, duration_minutes, starts_at, now, now),
            )
            event_id = cursor.lastrowid
        return Event(
            event_id=event_id,
            title=title,
            event_type=event_type,
            duration_minutes=duration_minutes,
            starts_at=starts_at,
            updated_at=now,
        )

    def get(self, event_id: int) -> Event | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT event_id, title, event_type, status, duration_minutes, starts_at, updated_at "
                "FROM events WHERE event_id = ?",
                (event_id,),
            ).fetchone()
        if row is None:
            return None
        return Event(**dict(row))

    def set_status(self, event_id: int, status: str) -> None:
        with self.db.connect() as conn:
            conn.execute(
                "UPDATE events SET status = ?, updated_at = ? WHERE event_id = ?",
                (status, utc_now(), event_id),
            )

    def get_document(self, event_id: int) -> dict | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT event_layout FROM events WHERE event_id = ?", (event_id,)
            ).fetchone()
        if row is None or not row["event_layout"]:
            return None
        try:
            return json.loads(row["event_layout"])
        except json.JSONDecodeError:
            logger.warning("Malformed layout document for event %s, ignoring it", event_id)
            return None

    def put_document(self, event_id: int, document: dict) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE events SET event_layout = ?, updated_at = ? WHERE event_id = ?",
                (json.dumps(document), utc_now(), event_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Event {event_id} not found")


# --- Normalized layout tables ---

def _segment_from_row(row) -> LayoutSegment:
    return LayoutSegment(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        description=row["description"],
        duration=row["duration"],
        order=row["order"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        custom_properties=json.loads(row["custom_properties"] or "{}"),
    )


def _segment_params(layout_id: int, segment: LayoutSegment) -> tuple:
    return (
        segment.id,
        layout_id,
        segment.name,
        segment.type,
        segment.description,
        segment.duration,
        segment.order,
        segment.start_time,
        segment.end_time,
        json.dumps(segment.custom_properties or {}),
    )


_INSERT_SEGMENT = (
    'INSERT INTO layout_segments (id, layout_id, name, type, description, duration, "order", '
    "start_time, end_time, custom_properties) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


class LayoutTableStore:
    """event_layout + layout_segments: the authoritative layout shape."""

    def __init__(self, db: Database):
        self.db = db

    def _layout_row(self, conn, event_id: int):
        return conn.execute(
            "SELECT id, total_duration, layout_version, updated_at FROM event_layout WHERE event_id = ?",
            (event_id,),
        ).fetchone()

    def _read(self, conn, event_id: int) -> Layout | None:
        row = self._layout_row(conn, event_id)
        if row is None:
            return None
        seg_rows = conn.execute(
            'SELECT * FROM layout_segments WHERE layout_id = ? ORDER BY "order"', (row["id"],)
        ).fetchall()
        return Layout(
            event_id=event_id,
            segments=[_segment_from_row(r) for r in seg_rows],
            total_duration=row["total_duration"],
            version=row["layout_version"],
            last_updated=row["updated_at"],
            source="normalized",
        )

    def read(self, event_id: int) -> Layout | None:
        with self.db.connect() as conn:
            return self._read(conn, event_id)

    def _bump(self, conn, layout_id: int, duration_delta: int) -> None:
        conn.execute(
            "UPDATE event_layout SET total_duration = total_duration + ?, "
            "layout_version = layout_version + 1, updated_at = ? WHERE id = ?",
            (duration_delta, utc_now(), layout_id),
        )

    def _write_orders(self, conn, segments: list[LayoutSegment]) -> None:
        conn.executemany(
            'UPDATE layout_segments SET "order" = ? WHERE id = ?',
            [(s.order, s.id) for s in segments],
        )

    def replace(self, event_id: int, segments: list[LayoutSegment], total_duration: int) -> Layout:
        """Upsert the layout row and swap in a new full set of segments."""
        now = utc_now()
        with self.db.connect() as conn:
            conn.execute(
                "INSERT INTO event_layout (event_id, total_duration, layout_version, last_generated_by, "
                "created_at, updated_at) VALUES (?, ?, 1, ?, ?, ?) "
                "ON CONFLICT(event_id) DO UPDATE SET total_duration = excluded.total_duration, "
                "layout_version = event_layout.layout_version + 1, "
                "last_generated_by = excluded.last_generated_by, updated_at = excluded.updated_at",
                (event_id, total_duration, LAYOUT_GENERATED_BY, now, now),
            )
            layout_id = self._layout_row(conn, event_id)["id"]
            conn.execute("DELETE FROM layout_segments WHERE layout_id = ?", (layout_id,))
            conn.executemany(_INSERT_SEGMENT, [_segment_params(layout_id, s) for s in segments])
            return self._read(conn, event_id)

    def insert_segment(self, event_id: int, segment: LayoutSegment) -> Layout:
        """Add one segment, creating an empty layout first if there is none."""
        now = utc_now()
        with self.db.connect() as conn:
            row = self._layout_row(conn, event_id)
            if row is None:
                conn.execute(
                    "INSERT INTO event_layout (event_id, total_duration, layout_version, created_at, updated_at) "
                    "VALUES (?, 0, 0, ?, ?)",
                    (event_id, now, now),
                )
                row = self._layout_row(conn, event_id)
            layout_id = row["id"]
            segments = self._read(conn, event_id).segments
            place_segment(segments, segment)
            conn.execute(_INSERT_SEGMENT, _segment_params(layout_id, segment))
            self._write_orders(conn, segments)
            self._bump(conn, layout_id, segment.duration)
            return self._read(conn, event_id)

    def update_segment(self, event_id: int, segment_id: str, updates: dict) -> Layout:
        with self.db.connect() as conn:
            layout = self._read(conn, event_id)
            segment = find_segment(layout, segment_id)
            if segment is None:
                raise NotFoundError(f"Segment {segment_id} not found in layout tables")
            old_duration = segment.duration
            apply_updates(segment, updates)
            if "order" in updates:
                move_segment(layout.segments, segment, updates["order"])
            conn.execute(
                "UPDATE layout_segments SET name = ?, type = ?, description = ?, duration = ?, "
                "start_time = ?, end_time = ?, custom_properties = ? WHERE id = ?",
                (
                    segment.name,
                    segment.type,
                    segment.description,
                    segment.duration,
                    segment.start_time,
                    segment.end_time,
                    json.dumps(segment.custom_properties or {}),
                    segment.id,
                ),
            )
            self._write_orders(conn, layout.segments)
            self._bump(conn, self._layout_row(conn, event_id)["id"], segment.duration - old_duration)
            return self._read(conn, event_id)

    def delete_segment(self, event_id: int, segment_id: str) -> Layout:
        with self.db.connect() as conn:
            layout = self._read(conn, event_id)
            segment = find_segment(layout, segment_id)
            if segment is None:
                raise NotFoundError(f"Segment {segment_id} not found in layout tables")
            conn.execute("DELETE FROM layout_segments WHERE id = ?", (segment_id,))
            layout.segments.remove(segment)
            renumber(layout.segments)
            self._write_orders(conn, layout.segments)
            self._bump(conn, self._layout_row(conn, event_id)["id"], -segment.duration)
            return self._read(conn, event_id)

    def set_times(self, segments: list[LayoutSegment]) -> None:
        with self.db.connect() as conn:
            conn.executemany(
                "UPDATE layout_segments SET start_time = ?, end_time = ? WHERE id = ?",
                [(s.start_time, s.end_time, s.id) for s in segments],
            )


def find_segment(layout: Layout | None, segment_id: str) -> LayoutSegment | None:
    if layout is None:
        return None
    for segment in layout.segments:
        if segment.id == segment_id:
            return segment
    return None


UPDATABLE_FIELDS = (
    "name", "type", "description", "duration", "order",
    "start_time", "end_time", "custom_properties",
)


def apply_updates(segment: LayoutSegment, updates: dict) -> None:
    """Copy update fields onto the segment; order is handled by the caller."""
    for key, value in updates.items():
        if key == "order":
            continue
        if key == "custom_properties":
            value = dict(value or {})
        setattr(segment, key, value)


# --- Script segments ---

def _script_from_row(row) -> ScriptSegment:
    chunk_index = row["chunk_index"]
    return ScriptSegment(
        id=row["id"],
        event_id=row["event_id"],
        layout_segment_id=row["layout_segment_id"],
        segment_type=row["segment_type"],
        content=row["content"],
        status=row["status"],
        timing=row["timing"],
        layout_order=row["layout_order"],
        sub_order=row["sub_order"],
        chunk_index=None if chunk_index == _NO_CHUNK else chunk_index,
        audio_path=row["audio_path"],
    )


_UPSERT_SCRIPT = (
    "INSERT INTO script_segments (event_id, layout_segment_id, segment_type, content, status, timing, "
    "layout_order, sub_order, chunk_index, created_at, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
    "ON CONFLICT(event_id, layout_segment_id, sub_order, chunk_index) DO UPDATE SET "
    "segment_type = excluded.segment_type, content = excluded.content, status = excluded.status, "
    "timing = excluded.timing, layout_order = excluded.layout_order, audio_path = NULL, "
    "updated_at = excluded.updated_at"
)

_SCRIPT_ORDER = "ORDER BY layout_order, sub_order, chunk_index"


class ScriptStore:
    def __init__(self, db: Database):
        self.db = db

    def _upsert(self, conn, segment: ScriptSegment, now: str) -> int:
        chunk_index = _NO_CHUNK if segment.chunk_index is None else segment.chunk_index
        conn.execute(_UPSERT_SCRIPT, (
            segment.event_id,
            segment.layout_segment_id,
            segment.segment_type,
            segment.content,
            segment.status,
            segment.timing,
            segment.layout_order,
            segment.sub_order,
            chunk_index,
            now,
            now,
        ))
        row = conn.execute(
            "SELECT id FROM script_segments WHERE event_id = ? AND layout_segment_id = ? "
            "AND sub_order = ? AND chunk_index = ?",
            (segment.event_id, segment.layout_segment_id, segment.sub_order, chunk_index),
        ).fetchone()
        return row["id"]

    def list_for_event(self, event_id: int) -> list[ScriptSegment]:
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM script_segments WHERE event_id = ? {_SCRIPT_ORDER}", (event_id,)
            ).fetchall()
        return [_script_from_row(r) for r in rows]

    def get(self, segment_id: int) -> ScriptSegment | None:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM script_segments WHERE id = ?", (segment_id,)).fetchone()
        return _script_from_row(row) if row else None

    def replace_all(self, event_id: int, drafts: list[ScriptSegment]) -> list[ScriptSegment]:
        """Make the event's script exactly `drafts`.

        Rows are upserted by natural key, then every other row of the event
        is deleted, all in one transaction.
        """
        now = utc_now()
        with self.db.connect() as conn:
            kept = [self._upsert(conn, draft, now) for draft in drafts]
            if kept:
                placeholders = ", ".join("?" for _ in kept)
                conn.execute(
                    f"DELETE FROM script_segments WHERE event_id = ? AND id NOT IN ({placeholders})",
                    (event_id, *kept),
                )
            else:
                conn.execute("DELETE FROM script_segments WHERE event_id = ?", (event_id,))
            rows = conn.execute(
                f"SELECT * FROM script_segments WHERE event_id = ? {_SCRIPT_ORDER}", (event_id,)
            ).fetchall()
        return [_script_from_row(r) for r in rows]

    def replace_with_chunks(self, original: ScriptSegment, chunks: list[ScriptSegment]) -> list[ScriptSegment]:
        """Delete the original row and insert its chunks in one transaction."""
        now = utc_now()
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM script_segments WHERE id = ?", (original.id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Script segment {original.id} not found")
            ids = [self._upsert(conn, chunk, now) for chunk in chunks]
            placeholders = ", ".join("?" for _ in ids)
            rows = conn.execute(
                f"SELECT * FROM script_segments WHERE id IN ({placeholders}) {_SCRIPT_ORDER}", ids
            ).fetchall()
        return [_script_from_row(r) for r in rows]

    def update(self, segment_id: int, **fields) -> ScriptSegment:
        """Update content, status, timing or audio_path of one row."""
        allowed = {"content", "status", "timing", "audio_path"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update script fields: {', '.join(sorted(unknown))}")
        if "content" in fields and "audio_path" not in fields:
            # Rendered audio no longer matches the text
            fields["audio_path"] = None
        assignments = ", ".join(f"{key} = ?" for key in fields)
        with self.db.connect() as conn:
            cursor = conn.execute(
                f"UPDATE script_segments SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), utc_now(), segment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Script segment {segment_id} not found")
            row = conn.execute("SELECT * FROM script_segments WHERE id = ?", (segment_id,)).fetchone()
        return _script_from_row(row)
