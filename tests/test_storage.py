"""Tests for SQLite storage (Layer 2a)."""

import pytest

from emcee_producer.errors import NotFoundError
from emcee_producer.models import LayoutSegment, ScriptSegment
from emcee_producer.storage import EventStore, LayoutTableStore, ScriptStore


@pytest.fixture
def event(db):
    return EventStore(db).create("Expo", "conference", duration_minutes=120)


def _draft(event_id, layout_segment_id="L1", sub_order=0, content="Hello.", layout_order=1):
    return ScriptSegment(
        event_id=event_id, layout_segment_id=layout_segment_id, segment_type="introduction",
        content=content, timing=60, layout_order=layout_order, sub_order=sub_order,
    )


def test_init_schema_is_idempotent(db):
    """Applying the schema twice is harmless."""
    db.init_schema()
    db.init_schema()


def test_event_roundtrip(db, event):
    """Events read back with their fields."""
    loaded = EventStore(db).get(event.event_id)
    assert loaded.title == "Expo"
    assert loaded.status == "draft"
    assert loaded.duration_minutes == 120
    assert EventStore(db).get(9999) is None


def test_document_roundtrip(db, event):
    events = EventStore(db)
    assert events.get_document(event.event_id) is None
    events.put_document(event.event_id, {"segments": [], "version": 1})
    assert events.get_document(event.event_id) == {"segments": [], "version": 1}


def test_put_document_unknown_event(db):
    """Writing a document for a missing event fails."""
    with pytest.raises(NotFoundError):
        EventStore(db).put_document(404, {"segments": []})


def test_layout_replace_bumps_version(db, event):
    """Replacing a layout bumps its version."""
    layouts = LayoutTableStore(db)
    segments = [LayoutSegment(name="A", type="introduction", duration=5, order=1)]
    first = layouts.replace(event.event_id, segments, 5)
    second = layouts.replace(event.event_id, segments, 5)
    assert first.version == 1
    assert second.version == 2
    assert len(second.segments) == 1


def test_insert_segment_creates_layout(db, event):
    """Inserting into an event without a layout creates one."""
    layouts = LayoutTableStore(db)
    layout = layouts.insert_segment(event.event_id, LayoutSegment(name="Solo", type="demo", duration=12))
    assert layout.total_duration == 12
    assert layout.version == 1
    assert [s.order for s in layout.segments] == [1]


def test_custom_properties_survive(db, event):
    layouts = LayoutTableStore(db)
    seg = LayoutSegment(name="A", type="panel", duration=5, order=1, custom_properties={"room": "B2"})
    layout = layouts.replace(event.event_id, [seg], 5)
    assert layout.segments[0].custom_properties == {"room": "B2"}


def test_script_replace_all_upserts_by_natural_key(db, event):
    """Regenerated rows keep their IDs and stale rows go."""
    scripts = ScriptStore(db)
    first = scripts.replace_all(event.event_id, [_draft(event.event_id), _draft(event.event_id, sub_order=1)])
    second = scripts.replace_all(event.event_id, [_draft(event.event_id, content="Changed.")])
    assert len(first) == 2
    assert len(second) == 1
    assert second[0].id == first[0].id
    assert second[0].content == "Changed."


def test_script_list_sorted_hierarchically(db, event):
    """Rows list by layout order, then sub order."""
    scripts = ScriptStore(db)
    scripts.replace_all(event.event_id, [
        _draft(event.event_id, "L2", layout_order=2),
        _draft(event.event_id, "L1", sub_order=2),
        _draft(event.event_id, "L1"),
    ])
    assert [(s.layout_order, s.sub_order) for s in scripts.list_for_event(event.event_id)] == [(1, 0), (1, 2), (2, 0)]


def test_replace_with_chunks(db, event):
    """Chunks replace their original in one transaction."""
    scripts = ScriptStore(db)
    original = scripts.replace_all(event.event_id, [_draft(event.event_id)])[0]
    chunks = [
        ScriptSegment(event_id=event.event_id, layout_segment_id="L1", segment_type="introduction",
                      content=f"Part {i}.", timing=30, layout_order=1, chunk_index=i)
        for i in range(2)
    ]
    stored = scripts.replace_with_chunks(original, chunks)
    assert [s.chunk_index for s in stored] == [0, 1]
    assert scripts.get(original.id) is None
    with pytest.raises(NotFoundError):
        scripts.replace_with_chunks(original, chunks)


def test_script_update(db, event):
    scripts = ScriptStore(db)
    seg = scripts.replace_all(event.event_id, [_draft(event.event_id)])[0]
    updated = scripts.update(seg.id, status="generated", audio_path="/tmp/a.mp3")
    assert updated.status == "generated"
    assert updated.audio_path == "/tmp/a.mp3"
    assert updated.chunk_index is None
    with pytest.raises(NotFoundError):
        scripts.update(9999, status="draft")
    with pytest.raises(ValueError):
        scripts.update(seg.id, event_id=3)


def test_content_edit_clears_audio_path(db, event):
    """Editing text drops the audio rendered from the old text."""
    scripts = ScriptStore(db)
    seg = scripts.replace_all(event.event_id, [_draft(event.event_id)])[0]
    scripts.update(seg.id, status="generated", audio_path="/tmp/a.mp3")
    assert scripts.update(seg.id, status="editing").audio_path == "/tmp/a.mp3"
    assert scripts.update(seg.id, content="New words.").audio_path is None
