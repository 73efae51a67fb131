"""Tests for pipeline workflows (Layer 3)."""

import gc
import logging
import sqlite3
import threading
from unittest.mock import patch

import pytest

from emcee_producer.errors import ValidationError
from emcee_producer.pipeline import _event_locks, event_lock, parse_event_id
from emcee_producer.storage import EventStore


# --- Input validation ---

@pytest.mark.parametrize("value,expected", [(3, 3), ("42", 42), (" 7 ", 7)])
def test_parse_event_id_accepts(value, expected):
    assert parse_event_id(value) == expected


@pytest.mark.parametrize("value", ["abc", "", "4.5", "-1", 0, -3, None, True, 2.0])
def test_parse_event_id_rejects(value):
    with pytest.raises(ValidationError):
        parse_event_id(value)


def test_malformed_event_id_fails_before_io(orchestrator):
    """Bad IDs never reach storage."""
    with patch.object(orchestrator.store.events, "get") as get:
        result = orchestrator.generate_layout("not-a-number")
    assert not result.success
    assert "Invalid event ID" in result.error
    get.assert_not_called()


def test_missing_event(orchestrator):
    """Unknown events fail with a not-found message."""
    result = orchestrator.generate_layout(999)
    assert not result.success
    assert result.error == "Event 999 not found"


def test_event_lock_is_per_event():
    """One lock per event ID."""
    assert event_lock(1) is event_lock(1)
    assert event_lock(1) is not event_lock(2)
    assert isinstance(event_lock(3), type(threading.Lock()))


# --- Events and layout ---

def test_create_event_validation(orchestrator):
    """Blank titles, negative durations and bad start times are rejected."""
    assert not orchestrator.create_event("  ").success
    assert not orchestrator.create_event("Expo", duration_minutes=-5).success
    assert not orchestrator.create_event("Expo", starts_at="tomorrow-ish").success


def test_generate_layout_default_total(orchestrator, event_id, db):
    """Webinar without a duration uses the 90-minute template."""
    result = orchestrator.generate_layout(event_id)
    assert result.success
    layout = result.data["layout"]
    assert [s["duration"] for s in layout["segments"]] == [7, 45, 18, 15, 5]
    assert layout["totalDuration"] == 90
    assert layout["source"] == "normalized"
    assert EventStore(db).get(event_id).status == "layout_ready"


def test_generate_layout_twice_bumps_version(orchestrator, event_id):
    orchestrator.generate_layout(event_id)
    result = orchestrator.generate_layout(str(event_id))
    assert result.data["layout"]["version"] == 2
    assert len(result.data["layout"]["segments"]) == 5


def test_layout_edits(orchestrator, event_id):
    """Add, update and delete keep orders and totals consistent."""
    layout = orchestrator.generate_layout(event_id).data["layout"]
    added = orchestrator.add_segment(event_id, "Sponsor Spotlight", "presentation", 10, order=2)
    assert added.success
    names = [s["name"] for s in added.data["layout"]["segments"]]
    assert names[1] == "Sponsor Spotlight"
    assert added.data["layout"]["totalDuration"] == 100

    demo_id = layout["segments"][2]["id"]
    updated = orchestrator.update_segment(event_id, demo_id, {"duration": 20})
    assert updated.data["layout"]["totalDuration"] == 102

    deleted = orchestrator.delete_segment(event_id, added.data["segmentId"])
    assert [s["order"] for s in deleted.data["layout"]["segments"]] == [1, 2, 3, 4, 5]
    assert deleted.data["layout"]["totalDuration"] == 92


def test_update_segment_rejects_unknown_fields(orchestrator, event_id):
    layout = orchestrator.generate_layout(event_id).data["layout"]
    result = orchestrator.update_segment(event_id, layout["segments"][0]["id"], {"color": "red"})
    assert not result.success
    assert "color" in result.error


def test_add_segment_falls_back_to_document(orchestrator, event_id):
    """A table failure on add lands in the layout document."""
    orchestrator.generate_layout(event_id)
    with patch.object(orchestrator.store.layouts, "insert_segment",
                      side_effect=sqlite3.OperationalError("database is locked")):
        result = orchestrator.add_segment(event_id, "Demo", "demo", 10)
    assert result.success
    assert result.data["layout"]["source"] == "document"
    assert orchestrator.get_layout(event_id).data["layout"]["source"] == "normalized"


def test_schedule_layout(orchestrator, event_id):
    """Clock times run from the event start."""
    orchestrator.generate_layout(event_id)
    result = orchestrator.schedule_layout(event_id)
    segments = result.data["layout"]["segments"]
    assert segments[0]["startTime"] == "09:00 AM"
    assert segments[0]["endTime"] == "09:07 AM"
    assert segments[-1]["endTime"] == "10:30 AM"
    assert "startTime" not in orchestrator.get_layout(event_id).data["layout"]["segments"][0]


def test_schedule_layout_persist(orchestrator, event_id):
    """Persisted schedules are stored with the layout."""
    orchestrator.generate_layout(event_id)
    orchestrator.schedule_layout(event_id, start="2025-03-01T13:00", persist=True)
    stored = orchestrator.get_layout(event_id).data["layout"]["segments"]
    assert stored[0]["startTime"] == "01:00 PM"


def test_rebuild_layout_document(orchestrator, event_id):
    orchestrator.generate_layout(event_id)
    result = orchestrator.rebuild_layout_document(event_id)
    assert result.success
    assert result.data["layout"]["source"] == "document"
    assert len(result.data["layout"]["segments"]) == 5


# --- Script ---

def test_script_requires_layout(orchestrator, event_id):
    """Scripts need a layout first."""
    result = orchestrator.generate_script_from_layout(event_id)
    assert not result.success
    assert "No layout" in result.error


def test_script_rejects_bad_target_words(orchestrator, event_id):
    result = orchestrator.generate_script_from_layout(event_id, target_words=0)
    assert not result.success


def test_generate_script_without_chunking(orchestrator, event_id, db):
    """One primary per layout segment plus satellites, in order."""
    orchestrator.generate_layout(event_id)
    result = orchestrator.generate_script_from_layout(event_id, chunk=False)
    assert result.success
    segments = result.data["segments"]
    # webinar: intro, presentation(+2), demo, q_and_a(+3), conclusion
    assert len(segments) == 10
    orders = [s["order"] for s in segments]
    assert orders == sorted(orders)
    assert orders[:4] == [10, 20, 21, 22]
    assert "chunking" not in result.data
    assert EventStore(db).get(event_id).status == "scripting"


def test_regeneration_is_idempotent(orchestrator, event_id):
    """Regenerating replaces rows instead of doubling them."""
    orchestrator.generate_layout(event_id)
    first = orchestrator.generate_script_from_layout(event_id).data["segments"]
    second = orchestrator.generate_script_from_layout(event_id).data["segments"]
    assert len(first) == len(second)
    assert [s["order"] for s in first] == [s["order"] for s in second]
    assert len({s["order"] for s in second}) == len(second)


def test_generate_script_chunks(orchestrator, event_id):
    """Script generation chunks by default."""
    orchestrator.generate_layout(event_id)
    result = orchestrator.generate_script_from_layout(event_id, target_words=10)
    chunking = result.data["chunking"]
    assert chunking["success"]
    assert chunking["message"].startswith("Processed 10/10 segments into ")
    segments = result.data["segments"]
    assert any(s["chunk_index"] is not None for s in segments)


def test_chunk_all_segments(orchestrator, event_id):
    """Chunk counts in the message match stored rows."""
    orchestrator.generate_layout(event_id)
    orchestrator.generate_script_from_layout(event_id, chunk=False)
    result = orchestrator.chunk_all_segments(event_id, target_words=20)
    assert result.success
    assert result.message.startswith("Processed 10/10 segments into ")
    total_chunks = sum(r["chunks"] for r in result.data["results"])
    assert result.message.endswith(f"into {total_chunks} chunks")
    assert len(orchestrator.get_script(event_id).data["segments"]) == total_chunks

    again = orchestrator.chunk_all_segments(event_id, target_words=20)
    assert again.message == f"Processed {total_chunks}/{total_chunks} segments into {total_chunks} chunks"


def test_chunk_all_without_script(orchestrator, event_id):
    result = orchestrator.chunk_all_segments(event_id)
    assert not result.success
    assert "No script segments" in result.error


def test_chunk_all_aggregates_failures(orchestrator, event_id):
    """One failing segment does not stop the batch."""
    orchestrator.generate_layout(event_id)
    orchestrator.generate_script_from_layout(event_id, chunk=False)
    with patch.object(orchestrator.store, "replace_with_chunks", side_effect=sqlite3.OperationalError("locked")):
        result = orchestrator.chunk_all_segments(event_id, target_words=10)
    failed = [r for r in result.data["results"] if not r["success"]]
    assert failed
    assert all("locked" in r["error"] for r in failed)


def test_chunk_single_segment(orchestrator, event_id):
    orchestrator.generate_layout(event_id)
    segments = orchestrator.generate_script_from_layout(event_id, chunk=False).data["segments"]
    result = orchestrator.chunk_segment(segments[0]["id"], target_words=10)
    assert result.success
    assert len(result.data["chunks"]) > 1
    assert not orchestrator.chunk_segment(99999).success


def test_update_script_segment(orchestrator, event_id):
    """Content and status edits are stored; unknown statuses fail."""
    orchestrator.generate_layout(event_id)
    seg = orchestrator.generate_script_from_layout(event_id, chunk=False).data["segments"][0]
    result = orchestrator.update_script_segment(seg["id"], content="Hello everyone.", status="editing")
    assert result.data["segment"]["content"] == "Hello everyone."
    assert result.data["segment"]["status"] == "editing"
    assert not orchestrator.update_script_segment(seg["id"], status="published").success


def test_unexpected_error_is_generic(orchestrator, event_id):
    """Unclassified errors return a generic message."""
    with patch("emcee_producer.pipeline.allocate", side_effect=RuntimeError("kaboom")):
        result = orchestrator.generate_layout(event_id)
    assert not result.success
    assert result.error == "Failed to generate layout"


def test_layout_declares_requested_total(orchestrator):
    """The declared total is the requested length, even when floors push the segments past or short of it."""
    event_id = orchestrator.create_event("Expo", "conference").data["event"]["event_id"]
    result = orchestrator.generate_layout(event_id)
    layout = result.data["layout"]
    assert [s["duration"] for s in layout["segments"]] == [9, 45, 54, 18, 18, 10]
    assert sum(s["duration"] for s in layout["segments"]) == 154
    assert layout["totalDuration"] == 180
    assert result.message == "Generated 6 segments (180 minutes)"


def test_storage_failure_on_both_paths_is_generic(orchestrator, event_id, caplog):
    """When tables and document both fail, the caller gets a generic message and the log gets the traceback."""
    orchestrator.generate_layout(event_id)
    with patch.object(orchestrator.store.layouts, "insert_segment", side_effect=OSError("disk full /var/secret")), \
            patch.object(orchestrator.store.events, "put_document", side_effect=OSError("disk full /var/secret")), \
            caplog.at_level(logging.ERROR, logger="emcee_producer.pipeline"):
        result = orchestrator.add_segment(event_id, "Demo", "demo", 10)

    assert not result.success
    assert result.error == "Failed to add segment"
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].exc_info is not None
    assert "/var/secret" in caplog.text


@pytest.mark.parametrize("updates", [
    {"name": None},
    {"name": "   "},
    {"type": 42},
    {"description": None},
    {"custom_properties": ["not", "a", "dict"]},
    {"start_time": 900},
])
def test_update_segment_rejects_bad_values(orchestrator, event_id, updates):
    """Bad field values are rejected before anything is written."""
    layout = orchestrator.generate_layout(event_id).data["layout"]
    segment = layout["segments"][0]
    with patch.object(orchestrator.store, "update_segment") as update:
        result = orchestrator.update_segment(event_id, segment["id"], updates)
    assert not result.success
    update.assert_not_called()
    stored = orchestrator.get_layout(event_id).data["layout"]
    assert stored["segments"][0]["name"] == segment["name"]
    assert stored["source"] == "normalized"


def test_add_segment_rejects_bad_values(orchestrator, event_id):
    """Non-string names and non-dict properties never reach storage."""
    with patch.object(orchestrator.store, "add_segment") as add:
        assert not orchestrator.add_segment(event_id, 7, "demo", 10).success
        assert not orchestrator.add_segment(event_id, "Demo", "demo", 10, custom_properties="x").success
    add.assert_not_called()


def test_event_locks_are_released_when_unused():
    """A lock no caller holds is dropped from the registry."""
    lock = event_lock(424242)
    assert 424242 in _event_locks
    del lock
    gc.collect()
    assert 424242 not in _event_locks
