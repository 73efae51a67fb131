"""Shared fixtures for emcee producer tests."""

from datetime import datetime

import pytest

from emcee_producer.models import LayoutSegment, ScriptSegment
from emcee_producer.pipeline import PipelineOrchestrator
from emcee_producer.storage import Database

FIXED_NOW = datetime(2025, 3, 1, 9, 0)


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database with the schema applied."""
    database = Database(str(tmp_path / "emcee.db"))
    database.init_schema()
    return database


@pytest.fixture
def orchestrator(db):
    return PipelineOrchestrator(db, now=lambda: FIXED_NOW)


@pytest.fixture
def event_id(orchestrator):
    """A webinar event with no explicit duration (90 minutes by default)."""
    result = orchestrator.create_event("Future of Data", "webinar", starts_at="2025-03-01T09:00")
    return result.data["event"]["event_id"]


@pytest.fixture
def sample_layout_segments():
    return [
        LayoutSegment(name="Welcome", type="introduction", duration=5, order=1),
        LayoutSegment(name="Keynote", type="keynote", duration=30, order=2),
        LayoutSegment(name="Q&A", type="q_and_a", duration=15, order=3),
    ]


@pytest.fixture
def long_script_segment():
    """A primary segment with three five-word sentences."""
    return ScriptSegment(
        event_id=1,
        layout_segment_id="seg-1",
        segment_type="keynote",
        content="One two three four five. Six seven eight nine ten. Eleven twelve thirteen fourteen fifteen.",
        timing=600,
        layout_order=2,
    )
