"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from courses.models import NO_DEADLINE, Course, Item
from courses.source import CourseSource
from courses.store import SnapshotStore
from scheduler.alerting import NotificationSink
from scheduler.models import AlertConfig, SchedulerConfig


@pytest.fixture
def now():
    """Fixed reference time for deadline calculations."""
    return datetime(2024, 11, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def course():
    """Create a sample course."""
    return Course.create(4242, "Linear Algebra")


@pytest.fixture
def other_course():
    """Create a second sample course."""
    return Course.create(1717, "Data Structures")


@pytest.fixture
def make_file():
    """Factory for leaf items."""
    def _make_file(name, kind="pdf", url=None, **kwargs):
        return Item(
            name=name,
            kind=kind,
            location_ref=url or f"https://moodle.example.com/mod/resource/{name}",
            **kwargs
        )
    return _make_file


@pytest.fixture
def make_folder():
    """Factory for folder items."""
    def _make_folder(name, children=None, **kwargs):
        return Item(name=name, kind="folder", children=list(children or []), **kwargs)
    return _make_folder


@pytest.fixture
def sample_tree(course, make_file, make_folder, now):
    """Course tree with a nested folder, an assignment and a test."""
    return course.root_folder([
        make_folder("Lectures", [make_file("lecture01.pdf"), make_file("lecture02.pdf")]),
        make_file(
            "Exercise Sheet 1",
            kind="task",
            description="Hand in via upload",
            deadline=now + timedelta(days=3),
            last_checked_at=now
        ),
        make_file("Quiz 1", kind="test", deadline=NO_DEADLINE),
    ])


@pytest.fixture
def store(tmp_path):
    """Snapshot store backed by a temporary file."""
    return SnapshotStore(str(tmp_path / "files.json"))


@pytest.fixture
def scheduler_config():
    """Scheduler configuration with short timeouts."""
    return SchedulerConfig(
        poll_interval_seconds=300,
        deadline_window_hours=16,
        fetch_timeout_seconds=1.0,
        alert_config=AlertConfig(notify_timeout_seconds=1.0)
    )


@pytest.fixture
def mock_source():
    """Create a mock course source."""
    source = AsyncMock(spec=CourseSource)
    source.last_fetch_bytes = 2048
    return source


@pytest.fixture
def mock_sink():
    """Create a mock notification sink."""
    return AsyncMock(spec=NotificationSink)
