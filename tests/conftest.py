"""
Test fixtures for the ingestion service.
"""
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import boto3
import mongomock
import pytest
from moto import mock_aws as moto_mock_aws

from ingest_service.coordinator import UploadCoordinator
from ingest_service.models import UploadOutcome
from ingest_service.tracker import UploadTracker
from ingest_service.uploader import S3Uploader

INGEST_TIME = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakeTimer:
    """Stand-in for threading.Timer driven by a Timeline."""

    def __init__(self, timeline, interval, function, args=None, kwargs=None):
        self.timeline = timeline
        self.interval = interval
        self.function = function
        self.args = args or []
        self.kwargs = kwargs or {}
        self.daemon = False
        self.created_at = timeline.now
        self.started = False
        self.cancelled = False
        self.fired_at = None

    @property
    def due(self):
        return self.created_at + self.interval

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def run(self):
        self.fired_at = self.timeline.now
        self.function(*self.args, **self.kwargs)


class Timeline:
    """Virtual clock that fires FakeTimers as time is advanced."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def timer_factory(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(self, interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    def advance_to(self, when):
        while True:
            due = [t for t in self.timers
                   if t.started and not t.cancelled and t.fired_at is None and t.due <= when]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            timer.run()
        self.now = when

    def live_timers(self):
        return [t for t in self.timers if not t.cancelled and t.fired_at is None]


def poll_until(predicate, timeout=5.0, interval=0.02):
    """Poll until predicate() is truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def tmp_upload_dir(tmp_path):
    """Create a temporary drop folder for test files."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    return upload_dir


@pytest.fixture
def timeline():
    return Timeline()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_aws(aws_credentials):
    """Mock S3 client using moto."""
    with moto_mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def s3_uploader(mock_aws):
    """Create a test S3 uploader with a fixed ingestion time."""
    return S3Uploader('test-bucket', s3_client=mock_aws, clock=lambda: INGEST_TIME)


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient().camera_ingest


@pytest.fixture
def upload_tracker(mongo_db):
    tracker = UploadTracker(mongo_db)
    tracker.ensure_indexes()
    return tracker


def build_outcome(path, success=True, error=None):
    path = Path(path)
    return UploadOutcome(
        success=success,
        source_path=path,
        destination=f"s3://test-bucket/2024/03/15/{path.name}",
        uploaded_at=INGEST_TIME,
        error=error
    )


@pytest.fixture
def ingest_time():
    """Fixed ingestion time used by uploaders under test."""
    return INGEST_TIME


@pytest.fixture
def wait_for():
    return poll_until


@pytest.fixture
def make_outcome():
    """Factory for UploadOutcome values as returned by a mocked uploader."""
    return build_outcome


@pytest.fixture
def mock_monitor():
    monitor = MagicMock()
    monitor.root = Path("/watch")
    return monitor


@pytest.fixture
def mock_uploader():
    uploader = MagicMock()
    uploader.bucket = "test-bucket"
    uploader.delete_after_upload = False
    uploader.upload.side_effect = lambda path: build_outcome(path)
    return uploader


@pytest.fixture
def mock_tracker():
    return MagicMock()


@pytest.fixture
def coordinator(mock_monitor, mock_uploader, mock_tracker, timeline):
    """Coordinator with mocked collaborators and virtual debounce timers."""
    return UploadCoordinator(
        mock_monitor,
        mock_uploader,
        mock_tracker,
        debounce_delay=2.0,
        timer_factory=timeline.timer_factory
    )
