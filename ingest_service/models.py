"""
Module containing data models for the ingestion service.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class WatchEventKind(Enum):
    """Kinds of notifications emitted by the folder monitor."""
    ADDED = "added"
    ERROR = "error"
    READY = "ready"


@dataclass(frozen=True)
class WatchEvent:
    """A single notification from the folder monitor."""
    kind: WatchEventKind
    path: Optional[Path] = None
    error: Optional[BaseException] = None


@dataclass
class UploadOutcome:
    """Represents the result of uploading one file to object storage."""
    success: bool
    source_path: Path
    destination: str
    uploaded_at: datetime
    error: Optional[str] = None
    size_bytes: Optional[int] = None


@dataclass
class WatcherStats:
    """Counters kept by the coordinator for its whole lifetime."""
    files_processed: int = 0
    files_uploaded: int = 0
    files_failed: int = 0
    status_write_failures: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def uptime_seconds(self) -> int:
        return int((datetime.now(timezone.utc) - self.start_time).total_seconds())


@dataclass
class PendingFile:
    """A file waiting for its size to settle before it is reported."""
    path: Path
    since: float
    size: Optional[int] = None
