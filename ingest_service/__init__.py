from .config import WatcherConfig, load_config
from .coordinator import UploadCoordinator
from .debounce import DebounceScheduler
from .models import UploadOutcome, WatchEvent, WatchEventKind, WatcherStats
from .monitor import FolderMonitor
from .scanner import FileScanner
from .tracker import StatusPersistError, UploadTracker
from .uploader import S3Uploader

__version__ = "0.1.0"

__all__ = [
    "WatcherConfig",
    "load_config",
    "UploadCoordinator",
    "DebounceScheduler",
    "UploadOutcome",
    "WatchEvent",
    "WatchEventKind",
    "WatcherStats",
    "FolderMonitor",
    "FileScanner",
    "StatusPersistError",
    "UploadTracker",
    "S3Uploader",
]
