"""
Module for watching the drop folder and reporting files once fully written.
"""
import os
import threading
import time
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .models import PendingFile, WatchEvent, WatchEventKind
from .scanner import FileScanner, is_hidden

logger = logging.getLogger(__name__)


class _DropFolderHandler(FileSystemEventHandler):
    """Forwards file-level watchdog events to the monitor."""

    def __init__(self, monitor: "FolderMonitor"):
        super().__init__()
        self.monitor = monitor

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.monitor.track(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.monitor.track(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.monitor.track(event.dest_path)


class FolderMonitor:
    """Watches one folder (non-recursively) and emits typed events.

    A path is reported as ADDED only after its size has stayed unchanged
    for ``stability_threshold`` seconds. Files present at start-up go
    through the same check, after which READY is emitted.
    """

    def __init__(self, root: Path, stability_threshold: float = 2.0,
                 poll_interval: float = 0.1,
                 observer_factory: Callable[[], Observer] = Observer,
                 scanner: Optional[FileScanner] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.root = Path(root).resolve()
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self._observer_factory = observer_factory
        self._scanner = scanner or FileScanner()
        self._clock = clock
        self._callback: Optional[Callable[[WatchEvent], None]] = None
        self._pending: Dict[Path, PendingFile] = {}
        self._observer = None
        self._observer_failed = False
        self._stop_event: Optional[threading.Event] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def register_callback(self, callback: Callable[[WatchEvent], None]) -> None:
        """Register the function receiving every WatchEvent.

        Args:
            callback: Called with each ADDED, ERROR or READY event
        """
        self._callback = callback

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start observing the folder and run the initial scan."""
        with self._lock:
            if self._observer is not None:
                logger.warning(f"Already monitoring {self.root}")
                return

            if not self.root.is_dir():
                raise ValueError(f"Watch folder does not exist: {self.root}")

            observer = self._observer_factory()
            observer.schedule(_DropFolderHandler(self), str(self.root), recursive=False)
            observer.start()
            self._observer = observer
            self._observer_failed = False

            stop_event = threading.Event()
            self._stop_event = stop_event
            self._poll_thread = threading.Thread(
                target=self._poll_pending,
                args=(stop_event,),
                name="monitor-poll",
                daemon=True
            )
            self._poll_thread.start()

        logger.info(f"Started monitoring folder {self.root}")

        for path in self._scanner.scan_folder(self.root):
            self.track(path)

        self._emit(WatchEvent(WatchEventKind.READY))

    def stop(self) -> None:
        """Stop observing; a no-op if the monitor is not running."""
        with self._lock:
            observer = self._observer
            if observer is None:
                return
            self._observer = None
            stop_event, thread = self._stop_event, self._poll_thread
            self._stop_event = self._poll_thread = None
            self._pending.clear()

        stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        observer.stop()
        observer.join(timeout=5)
        logger.info(f"Stopped monitoring folder {self.root}")

    def track(self, path) -> None:
        """Start waiting for a path to become stable."""
        path = Path(os.fsdecode(path)).absolute()
        if is_hidden(path) or path.parent.resolve() != self.root:
            return

        with self._lock:
            if self._observer is None or path in self._pending:
                return
            self._pending[path] = PendingFile(path=path, since=self._clock())
        logger.debug(f"Waiting for {path} to settle")

    def _poll_pending(self, stop_event: threading.Event) -> None:
        """Background thread that promotes settled files to ADDED events.

        Args:
            stop_event: Event to signal thread termination
        """
        while not stop_event.is_set():
            try:
                self._check_pending()
                self._check_observer()
            except Exception as e:
                logger.error(f"Error polling pending files in {self.root}: {e}")
                self._emit(WatchEvent(WatchEventKind.ERROR, error=e))

            stop_event.wait(self.poll_interval)

    def _check_pending(self) -> None:
        now = self._clock()
        events = []

        with self._lock:
            for path, pending in list(self._pending.items()):
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    del self._pending[path]
                    continue
                except OSError as e:
                    del self._pending[path]
                    events.append(WatchEvent(WatchEventKind.ERROR, path=path, error=e))
                    continue

                if size != pending.size:
                    pending.size = size
                    pending.since = now
                elif now - pending.since >= self.stability_threshold:
                    del self._pending[path]
                    events.append(WatchEvent(WatchEventKind.ADDED, path=path))

        for event in events:
            self._emit(event)

    def _check_observer(self) -> None:
        observer = self._observer
        if observer is None or self._observer_failed or observer.is_alive():
            return
        self._observer_failed = True
        self._emit(WatchEvent(
            WatchEventKind.ERROR,
            error=RuntimeError(f"Filesystem observer for {self.root} stopped unexpectedly")
        ))

    def _emit(self, event: WatchEvent) -> None:
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception:
            logger.exception(f"Watch event callback failed for {event.kind.value} {event.path}")
