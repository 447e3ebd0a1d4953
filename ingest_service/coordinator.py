"""
Module for coordinating file detection, upload and status persistence.
"""
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Set

from .debounce import DebounceScheduler
from .models import UploadOutcome, WatchEvent, WatchEventKind, WatcherStats
from .monitor import FolderMonitor
from .tracker import StatusPersistError, UploadTracker
from .uploader import S3Uploader

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """Uploads each settled file from the watched folder exactly once per burst.

    Per path the coordinator moves Idle -> Debouncing -> Processing -> Idle.
    Events for a path that is being uploaded are dropped.
    """

    def __init__(self, monitor: FolderMonitor, uploader: S3Uploader,
                 tracker: UploadTracker, debounce_delay: float = 2.0,
                 timer_factory: Optional[Callable[..., threading.Timer]] = None):
        """Initialize the upload coordinator.

        Args:
            monitor: Source of filesystem events for the watched folder
            uploader: Performs the transfer to object storage
            tracker: Persists upload status records
            debounce_delay: Quiet period in seconds before a file is processed
            timer_factory: Optional timer factory for the debounce scheduler
        """
        self.monitor = monitor
        self.uploader = uploader
        self.tracker = tracker
        scheduler_kwargs = {'timer_factory': timer_factory} if timer_factory else {}
        self.scheduler = DebounceScheduler(
            debounce_delay, self._process_from_timer, **scheduler_kwargs
        )
        self._in_flight: Set[Path] = set()
        self._stats = WatcherStats()
        self._started = False
        self._lock = threading.Lock()

        self.monitor.register_callback(self.handle_event)

    def start(self) -> None:
        """Start watching the folder."""
        with self._lock:
            if self._started:
                logger.warning("Watcher already started")
                return
            self._started = True

        logger.info(f"Starting file watcher on directory: {self.monitor.root}")
        logger.info(f"Debounce time: {int(self.scheduler.delay * 1000)}ms")
        logger.info(f"Destination bucket: {self.uploader.bucket}")
        logger.info(f"Delete after upload: {self.uploader.delete_after_upload}")

        try:
            self.monitor.start()
        except Exception:
            with self._lock:
                self._started = False
            raise

    def stop(self) -> None:
        """Cancel pending timers, stop watching and log final statistics.

        Uploads already running are left to finish on their own threads.
        """
        with self._lock:
            if not self._started:
                return
            self._started = False

        logger.info("Stopping file watcher...")
        cancelled = self.scheduler.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending file(s)")
        self.monitor.stop()
        self.log_stats()

    def get_stats(self) -> WatcherStats:
        """Return a snapshot of the statistics counters."""
        with self._lock:
            return replace(self._stats)

    def is_processing(self, path: Path) -> bool:
        with self._lock:
            return Path(path) in self._in_flight

    def handle_event(self, event: WatchEvent) -> None:
        """Dispatch a monitor event."""
        if event.kind is WatchEventKind.ADDED:
            self.handle_new_file(event.path)
        elif event.kind is WatchEventKind.ERROR:
            logger.error(f"Watcher error: {event.error}" + (f" ({event.path})" if event.path else ""))
        elif event.kind is WatchEventKind.READY:
            logger.info("File watcher is ready and scanning for files")

    def handle_new_file(self, path: Path) -> None:
        """Start or reset the debounce timer for a path unless it is uploading."""
        path = Path(path)
        if self.is_processing(path):
            logger.debug(f"Ignoring event for {path.name}: upload in progress")
            return
        self.scheduler.notify(path)

    def _process_from_timer(self, path: Path) -> None:
        try:
            self.process(path)
        except StatusPersistError:
            logger.exception(f"Uploaded {path.name} but could not record its status")
        except Exception:
            logger.exception(f"Unexpected error processing {path.name}")

    def process(self, path: Path) -> Optional[UploadOutcome]:
        """Upload one file and record its status.

        Args:
            path: Absolute path of the file to ingest

        Returns:
            The upload outcome, or None if the path was already in flight

        Raises:
            StatusPersistError: If the upload succeeded but its status
                record could not be written
        """
        path = Path(path)
        with self._lock:
            if path in self._in_flight:
                logger.debug(f"Skipping {path.name}: already being processed")
                return None
            self._in_flight.add(path)
            self._stats.files_processed += 1

        file_name = path.name
        logger.info(f"Processing file: {file_name}")

        try:
            try:
                outcome = self.uploader.upload(path)
            except Exception as e:
                with self._lock:
                    self._stats.files_failed += 1
                logger.exception(f"Error processing file {file_name}")
                return UploadOutcome(
                    success=False,
                    source_path=path,
                    destination='',
                    uploaded_at=datetime.now(timezone.utc),
                    error=str(e)
                )

            if not outcome.success:
                with self._lock:
                    self._stats.files_failed += 1
                logger.error(f"Upload failed for: {file_name} ({outcome.error})")
                return outcome

            with self._lock:
                self._stats.files_uploaded += 1
            try:
                self.tracker.mark_uploaded(file_name, outcome.destination)
            except StatusPersistError:
                with self._lock:
                    self._stats.status_write_failures += 1
                raise
            logger.info(f"Upload successful: {outcome.destination}")
            return outcome
        finally:
            with self._lock:
                self._in_flight.discard(path)

    def log_stats(self) -> None:
        """Log the statistics block emitted at shutdown."""
        stats = self.get_stats()
        logger.info("=== Watcher Statistics ===")
        logger.info(f"Uptime: {stats.uptime_seconds}s")
        logger.info(f"Files processed: {stats.files_processed}")
        logger.info(f"Files uploaded: {stats.files_uploaded}")
        logger.info(f"Files failed: {stats.files_failed}")
        if stats.status_write_failures:
            logger.info(f"Status write failures: {stats.status_write_failures}")
        logger.info("=========================")

    def log_stats_summary(self) -> None:
        """Log a one-line statistics summary."""
        stats = self.get_stats()
        logger.info(
            f"Stats - Processed: {stats.files_processed}, "
            f"Uploaded: {stats.files_uploaded}, Failed: {stats.files_failed}"
        )
