"""
Command-line interface for the camera ingestion watcher.
"""
import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError
from pymongo.errors import PyMongoError

from .config import WatcherConfig, load_config
from .coordinator import UploadCoordinator
from .monitor import FolderMonitor
from .tracker import StatusPersistError, UploadTracker, connect_record_store
from .uploader import S3Uploader, create_s3_client

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, level: str = 'INFO') -> None:
    """Configure logging for the application.

    Args:
        verbose: Whether to force debug logging
        level: Log level name used when not verbose
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_coordinator(config: WatcherConfig) -> UploadCoordinator:
    """Connect to MongoDB and S3 and wire up the upload coordinator.

    Args:
        config: Validated watcher configuration

    Returns:
        Configured UploadCoordinator instance
    """
    database = connect_record_store(config.mongo_uri)
    tracker = UploadTracker(database, collection_name=config.mongo_collection)
    tracker.ensure_indexes()

    s3_client = create_s3_client(
        region=config.aws_region,
        profile=config.aws_profile,
        endpoint_url=config.s3_endpoint_url,
        max_attempts=config.max_retry_attempts
    )
    uploader = S3Uploader(
        config.bucket,
        s3_client=s3_client,
        delete_after_upload=config.delete_after_upload
    )
    uploader.verify_bucket()

    monitor = FolderMonitor(
        Path(config.watch_dir),
        stability_threshold=config.stability_threshold_seconds,
        poll_interval=config.poll_interval_seconds
    )
    return UploadCoordinator(
        monitor,
        uploader,
        tracker,
        debounce_delay=config.debounce_seconds
    )


def handle_watch(coordinator: UploadCoordinator, stats_interval: int,
                 stop_event: Optional[threading.Event] = None) -> int:
    """Run the watcher until SIGINT or SIGTERM.

    Args:
        coordinator: Coordinator to run
        stats_interval: Seconds between statistics summaries, 0 disables them
        stop_event: Event ending the run; set by the signal handlers

    Returns:
        Process exit code
    """
    stop_event = stop_event or threading.Event()

    def request_stop(signum, frame):
        logger.info("Shutdown signal received")
        stop_event.set()

    previous = {
        sig: signal.signal(sig, request_stop)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        coordinator.start()
        while not stop_event.wait(stats_interval or None):
            coordinator.log_stats_summary()
    finally:
        coordinator.stop()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0


def handle_upload(coordinator: UploadCoordinator, files: List[Path]) -> int:
    """Ingest specific files once, without watching.

    Args:
        coordinator: Coordinator used to process each file
        files: Files to upload

    Returns:
        Process exit code, 1 if any file failed
    """
    failed = 0
    for file_path in files:
        try:
            outcome = coordinator.process(file_path.absolute())
        except StatusPersistError as e:
            logger.error(str(e))
            failed += 1
            continue
        if outcome is None or not outcome.success:
            failed += 1
        else:
            print(f"{file_path} -> {outcome.destination}")

    coordinator.log_stats_summary()
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Camera folder to S3 ingestion watcher")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="Enable verbose logging")
    parser.add_argument('-c', '--config', type=Path,
                        help="Path to JSON config file")

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('watch',
                          help="Watch the folder and upload new files")

    upload_parser = subparsers.add_parser('upload',
                                          help="Upload specific files once")
    upload_parser.add_argument('files', type=Path, nargs='+',
                               help="Files to upload")
    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, start up and run the requested command.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        setup_logging(args.verbose, config.log_level)
        config.validate()
    except (OSError, ValueError) as e:
        setup_logging(args.verbose)
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info("Camera watcher starting...")
    logger.info(f"Watch directory: {config.watch_dir}")
    logger.info(f"S3 bucket: {config.bucket}")
    logger.info(f"Delete after upload: {config.delete_after_upload}")

    try:
        coordinator = create_coordinator(config)
    except (PyMongoError, BotoCoreError, ClientError) as e:
        logger.error(f"Fatal error during startup: {e}")
        return 1

    if args.command == 'upload':
        return handle_upload(coordinator, args.files)

    try:
        return handle_watch(coordinator, config.stats_interval_s)
    except ValueError as e:
        logger.error(f"Fatal error: {e}")
        return 1


def main() -> None:
    """Main entry point for the CLI."""
    sys.exit(run())


if __name__ == '__main__':
    main()
