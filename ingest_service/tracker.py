"""
Module for persisting upload status records in MongoDB.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_log,
    after_log
)

logger = logging.getLogger(__name__)

STATUS_UPLOADED = 'uploaded'


class StatusPersistError(Exception):
    """Raised when an upload status record could not be written."""


def is_retryable_error(exception: BaseException) -> bool:
    """Check if a record store error should trigger a reconnect attempt.

    Args:
        exception: The exception to check

    Returns:
        True if the error is a connection-level failure
    """
    return isinstance(exception, (ConnectionFailure, ServerSelectionTimeoutError))


@retry(
    retry=retry_if_exception(is_retryable_error),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before=before_log(logger, logging.DEBUG),
    after=after_log(logger, logging.WARNING),
    reraise=True
)
def _ping(client: MongoClient) -> None:
    client.admin.command('ping')


def connect_record_store(uri: str, server_selection_timeout_ms: int = 5000,
                         client_factory: Callable[..., MongoClient] = MongoClient) -> Database:
    """Connect to MongoDB and return the database named in the URI.

    The connection is verified with a ``ping``; connection failures are
    retried a bounded number of times before propagating.

    Args:
        uri: MongoDB connection string including the database name
        server_selection_timeout_ms: Per-attempt server selection timeout
        client_factory: Callable building the client (MongoClient by default)

    Returns:
        pymongo Database handle
    """
    client = client_factory(
        uri,
        maxPoolSize=10,
        serverSelectionTimeoutMS=server_selection_timeout_ms,
        tz_aware=True
    )
    logger.info("Connecting to MongoDB...")
    _ping(client)
    logger.info("MongoDB connected")
    return client.get_default_database(default='camera_ingest')


class UploadTracker:
    """Records which files have been uploaded, one document per file name."""

    def __init__(self, database: Database, collection_name: str = 'files',
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize the upload tracker.

        Args:
            database: Database handle created at startup
            collection_name: Name of the collection holding status records
            clock: Source of record timestamps, UTC now by default
        """
        self.collection = database[collection_name]
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ensure_indexes(self) -> None:
        """Create the unique file name index used by the upsert."""
        self.collection.create_index([('fileName', ASCENDING)], unique=True)

    def mark_uploaded(self, file_name: str, destination: str) -> None:
        """Insert or update the status record for a file.

        ``createdAt`` is only set on insert; destination, status and
        ``uploadedAt`` are overwritten on every call.

        Args:
            file_name: Base name of the uploaded file
            destination: Storage URI the file was written to

        Raises:
            StatusPersistError: If the record store rejects the write
        """
        now = self._clock()
        try:
            self.collection.update_one(
                {'fileName': file_name},
                {
                    '$setOnInsert': {'createdAt': now},
                    '$set': {
                        'storagePath': destination,
                        'status': STATUS_UPLOADED,
                        'uploadedAt': now,
                    },
                },
                upsert=True
            )
        except PyMongoError as e:
            raise StatusPersistError(
                f"Could not record upload of {file_name}: {e}"
            ) from e
        logger.debug(f"Marked {file_name} as uploaded ({destination})")

    def get_record(self, file_name: str) -> Optional[Dict[str, Any]]:
        """Return the status record for a file name, if any."""
        return self.collection.find_one({'fileName': file_name}, {'_id': False})
