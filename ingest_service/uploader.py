"""
Module for uploading ingested files to S3.
"""
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import quote

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config

from .models import UploadOutcome

logger = logging.getLogger(__name__)

CONTENT_TYPES: Dict[str, str] = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.bmp': 'image/bmp',
    '.mp4': 'video/mp4',
    '.avi': 'video/x-msvideo',
}

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

_SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB']


def get_content_type(file_name: str) -> str:
    """Resolve a MIME type from the file extension (case-insensitive)."""
    return CONTENT_TYPES.get(Path(file_name).suffix.lower(), DEFAULT_CONTENT_TYPE)


def build_destination_key(file_name: str, when: datetime) -> str:
    """Build the storage key for a file ingested at ``when``.

    Keys are grouped by ingestion date, not by capture date:
    ``YYYY/MM/DD/<file_name>``.
    """
    return f"{when.year:04d}/{when.month:02d}/{when.day:02d}/{file_name}"


def format_bytes(size: int) -> str:
    """Format a byte count for log output, e.g. ``1536 -> '1.5 KB'``."""
    if size <= 0:
        return '0 Bytes'
    index = 0
    while index < len(_SIZE_UNITS) - 1 and size >= 1024 ** (index + 1):
        index += 1
    value = round(size / (1024 ** index), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[index]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_s3_client(region: Optional[str] = None,
                     profile: Optional[str] = None,
                     endpoint_url: Optional[str] = None,
                     max_attempts: int = 5):
    """Create an S3 client with botocore-managed retries.

    Args:
        region: Optional AWS region
        profile: Optional named AWS profile
        endpoint_url: Optional S3-compatible endpoint (e.g. MinIO)
        max_attempts: Total attempts per request, including the first

    Returns:
        boto3 S3 client
    """
    session = boto3.session.Session(profile_name=profile, region_name=region)
    return session.client(
        's3',
        endpoint_url=endpoint_url,
        config=Config(retries={'max_attempts': max_attempts, 'mode': 'standard'})
    )


class S3Uploader:
    """Uploads single files to an S3 bucket under date-based keys."""

    def __init__(self, bucket: str, s3_client=None,
                 delete_after_upload: bool = False,
                 chunk_size: int = 8 * 1024 * 1024,
                 clock: Callable[[], datetime] = _utcnow):
        """Initialize the S3 uploader.

        Args:
            bucket: Destination bucket name
            s3_client: boto3 S3 client; a default client is created if omitted
            delete_after_upload: Remove the local file after a successful upload
            chunk_size: Multipart threshold and part size in bytes
            clock: Source of the ingestion time used for keys and metadata
        """
        self.bucket = bucket
        self.s3_client = s3_client or boto3.client('s3')
        self.delete_after_upload = delete_after_upload
        self.chunk_size = chunk_size
        self.transfer_config = TransferConfig(
            multipart_threshold=chunk_size,
            multipart_chunksize=chunk_size
        )
        self._clock = clock
        logger.info(f"S3Uploader initialized for bucket: {bucket}")

    def destination_uri(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def verify_bucket(self) -> None:
        """Check that the bucket exists and is reachable.

        Raises:
            ClientError: If the bucket is missing or access is denied
            BotoCoreError: If the endpoint cannot be reached
        """
        self.s3_client.head_bucket(Bucket=self.bucket)

    def upload(self, source_path) -> UploadOutcome:
        """Upload one file and report the result.

        Validation and storage errors are captured in the returned outcome,
        never raised.

        Args:
            source_path: Path to the local file

        Returns:
            UploadOutcome describing the attempt
        """
        started = time.monotonic()
        source_path = Path(source_path)
        file_name = source_path.name
        now = self._clock()
        key = build_destination_key(file_name, now)
        destination = self.destination_uri(key)

        def failure(message: str, size_bytes: Optional[int] = None) -> UploadOutcome:
            logger.error(f"Failed to upload {file_name}: {message}")
            return UploadOutcome(
                success=False,
                source_path=source_path,
                destination=destination,
                uploaded_at=now,
                error=message,
                size_bytes=size_bytes
            )

        logger.debug(f"Starting upload: {source_path} -> {destination}")

        if not source_path.exists():
            return failure(f"File does not exist: {source_path}")
        if not source_path.is_file():
            return failure(f"Not a file: {source_path}")

        try:
            size_bytes = source_path.stat().st_size
            self.s3_client.upload_file(
                str(source_path),
                self.bucket,
                key,
                ExtraArgs={
                    'ContentType': get_content_type(file_name),
                    # S3 user metadata must be ASCII
                    'Metadata': {
                        'uploadedAt': now.isoformat(),
                        'originalPath': quote(str(source_path)),
                    },
                },
                Config=self.transfer_config
            )
        except Exception as e:
            return failure(str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Uploaded {file_name} in {duration_ms}ms ({format_bytes(size_bytes)})")

        if self.delete_after_upload:
            self._delete_local(source_path)

        return UploadOutcome(
            success=True,
            source_path=source_path,
            destination=destination,
            uploaded_at=now,
            size_bytes=size_bytes
        )

    def _delete_local(self, source_path: Path) -> None:
        try:
            source_path.unlink()
            logger.debug(f"Deleted local file: {source_path}")
        except OSError as e:
            # e.g. a read-only FTP drop directory
            logger.warning(f"Could not delete local file {source_path}: {e}")
