"""
Module for loading and validating the watcher configuration.
"""
import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# field name -> environment variable
ENV_VARS = {
    'watch_dir': 'WATCH_DIR',
    'bucket': 'S3_BUCKET',
    'aws_region': 'AWS_REGION',
    'aws_profile': 'AWS_PROFILE',
    's3_endpoint_url': 'S3_ENDPOINT_URL',
    'mongo_uri': 'MONGO_URI',
    'mongo_collection': 'MONGO_COLLECTION',
    'delete_after_upload': 'DELETE_AFTER_UPLOAD',
    'debounce_ms': 'DEBOUNCE_TIME',
    'stability_threshold_ms': 'STABILITY_THRESHOLD',
    'poll_interval_ms': 'POLL_INTERVAL',
    'stats_interval_s': 'STATS_INTERVAL',
    'max_retry_attempts': 'S3_MAX_ATTEMPTS',
    'log_level': 'LOG_LEVEL',
}

_INT_FIELDS = {
    'debounce_ms',
    'stability_threshold_ms',
    'poll_interval_ms',
    'stats_interval_s',
    'max_retry_attempts',
}

_TRUE_VALUES = {'true', '1', 'yes', 'on'}


@dataclass
class WatcherConfig:
    """Settings for the camera ingestion watcher."""
    watch_dir: str = '/watch-dir'
    bucket: str = ''
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    mongo_uri: str = ''
    mongo_collection: str = 'files'
    delete_after_upload: bool = False
    debounce_ms: int = 2000
    stability_threshold_ms: int = 2000
    poll_interval_ms: int = 100
    stats_interval_s: int = 300
    max_retry_attempts: int = 5
    log_level: str = 'INFO'

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def stability_threshold_seconds(self) -> float:
        return self.stability_threshold_ms / 1000.0

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    def validate(self) -> None:
        """Fail fast on settings the watcher cannot run without.

        Raises:
            ValueError: If a required setting is empty or a number is negative
        """
        if not self.bucket:
            raise ValueError("S3_BUCKET environment variable is required")
        if not self.watch_dir:
            raise ValueError("WATCH_DIR environment variable is required")
        if not self.mongo_uri:
            raise ValueError("MONGO_URI environment variable is required")
        for name in sorted(_INT_FIELDS):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be at least 1")


def _coerce(name: str, value: Any, source: str) -> Any:
    if name == 'delete_after_upload':
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES
    if name in _INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{source} must be an integer, got {value!r}") from None
    return value


def load_config_file(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration values from a JSON file.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of configuration values
    """
    if not config_file:
        return {}

    with open(config_file) as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_file} must contain a JSON object")
    return data


def load_config(config_file: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None,
                use_dotenv: bool = True) -> WatcherConfig:
    """Build the watcher configuration.

    Values are layered: dataclass defaults, then the JSON config file,
    then environment variables.

    Args:
        config_file: Optional JSON file keyed by field name
        environ: Environment mapping, defaults to os.environ
        use_dotenv: Whether to load a local .env file first

    Returns:
        WatcherConfig instance (not yet validated)
    """
    if use_dotenv and environ is None:
        load_dotenv()
    env = os.environ if environ is None else environ

    known = {f.name for f in fields(WatcherConfig)}
    values: Dict[str, Any] = {}

    for key, value in load_config_file(config_file).items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        values[key] = _coerce(key, value, key)

    for name, var in ENV_VARS.items():
        if var in env and env[var] != '':
            values[name] = _coerce(name, env[var], var)

    return WatcherConfig(**values)
