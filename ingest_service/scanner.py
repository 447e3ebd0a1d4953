"""
Module for scanning the watched folder for files already present.
"""
import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def is_hidden(path: Path) -> bool:
    """Dot-prefixed entries are never ingested."""
    return path.name.startswith('.')


class FileScanner:
    """Lists the regular, non-hidden files directly inside a folder."""

    def scan_folder(self, folder: Path, pattern: str = "*") -> List[Path]:
        """Scan a folder (non-recursively) for files matching the pattern.

        Args:
            folder: Path to the folder to scan
            pattern: Glob pattern to match files against

        Returns:
            Sorted list of absolute file paths found
        """
        if not folder.exists():
            logger.error(f"Folder does not exist: {folder}")
            return []

        try:
            return sorted(
                p.absolute() for p in folder.glob(pattern)
                if p.is_file() and not is_hidden(p)
            )
        except OSError as e:
            logger.error(f"Error scanning folder {folder}: {e}")
            return []
