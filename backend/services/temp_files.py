"""
Temporary audio file management.

Every conversion writes to a fresh, unpredictable path in the system temp
directory. The path is used for exactly one attempt and is removed exactly
once when the request reaches a terminal state.
"""

import glob
import secrets
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import structlog

from config import settings

logger = structlog.get_logger()

def new_temp_path(extension: str, prefix: Optional[str] = None, temp_dir: Optional[str] = None) -> Path:
    """
    Generate a collision-resistant temp path.

    Args:
        extension: File extension (internal constant, never user input)
        prefix: Filename prefix (defaults to settings.TEMP_FILE_PREFIX)
        temp_dir: Directory override (defaults to the system temp dir)

    Returns:
        Path like /tmp/soundcloud-<32 hex chars>.wav
    """
    unique_id = secrets.token_hex(16)  # 128 bits
    directory = Path(temp_dir or tempfile.gettempdir())
    return directory / f"{prefix or settings.TEMP_FILE_PREFIX}-{unique_id}.{extension}"


def remove_temp_file(path: Union[str, Path]) -> bool:
    """
    Best-effort delete. A missing file is not an error.

    Returns:
        True if a file was deleted, False otherwise
    """
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("temp_file_cleanup_failed", path=str(path), error=str(e))
        return False

    logger.info("temp_file_removed", path=str(path))
    return True


def remove_side_files(path: Union[str, Path]) -> int:
    """
    Delete yt-dlp by-products of an output path.

    yt-dlp downloads to "<path>.part" and, while extracting or embedding
    artwork, leaves files such as "<stem>.orig.webm", "<stem>.temp.flac"
    or "<stem>.webp" next to the output. The output path itself is untouched.

    Returns:
        Number of files removed
    """
    path = Path(path)
    candidates = set(path.parent.glob(glob.escape(path.name) + "*"))
    candidates.update(path.parent.glob(glob.escape(path.stem) + ".*"))
    candidates.discard(path)

    removed = 0
    for candidate in sorted(candidates):
        if candidate.is_file() and remove_temp_file(candidate):
            removed += 1
    return removed


@dataclass
class TempAudioFile:
    """On-disk artifact produced by yt-dlp for one request."""

    path: Path
    format: str
    size_bytes: int = 0
    _removed: bool = field(default=False, repr=False)

    @property
    def removed(self) -> bool:
        return self._removed

    def stat_size(self) -> int:
        """
        Refresh and return size_bytes.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        self.size_bytes = self.path.stat().st_size
        return self.size_bytes

    def remove(self) -> bool:
        """Delete the file. Only the first call attempts a delete."""
        if self._removed:
            return False
        self._removed = True
        return remove_temp_file(self.path)

    def remove_side_files(self) -> int:
        return remove_side_files(self.path)


def sweep_stale_temp_files(
    max_age_seconds: Optional[int] = None,
    prefix: Optional[str] = None,
    temp_dir: Optional[str] = None,
) -> int:
    """
    Remove conversion leftovers (e.g. from a crashed worker) older than max_age_seconds.

    Returns:
        Number of files removed
    """
    max_age = settings.STALE_TEMP_FILE_MAX_AGE_SECONDS if max_age_seconds is None else max_age_seconds
    directory = Path(temp_dir or tempfile.gettempdir())
    cutoff = time.time() - max_age
    removed = 0

    # Matches outputs and their by-products (.part, .orig.*, thumbnails)
    for candidate in directory.glob(f"{glob.escape(prefix or settings.TEMP_FILE_PREFIX)}-*"):
        try:
            if not candidate.is_file() or candidate.stat().st_mtime > cutoff:
                continue
        except OSError:
            continue
        if remove_temp_file(candidate):
            removed += 1

    if removed:
        logger.info("stale_temp_files_swept", count=removed, directory=str(directory))
    return removed
