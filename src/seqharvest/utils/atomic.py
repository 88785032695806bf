"""
Atomic file writing utilities.

Files are written to a temporary sibling, flushed and fsynced, then renamed
into place so readers never observe a partially written file.
"""

import os
import tempfile
import time
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


def atomic_write_text(target_path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Atomically write text content to a file.

    Args:
        target_path: Target file path to write to
        content: Text content to write
        encoding: Text encoding to use (default: utf-8)

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    temp_file_path = None

    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=target_path.parent,
            prefix=f".{target_path.name}.",
            suffix=".tmp",
            delete=False,
            encoding=encoding,
        ) as temp_file:
            temp_file_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        # os.replace is atomic when source and target share a filesystem
        os.replace(str(temp_file_path), str(target_path))
        logger.debug("Atomic write completed", target=str(target_path))

    except Exception as e:
        if temp_file_path and temp_file_path.exists():
            try:
                temp_file_path.unlink()
            except OSError as cleanup_error:
                logger.warning(
                    "Failed to clean up temporary file", temp_file=str(temp_file_path), error=str(cleanup_error)
                )
        if isinstance(e, OSError):
            raise
        raise OSError(f"Failed to atomically write {target_path}: {e}") from e


def remove_stale_temp_files(dir_: Path, max_age_seconds: float = 3600) -> int:
    """
    Remove temporary files left behind by interrupted atomic writes.

    Args:
        dir_: Directory to clean
        max_age_seconds: Only files older than this are removed

    Returns:
        Number of files removed
    """
    removed = 0
    current_time = time.time()
    for temp_file in Path(dir_).glob(".*.tmp"):
        try:
            if temp_file.is_file() and current_time - temp_file.stat().st_mtime > max_age_seconds:
                temp_file.unlink()
                removed += 1
                logger.debug("Removed stale temp file", path=str(temp_file))
        except OSError as e:
            logger.debug("Could not remove stale temp file", path=str(temp_file), error=str(e))
    return removed
