"""
Content-addressed FASTA file store.

Each unique sequence lives in ``{fasta_dir}/{hash}.fasta`` as a single FASTA
record whose definition line is the content hash, so the search tool reports
hits by hash. Files are written once and never modified or deleted.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterator

import structlog

from seqharvest.config.config import StorageConfig
from seqharvest.errors import StoreWriteFailed
from seqharvest.utils.atomic import atomic_write_text, remove_stale_temp_files

logger = structlog.get_logger(__name__)

FASTA_SUFFIX = ".fasta"


def format_fasta(content_hash: str, normalized_sequence: str) -> str:
    return f">{content_hash}\n{normalized_sequence}\n"


class SequenceStore:
    """Durable mapping from content hash to normalized sequence."""

    def __init__(self, config: StorageConfig):
        self.root = Path(config.fasta_dir)

        # Statistics
        self._files_written = 0
        self._writes_skipped = 0

    async def initialize(self) -> None:
        """Create the store directory and clear temp files from interrupted writes."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self.root.mkdir(parents=True, exist_ok=True))
        except OSError as e:
            raise StoreWriteFailed(f"couldn't create sequence directory {self.root}: {e}") from e

        removed = await loop.run_in_executor(None, remove_stale_temp_files, self.root)
        logger.info("Sequence store ready", path=str(self.root), stale_temp_files_removed=removed)

    def path_for(self, content_hash: str) -> Path:
        return self.root / f"{content_hash}{FASTA_SUFFIX}"

    async def exists(self, content_hash: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.path_for(content_hash).is_file)

    async def write_if_absent(self, content_hash: str, normalized_sequence: str) -> bool:
        """
        Persist a sequence under its hash unless a file is already there.

        Two writers racing on the same hash write identical bytes through an
        atomic rename, so the outcome is the same whichever wins.

        Returns:
            True if a new file was written, False if it already existed
        """
        if await self.exists(content_hash):
            self._writes_skipped += 1
            return False

        path = self.path_for(content_hash)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, atomic_write_text, path, format_fasta(content_hash, normalized_sequence)
            )
        except OSError as e:
            logger.error("Couldn't write sequence file", path=str(path), error=str(e))
            raise StoreWriteFailed(f"couldn't write file {path}: {e}") from e

        self._files_written += 1
        logger.debug("Wrote sequence file", content_hash=content_hash, path=str(path))
        return True

    def iter_files(self) -> Iterator[Path]:
        """Yield every sequence file in hash order."""
        if not self.root.is_dir():
            return
        yield from sorted(self.root.glob(f"*{FASTA_SUFFIX}"))

    def count(self) -> int:
        return sum(1 for _ in self.iter_files())

    def get_stats(self) -> dict:
        return {
            "path": str(self.root),
            "files_written": self._files_written,
            "writes_skipped": self._writes_skipped,
        }
