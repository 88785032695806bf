"""
Search corpus build trigger.

Streams every stored sequence file into ``makeblastdb`` on stdin. The build
itself belongs to the search tool; this module only starts it against the
current contents of the sequence store.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import structlog

from seqharvest.config.config import BlastConfig
from seqharvest.errors import SearchToolFailure
from seqharvest.search.blast import terminate
from seqharvest.storage.sequence_store import SequenceStore

logger = structlog.get_logger(__name__)


@dataclass
class CorpusBuildResult:
    db_path: Path
    title: str
    sequence_files: int
    duration_seconds: float
    output: str = ""


class CorpusBuilder:
    """Builds the search tool's database from the sequence store."""

    def __init__(self, config: BlastConfig, sequence_store: SequenceStore):
        self.config = config
        self.sequence_store = sequence_store

    @property
    def db_path(self) -> Path:
        return Path(self.config.db_dir) / self.config.db_name

    def title(self, generated_at: Optional[datetime] = None) -> str:
        generated_at = generated_at or datetime.now(timezone.utc)
        return f"{self.config.db_name} (generated {generated_at.isoformat(timespec='seconds')})"

    def command(self, title: str) -> List[str]:
        return [
            self.config.makeblastdb_path,
            "-dbtype",
            "nucl",
            "-title",
            title,
            "-out",
            str(self.db_path),
            "-in",
            "-",
        ]

    async def _feed(self, process: asyncio.subprocess.Process) -> int:
        assert process.stdin is not None
        loop = asyncio.get_running_loop()
        count = 0
        try:
            for path in self.sequence_store.iter_files():
                data = await loop.run_in_executor(None, path.read_bytes)
                process.stdin.write(data)
                await process.stdin.drain()
                count += 1
        finally:
            process.stdin.close()
        return count

    async def _run(self, process: asyncio.subprocess.Process) -> tuple[int, bytes, bytes]:
        assert process.stdout is not None and process.stderr is not None
        # Drain output while feeding so a chatty tool cannot block on a full pipe
        stdout_task = asyncio.ensure_future(process.stdout.read())
        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            count = await self._feed(process)
            stdout, stderr = await asyncio.gather(stdout_task, stderr_task)
        except (BrokenPipeError, ConnectionResetError) as e:
            await process.wait()
            stderr = await stderr_task
            raise SearchToolFailure(
                f"corpus build tool closed its input early: {e}",
                output=stderr.decode("utf-8", "replace"),
                returncode=process.returncode,
            ) from e
        finally:
            for task in (stdout_task, stderr_task):
                task.cancel()
        await process.wait()
        return count, stdout, stderr

    async def build(self) -> CorpusBuildResult:
        """
        Run ``makeblastdb`` over every sequence file.

        Raises:
            SearchToolFailure: spawn error, timeout or non-zero exit
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: Path(self.config.db_dir).mkdir(parents=True, exist_ok=True))

        title = self.title()
        cmd = self.command(title)
        logger.info("Building search corpus", db_path=str(self.db_path), source=str(self.sequence_store.root))

        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SearchToolFailure(f"couldn't start {cmd[0]}: {e}") from e

        try:
            count, stdout, stderr = await asyncio.wait_for(
                self._run(process), timeout=self.config.build_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            await terminate(process)
            raise SearchToolFailure(f"corpus build timed out after {self.config.build_timeout_seconds}s") from e

        if process.returncode != 0:
            raise SearchToolFailure(
                f"{cmd[0]} exited with status {process.returncode}",
                output=stderr.decode("utf-8", "replace"),
                returncode=process.returncode,
            )

        duration = time.monotonic() - start
        logger.info("Search corpus built", db_path=str(self.db_path), sequence_files=count, duration_seconds=duration)
        return CorpusBuildResult(
            db_path=self.db_path,
            title=title,
            sequence_files=count,
            duration_seconds=duration,
            output=stdout.decode("utf-8", "replace"),
        )
