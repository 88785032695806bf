"""
BLAST subprocess runner.

``blastn`` is treated as a black box: the query goes in on stdin, BLAST XML
(``-outfmt 5``) comes out on stdout. Each hit's definition line is the
content hash the corpus was built with.
"""

from __future__ import annotations

import asyncio
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

import structlog

from seqharvest.config.config import BlastConfig
from seqharvest.dedup.hasher import is_content_hash
from seqharvest.errors import SearchToolFailure
from seqharvest.protocols import BlastReport, SearchHit

logger = structlog.get_logger(__name__)


def _text(element: Optional[ET.Element], path: str, default: str = "") -> str:
    if element is None:
        return default
    found = element.find(path)
    if found is None or found.text is None:
        return default
    return found.text.strip()


def _int(value: str) -> int:
    try:
        return int(float(value))
    except ValueError:
        return 0


def _float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _hit_hash(hit: ET.Element) -> str:
    """Pick the content hash out of a hit's definition line or id."""
    definition = _text(hit, "Hit_def")
    hit_id = _text(hit, "Hit_id")
    candidates = []
    if definition:
        candidates.append(definition.split()[0])
    if hit_id:
        candidates.append(hit_id.split("|")[-1])
    for candidate in candidates:
        if is_content_hash(candidate.lower()):
            return candidate.lower()
    return candidates[0] if candidates else ""


def parse_blast_xml(payload: bytes) -> BlastReport:
    """
    Parse ``-outfmt 5`` output into a report, keeping the first HSP of each hit.

    Raises:
        SearchToolFailure: output is not BLAST XML
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise SearchToolFailure(
            f"couldn't parse search output: {e}", output=payload[:2000].decode("utf-8", "replace")
        ) from e

    if root.tag != "BlastOutput":
        raise SearchToolFailure(f"unexpected search output root <{root.tag}>")

    report = BlastReport(
        version=_text(root, "BlastOutput_version"),
        reference=_text(root, "BlastOutput_reference"),
    )

    for iteration in root.iterfind("BlastOutput_iterations/Iteration"):
        db_num = _text(iteration, "Iteration_stat/Statistics/Statistics_db-num")
        if db_num:
            report.db_num = _int(db_num)

        for hit in iteration.iterfind("Iteration_hits/Hit"):
            hsp = hit.find("Hit_hsps/Hsp")
            report.hits.append(
                SearchHit(
                    content_hash=_hit_hash(hit),
                    score=_int(_text(hsp, "Hsp_score")),
                    bit_score=_float(_text(hsp, "Hsp_bit-score")),
                    evalue=_text(hsp, "Hsp_evalue"),
                    query_seq=_text(hsp, "Hsp_qseq"),
                    midline=_text(hsp, "Hsp_midline"),
                    hit_seq=_text(hsp, "Hsp_hseq"),
                )
            )

    return report


class BlastRunner:
    """Runs ``blastn`` against the prebuilt corpus."""

    def __init__(self, config: BlastConfig):
        self.config = config

    def command(self) -> List[str]:
        return [self.config.blastn_path, "-db", self.config.db_name, "-outfmt", "5"]

    def environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env["BLASTDB"] = os.path.expandvars(str(self.config.db_dir))
        return env

    async def search(self, sequence: str) -> BlastReport:
        """
        Run one query.

        stdin is written and closed by ``communicate`` inside the timeout, so
        a stuck tool cannot leave a writer behind.

        Raises:
            SearchToolFailure: spawn error, timeout, non-zero exit or bad output
        """
        cmd = self.command()
        logger.info("Running search tool", command=cmd[0], db=self.config.db_name, db_dir=str(self.config.db_dir))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.environment(),
            )
        except OSError as e:
            raise SearchToolFailure(f"couldn't start {cmd[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(sequence.encode("utf-8")), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            await terminate(process)
            raise SearchToolFailure(f"search timed out after {self.config.timeout_seconds}s") from e
        except asyncio.CancelledError:
            await terminate(process)
            raise

        if process.returncode != 0:
            error_output = stderr.decode("utf-8", "replace")
            logger.error("Search tool did not execute successfully", returncode=process.returncode, stderr=error_output)
            raise SearchToolFailure(
                f"{cmd[0]} exited with status {process.returncode}",
                output=error_output,
                returncode=process.returncode,
            )

        logger.debug("Search tool executed successfully", bytes=len(stdout))
        return parse_blast_xml(stdout)


async def terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
