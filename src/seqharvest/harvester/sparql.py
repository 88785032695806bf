"""
SPARQL upstream source.

Pages through every SBOL ComponentDefinition that has a sequence, oldest
first, using LIMIT/OFFSET over a sub-select ordered by creation time. The
stable ordering is what makes an integer offset a valid resume point.
"""

from __future__ import annotations

import asyncio
import time
import xml.etree.ElementTree as ET
from datetime import datetime
from string import Template
from typing import Dict, List, Optional

import aiohttp
import structlog

from seqharvest.config.config import UpstreamConfig
from seqharvest.errors import MalformedRecord, UpstreamUnavailable
from seqharvest.observability import histogram
from seqharvest.protocols import SourceRecord

logger = structlog.get_logger(__name__)

# Scrollable cursor pattern: the ORDER BY lives in the sub-select so that the
# outer LIMIT/OFFSET slices a stable sequence.
QUERY_TEMPLATE = Template(
    """
PREFIX dcterms: <http://purl.org/dc/terms/>
PREFIX sbol: <http://sbols.org/v2#>

SELECT
    ?uri
    ?elements
    ?created
WHERE {
    {
        SELECT
            ?uri
            ?elements
            ?created
        WHERE {
            ?uri a sbol:ComponentDefinition .
            ?uri sbol:sequence ?sequenceUri .
            ?sequenceUri sbol:elements ?elements .
            ?uri dcterms:created ?created .
        } ORDER BY ASC(str(?created))
    }
}
LIMIT $limit OFFSET $offset
"""
)

REQUIRED_BINDINGS = ("uri", "elements", "created")


def render_query(limit: int, offset: int) -> str:
    if limit <= 0:
        raise ValueError("limit must be positive")
    if offset < 0:
        raise ValueError("offset must not be negative")
    return QUERY_TEMPLATE.substitute(limit=int(limit), offset=int(offset))


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned for ``dcterms:created``."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _result_bindings(result: ET.Element) -> Dict[str, str]:
    """Collect ``name -> text`` for the bindings of one SPARQL result."""
    values: Dict[str, str] = {}
    for binding in result:
        if _local_name(binding.tag) != "binding":
            continue
        name = binding.get("name")
        if not name:
            continue
        # The single child is <uri>, <literal> or <bnode>
        value = next(iter(binding), None)
        values[name] = (value.text or "") if value is not None else ""
    return values


def parse_sparql_results(payload: bytes) -> List[SourceRecord]:
    """
    Decode a SPARQL Query Results XML document into source records.

    Raises:
        UpstreamUnavailable: payload is not a SPARQL results document
        MalformedRecord: a result lacks uri, elements or created, or has an
            unparseable creation time
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise UpstreamUnavailable(f"couldn't parse xml: {e}") from e

    if _local_name(root.tag) != "sparql":
        raise UpstreamUnavailable(f"unexpected document root <{_local_name(root.tag)}>")

    results = [el for el in root.iter() if _local_name(el.tag) == "result"]

    records: List[SourceRecord] = []
    for position, result in enumerate(results):
        values = _result_bindings(result)
        for name in REQUIRED_BINDINGS:
            if not values.get(name, "").strip():
                raise MalformedRecord(name, position)

        try:
            created_at = parse_timestamp(values["created"])
        except ValueError as e:
            raise MalformedRecord("created", position, str(e)) from e

        records.append(
            SourceRecord(
                identifier=values["uri"].strip(),
                raw_sequence=values["elements"],
                created_at=created_at,
            )
        )

    return records


class SparqlSource:
    """Fetches and parses pages of component definitions from a SPARQL endpoint."""

    def __init__(self, config: UpstreamConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.session = session
        self._owns_session = session is None

    async def initialize(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                headers={"User-Agent": self.config.user_agent},
            )
            self._owns_session = True

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None

    async def fetch_page(self, limit: int, offset: int) -> bytes:
        """
        POST the paginated query and return the raw response body.

        Raises:
            UpstreamUnavailable: on connection errors, timeouts or HTTP errors
        """
        if self.session is None:
            await self.initialize()
        assert self.session is not None

        form = {"query": render_query(limit, offset), "graph": self.config.graph}
        headers = {"Accept": "*/*"}

        start = time.monotonic()
        logger.info("Fetching page from upstream", url=self.config.url, limit=limit, offset=offset)
        try:
            async with self.session.post(self.config.url, data=form, headers=headers) as response:
                body = await response.read()
                if response.status >= 400:
                    raise UpstreamUnavailable(
                        f"upstream returned HTTP {response.status}: {body[:200]!r}", offset=offset
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"couldn't make request: {e!r}", offset=offset) from e
        finally:
            histogram("fetch_latency_seconds", time.monotonic() - start)

        logger.debug("Fetched page", offset=offset, bytes=len(body))
        return body

    def parse_page(self, payload: bytes) -> List[SourceRecord]:
        return parse_sparql_results(payload)
