"""
Tests for the SPARQL upstream source: query rendering, result parsing and
HTTP fetching.
"""

import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from seqharvest.errors import MalformedRecord, UpstreamUnavailable
from seqharvest.harvester.sparql import SparqlSource, parse_sparql_results, parse_timestamp, render_query
from seqharvest.observability import METRICS
from yarl import URL

from tests.helpers import histogram_observes, sparql_results

ENDPOINT = "http://sparql.test/sparql"


@pytest.mark.unit
class TestRenderQuery:
    def test_limit_and_offset(self):
        query = render_query(100, 2500)
        assert "LIMIT 100 OFFSET 2500" in query
        assert "ORDER BY ASC(str(?created))" in query
        assert "sbol:ComponentDefinition" in query

    @pytest.mark.parametrize("limit, offset", [(0, 0), (-1, 0), (10, -1)])
    def test_rejects_invalid_paging(self, limit, offset):
        with pytest.raises(ValueError):
            render_query(limit, offset)


@pytest.mark.unit
class TestParseResults:
    def test_parses_records_in_document_order(self):
        payload = sparql_results(
            [
                ("https://example.org/public/a/1", "ACGT", "2017-01-01T00:00:00Z"),
                ("https://example.org/public/b/1", "acgt", "2017-01-02T00:00:00.000Z"),
            ]
        )
        records = parse_sparql_results(payload)

        assert [r.identifier for r in records] == [
            "https://example.org/public/a/1",
            "https://example.org/public/b/1",
        ]
        assert records[0].raw_sequence == "ACGT"
        assert records[0].created_at == datetime(2017, 1, 1, tzinfo=timezone.utc)

    def test_sequence_whitespace_is_kept(self):
        records = parse_sparql_results(sparql_results([("u1", "ACGT\n", "2017-01-01T00:00:00Z")]))
        assert records[0].raw_sequence == "ACGT\n"

    def test_empty_results(self):
        assert parse_sparql_results(sparql_results([])) == []

    @pytest.mark.parametrize(
        "row, field",
        [
            ((None, "acgt", "2017-01-01T00:00:00Z"), "uri"),
            (("https://example.org/a", None, "2017-01-01T00:00:00Z"), "elements"),
            (("https://example.org/a", "acgt", None), "created"),
            (("https://example.org/a", "   ", "2017-01-01T00:00:00Z"), "elements"),
        ],
    )
    def test_missing_binding(self, row, field):
        good = ("https://example.org/ok", "acgt", "2017-01-01T00:00:00Z")
        with pytest.raises(MalformedRecord) as exc_info:
            parse_sparql_results(sparql_results([good, row]))
        assert exc_info.value.field == field
        assert exc_info.value.position == 1

    def test_bad_timestamp(self):
        payload = sparql_results([("https://example.org/a", "acgt", "yesterday")])
        with pytest.raises(MalformedRecord) as exc_info:
            parse_sparql_results(payload)
        assert exc_info.value.field == "created"

    def test_not_xml(self):
        with pytest.raises(UpstreamUnavailable):
            parse_sparql_results(b"<html><body>Bad gateway")

    def test_wrong_document(self):
        with pytest.raises(UpstreamUnavailable):
            parse_sparql_results(b"<html><body>Bad gateway</body></html>")

    def test_timestamp_offsets(self):
        assert parse_timestamp("2017-01-01T10:00:00+02:00") == datetime(2017, 1, 1, 8, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def source(config):
    config.upstream.url = ENDPOINT
    sparql = SparqlSource(config.upstream)
    await sparql.initialize()
    yield sparql
    await sparql.close()


@pytest.mark.unit
class TestFetchPage:
    @pytest.mark.asyncio
    async def test_posts_query_and_graph(self, source):
        payload = sparql_results([("https://example.org/a", "acgt", "2017-01-01T00:00:00Z")])
        with aioresponses() as m:
            m.post(ENDPOINT, status=200, body=payload)
            with histogram_observes(METRICS["fetch_latency_seconds"]):
                body = await source.fetch_page(limit=3, offset=6)

            request = m.requests[("POST", URL(ENDPOINT))][0]

        assert body == payload
        assert "LIMIT 3 OFFSET 6" in request.kwargs["data"]["query"]
        assert request.kwargs["data"]["graph"] == "public"
        assert len(source.parse_page(body)) == 1

    @pytest.mark.asyncio
    async def test_http_error(self, source):
        with aioresponses() as m:
            m.post(ENDPOINT, status=503, body="overloaded")
            with pytest.raises(UpstreamUnavailable) as exc_info:
                await source.fetch_page(limit=3, offset=0)
        assert "503" in str(exc_info.value)
        assert exc_info.value.offset == 0

    @pytest.mark.asyncio
    async def test_connection_error(self, source):
        with aioresponses() as m:
            m.post(ENDPOINT, exception=aiohttp.ClientConnectionError("refused"))
            with pytest.raises(UpstreamUnavailable):
                await source.fetch_page(limit=3, offset=9)

    @pytest.mark.asyncio
    async def test_timeout(self, source):
        with aioresponses() as m:
            m.post(ENDPOINT, exception=asyncio.TimeoutError())
            with pytest.raises(UpstreamUnavailable):
                await source.fetch_page(limit=3, offset=0)

    @pytest.mark.asyncio
    async def test_lazily_opens_session(self, config):
        config.upstream.url = ENDPOINT
        sparql = SparqlSource(config.upstream)
        try:
            with aioresponses() as m:
                m.post(ENDPOINT, status=200, body=sparql_results([]))
                assert sparql.parse_page(await sparql.fetch_page(limit=3, offset=0)) == []
        finally:
            await sparql.close()
        assert sparql.session is None
