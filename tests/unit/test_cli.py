"""
Tests for the command-line interface.

Commands run against fakeredis, aioresponses and shell-script stand-ins for
the BLAST tools; the container factory is patched to inject the fake client.
"""

import json
import logging
from unittest.mock import patch

import fakeredis
import fakeredis.aioredis
import pytest
import structlog
from aioresponses import aioresponses
from click.testing import CliRunner
from seqharvest.cli import cli
from seqharvest.container import DependencyContainer
from seqharvest.dedup.hasher import content_hash

from tests.helpers import blast_xml, fake_blastn, fake_makeblastdb, sparql_results

ENDPOINT = "http://sparql.test/sparql"


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)
    structlog.reset_defaults()


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def config_file(tmp_path):
    blastn = fake_blastn(tmp_path / "blastn", blast_xml([(content_hash("acgt"), 40.0, "1e-8")]))
    makeblastdb = fake_makeblastdb(tmp_path / "makeblastdb")
    path = tmp_path / "seqharvest.yaml"
    path.write_text(
        "upstream:\n"
        f"  url: {ENDPOINT}\n"
        "  result_limit: 3\n"
        "storage:\n"
        f"  fasta_dir: {tmp_path / 'fastas'}\n"
        "blast:\n"
        f"  db_dir: {tmp_path / 'blastdbs'}\n"
        f"  blastn_path: {blastn}\n"
        f"  makeblastdb_path: {makeblastdb}\n"
    )
    return path


@pytest.fixture
def run(config_file, fake_server):
    """Invoke the CLI with a container bound to the fake Redis server."""

    def make_container(config):
        client = fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)
        return DependencyContainer(config, redis_client=client)

    def _run(*args):
        with patch("seqharvest.cli.DependencyContainer", side_effect=make_container):
            return CliRunner().invoke(cli, ["--config", str(config_file), "--log-level", "ERROR", *args], obj={})

    return _run


@pytest.mark.unit
class TestCli:
    def test_help_lists_commands(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("harvest", "serve", "search", "build-corpus", "status"):
            assert command in result.output

    def test_harvest_then_status(self, run, tmp_path):
        page = sparql_results(
            [
                ("u1", "ACGT", "2017-01-01T00:00:00Z"),
                ("u2", "acgt", "2017-01-01T00:00:01Z"),
            ]
        )
        with aioresponses() as m:
            m.post(ENDPOINT, status=200, body=page)
            result = run("harvest", "--max-cycles", "1")

        assert result.exit_code == 0, result.output
        assert "Completed 1 harvest cycle(s)" in result.output
        assert (tmp_path / "fastas" / f"{content_hash('acgt')}.fasta").is_file()

        status = run("status")
        assert status.exit_code == 0, status.output
        assert json.loads(status.stdout) == {
            "cursor": 2,
            "unique_sequences": 1,
            "sequence_files": 1,
            "harvester_state": "idle",
        }

    def test_harvest_upstream_failure_exits_non_zero(self, run):
        with aioresponses() as m:
            m.post(ENDPOINT, status=500, body="boom")
            result = run("harvest", "--max-cycles", "1")
        assert result.exit_code == 1

    def test_search_prints_reconciled_hits(self, run, fake_server):
        with aioresponses() as m:
            m.post(ENDPOINT, status=200, body=sparql_results([("u1", "ACGT", "2017-01-01T00:00:00Z")]))
            assert run("harvest", "--max-cycles", "1").exit_code == 0

        result = run("search", "acgtacgt")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["num_results"] == 1
        assert payload["hits"][0]["identifiers"] == ["u1"]

    def test_search_rejects_empty_sequence(self, run):
        result = run("search", "   ")
        assert result.exit_code == 2

    def test_build_corpus(self, run, tmp_path):
        result = run("build-corpus")
        assert result.exit_code == 0, result.output
        assert "Built" in result.output
        assert (tmp_path / "blastdbs").is_dir()
