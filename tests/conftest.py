"""
Shared fixtures for SeqHarvest tests.

Redis is replaced by fakeredis, the upstream by aioresponses or an in-memory
source, and the external search tools by small shell scripts.
"""

# Standard library imports
from pathlib import Path

# Third-party imports
import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio

# Local imports
from seqharvest.config import BlastConfig, Config, HarvestConfig, RedisConfig, StorageConfig, UpstreamConfig
from seqharvest.dedup import CursorStore, DedupIndex
from seqharvest.storage import SequenceStore

from tests.helpers.fakes import RecordingScheduler

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration pointing every directory at the test's tmp_path."""
    return Config(
        upstream=UpstreamConfig(url="http://sparql.test/sparql", result_limit=3, timeout=5),
        redis=RedisConfig(url="redis://localhost:6379/15", connect_attempts=2),
        storage=StorageConfig(fasta_dir=tmp_path / "fastas"),
        blast=BlastConfig(db_dir=tmp_path / "blastdbs", timeout_seconds=5, build_timeout_seconds=5),
        harvest=HarvestConfig(drained_sleep_seconds=14400, backlog_sleep_seconds=2, store_concurrency=4),
    )


# ============================================================================
# Redis
# ============================================================================


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(redis_server):
    client = fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def down_redis_client():
    """A client whose server refuses every command."""
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def dedup_index(redis_client, config) -> DedupIndex:
    return DedupIndex(redis_client, config.redis)


@pytest.fixture
def cursor_store(redis_client, config) -> CursorStore:
    return CursorStore(redis_client, config.redis)


@pytest_asyncio.fixture
async def sequence_store(config) -> SequenceStore:
    store = SequenceStore(config.storage)
    await store.initialize()
    return store


# ============================================================================
# Harvester collaborators
# ============================================================================


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()

