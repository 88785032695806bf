"""
Configuration management for SeqHarvest using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class UpstreamConfig(BaseModel):
    """SPARQL endpoint the harvester paginates."""

    url: str = Field(default="https://synbiohub.org/sparql", description="URL to send SPARQL queries to.")
    result_limit: int = Field(default=100, description="Number of components to fetch in each query.")
    graph: str = Field(default="public", description="Named graph passed alongside the query.")
    timeout: float = Field(default=60.0, description="HTTP request timeout in seconds.")
    user_agent: str = Field(default="SeqHarvest/0.1.0", description="User-Agent string for upstream requests.")

    @field_validator("result_limit")
    @classmethod
    def validate_result_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("result_limit must be positive")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


class RedisConfig(BaseModel):
    """Redis instance storing the cursor and dedup state."""

    url: str = Field(default="redis://localhost:6379/0", description="URL of the Redis instance.")
    offset_key: str = Field(default="sequenceoffset", description="Key holding the number of records fetched.")
    dedup_set_key: str = Field(default="sequenceHashSet", description="Key of the set of all seen sequence hashes.")
    sequence_prefix: str = Field(
        default="sequence",
        description="Key prefix, joined with a sequence hash, of the set of matching component URIs.",
    )
    socket_timeout: float = Field(default=5.0, description="Socket timeout for Redis operations in seconds.")
    connect_attempts: int = Field(default=5, description="Attempts to reach Redis at startup.")

    @field_validator("offset_key", "dedup_set_key", "sequence_prefix")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Redis key names must not be empty")
        return v


class StorageConfig(BaseModel):
    """Content-addressed sequence file store."""

    fasta_dir: Path = Field(
        default=Path("/var/synbioblast/fastas"), description="Directory to store FASTA files in."
    )


class BlastConfig(BaseModel):
    """External search tool and corpus build settings."""

    db_dir: Path = Field(default=Path("/var/synbioblast/blastdbs"), description="Directory where BLAST dbs are stored.")
    db_name: str = Field(default="SynBioHub", description="Name of the BLAST db to use.")
    blastn_path: str = Field(default="blastn", description="Path to the blastn executable.")
    makeblastdb_path: str = Field(default="makeblastdb", description="Path to the makeblastdb executable.")
    timeout_seconds: float = Field(default=120.0, description="Maximum runtime of a single search.")
    build_timeout_seconds: float = Field(default=3600.0, description="Maximum runtime of a corpus build.")

    @field_validator("timeout_seconds", "build_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v


class HarvestConfig(BaseModel):
    """Polling behaviour of the harvester."""

    drained_sleep_seconds: float = Field(
        default=4 * 60 * 60, description="Sleep after a partial page, when the upstream is caught up."
    )
    backlog_sleep_seconds: float = Field(default=2.0, description="Sleep after a full page, while a backlog exists.")
    store_concurrency: int = Field(default=16, description="Concurrent per-record writes within one page.")

    @field_validator("store_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("store_concurrency must be at least 1")
        return v


class WebConfig(BaseModel):
    """Configuration for the query front end."""

    host: str = Field(default="0.0.0.0", description="Host for the web server.")
    port: int = Field(default=9090, description="Port to bind the HTTP server to.")


class MonitoringConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: Optional[str] = Field(default=None, description="Path to log file. If None, logs to console.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "SeqHarvest"
    version: str = "0.1.0"
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    blast: BlastConfig = Field(default_factory=BlastConfig)
    harvest: HarvestConfig = Field(default_factory=HarvestConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="SEQHARVEST_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    paths_to_check = [
        current_dir / "seqharvest.yaml",
        current_dir / "seqharvest.yml",
    ]
    for path in paths_to_check:
        if path.exists():
            return path
    return None


def load_config(path: Optional[Path] = None) -> Config:
    """Build the configuration once at startup: explicit file, discovered file, or defaults."""
    config_path = path or find_config_file()
    if config_path:
        log.info("Loading configuration from: %s", config_path)
        return Config.from_yaml(config_path)
    log.info("No config file found. Using default settings.")
    return Config()
