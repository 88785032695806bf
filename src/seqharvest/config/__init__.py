"""Configuration for SeqHarvest."""

from .config import (
    BlastConfig,
    Config,
    HarvestConfig,
    MonitoringConfig,
    RedisConfig,
    StorageConfig,
    UpstreamConfig,
    WebConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "BlastConfig",
    "Config",
    "HarvestConfig",
    "MonitoringConfig",
    "RedisConfig",
    "StorageConfig",
    "UpstreamConfig",
    "WebConfig",
    "find_config_file",
    "load_config",
]
