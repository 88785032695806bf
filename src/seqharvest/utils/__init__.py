"""Utility modules for SeqHarvest."""

from .atomic import atomic_write_text, remove_stale_temp_files

__all__ = ["atomic_write_text", "remove_stale_temp_files"]
