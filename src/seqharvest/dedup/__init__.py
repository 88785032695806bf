"""
Content-addressed deduplication for SeqHarvest.

- Content hashing: lower-cased sequence -> SHA-1 hex
- Dedup index: Redis set of all hashes plus per-hash identifier sets
- Cursor: Redis integer tracking upstream ingestion progress
"""

from .cursor import CursorStore
from .hasher import content_hash, is_content_hash, normalize_sequence
from .index import DedupIndex

__all__ = [
    "CursorStore",
    "DedupIndex",
    "content_hash",
    "is_content_hash",
    "normalize_sequence",
]
