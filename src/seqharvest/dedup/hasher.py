"""
Content hashing for sequence deduplication.

The content hash is the join key between ingestion and search: sequence files
are named by it, the search corpus carries it as the FASTA definition line,
and the dedup index is keyed by it. It must stay stable across processes and
releases, so the algorithm is fixed: SHA-1 over the UTF-8 bytes of the
lower-cased sequence, rendered as 40 lower-case hex characters.
"""

import hashlib
import re

HASH_ALGORITHM = "sha1"
HASH_LENGTH = 40

_HASH_PATTERN = re.compile(r"[0-9a-f]{40}")


def normalize_sequence(raw_sequence: str) -> str:
    """Lower-case a raw sequence so that dedup is case-insensitive."""
    return raw_sequence.lower()


def content_hash(sequence: str) -> str:
    """
    Calculate the content hash of a sequence.

    Args:
        sequence: Normalized sequence. Normalization is idempotent, so raw
            input hashes identically to its normalized form.

    Returns:
        Hexadecimal SHA-1 digest
    """
    return hashlib.sha1(normalize_sequence(sequence).encode("utf-8")).hexdigest()


def is_content_hash(value: str) -> bool:
    """Check that a string has the shape of a content hash."""
    return _HASH_PATTERN.fullmatch(value) is not None
