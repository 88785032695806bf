"""Similarity search over the corpus and reconciliation of hits."""

from .blast import BlastRunner, parse_blast_xml
from .corpus import CorpusBuilder, CorpusBuildResult
from .reconciler import Reconciler
from .service import SearchService

__all__ = [
    "BlastRunner",
    "CorpusBuildResult",
    "CorpusBuilder",
    "Reconciler",
    "SearchService",
    "parse_blast_xml",
]
