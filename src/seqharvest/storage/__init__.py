"""Content-addressed sequence storage."""

from .sequence_store import FASTA_SUFFIX, SequenceStore, format_fasta

__all__ = ["FASTA_SUFFIX", "SequenceStore", "format_fasta"]
