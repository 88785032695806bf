"""
Builders for upstream and search-tool payloads used across tests.
"""

import stat
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

SPARQL_NS = "http://www.w3.org/2005/sparql-results#"

Row = Tuple[Optional[str], Optional[str], Optional[str]]


def sparql_results(rows: Iterable[Row]) -> bytes:
    """
    Render ``(uri, elements, created)`` rows as a SPARQL Query Results XML
    document. A ``None`` value omits that binding.
    """
    results = []
    for uri, elements, created in rows:
        bindings = []
        if uri is not None:
            bindings.append(f'<binding name="uri"><uri>{escape(uri)}</uri></binding>')
        if elements is not None:
            bindings.append(f'<binding name="elements"><literal>{escape(elements)}</literal></binding>')
        if created is not None:
            bindings.append(
                '<binding name="created"><literal datatype="http://www.w3.org/2001/XMLSchema#dateTime">'
                f"{escape(created)}</literal></binding>"
            )
        results.append(f"<result>{''.join(bindings)}</result>")

    return (
        '<?xml version="1.0"?>'
        f'<sparql xmlns="{SPARQL_NS}">'
        '<head><variable name="uri"/><variable name="elements"/><variable name="created"/></head>'
        f"<results>{''.join(results)}</results>"
        "</sparql>"
    ).encode("utf-8")


def _bases(value: int, width: int = 8) -> str:
    """Spell ``value`` in base 4 so distinct indices give distinct sequences."""
    digits = []
    for _ in range(width):
        value, digit = divmod(value, 4)
        digits.append("ACGT"[digit])
    return "".join(reversed(digits))


def sparql_page(start: int, count: int, prefix: str = "https://example.org/public/part") -> bytes:
    """A page of ``count`` records with distinct sequences, numbered from ``start``."""
    rows = []
    for i in range(start, start + count):
        seq = _bases(i) + "TTTT"
        rows.append((f"{prefix}{i}/1", seq, f"2017-01-01T00:00:{i % 60:02d}Z"))
    return sparql_results(rows)


def blast_xml(hits: Sequence[Tuple[str, float, str]], db_num: int = 3) -> bytes:
    """
    Render ``(hit_def, bit_score, evalue)`` tuples as ``-outfmt 5`` output.
    """
    hit_xml = []
    for num, (hit_def, bit_score, evalue) in enumerate(hits, start=1):
        hit_xml.append(
            "<Hit>"
            f"<Hit_num>{num}</Hit_num>"
            f"<Hit_id>gnl|BL_ORD_ID|{num - 1}</Hit_id>"
            f"<Hit_def>{hit_def}</Hit_def>"
            "<Hit_hsps><Hsp>"
            "<Hsp_num>1</Hsp_num>"
            f"<Hsp_bit-score>{bit_score}</Hsp_bit-score>"
            "<Hsp_score>20</Hsp_score>"
            f"<Hsp_evalue>{evalue}</Hsp_evalue>"
            "<Hsp_qseq>ACGTACGT</Hsp_qseq>"
            "<Hsp_hseq>ACGTACGT</Hsp_hseq>"
            "<Hsp_midline>||||||||</Hsp_midline>"
            "</Hsp>"
            "<Hsp><Hsp_num>2</Hsp_num><Hsp_bit-score>1.0</Hsp_bit-score></Hsp>"
            "</Hit_hsps>"
            "</Hit>"
        )
    return (
        '<?xml version="1.0"?>'
        "<BlastOutput>"
        "<BlastOutput_program>blastn</BlastOutput_program>"
        "<BlastOutput_version>BLASTN 2.6.0+</BlastOutput_version>"
        "<BlastOutput_reference>Zhang et al. (2000)</BlastOutput_reference>"
        "<BlastOutput_iterations><Iteration>"
        "<Iteration_iter-num>1</Iteration_iter-num>"
        f"<Iteration_hits>{''.join(hit_xml)}</Iteration_hits>"
        "<Iteration_stat><Statistics>"
        f"<Statistics_db-num>{db_num}</Statistics_db-num>"
        "</Statistics></Iteration_stat>"
        "</Iteration></BlastOutput_iterations>"
        "</BlastOutput>"
    ).encode("utf-8")


def write_executable(path: Path, script: str) -> Path:
    """Write a ``/bin/sh`` script standing in for an external tool."""
    path.write_text("#!/bin/sh\n" + script + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def fake_blastn(path: Path, output: bytes) -> Path:
    """A blastn that swallows stdin, records its args and env, and prints ``output``."""
    output_file = path.parent / f"{path.name}.out.xml"
    output_file.write_bytes(output)
    return write_executable(
        path,
        f'cat > "{path}.stdin"\n'
        f'echo "$@" > "{path}.args"\n'
        f'echo "$BLASTDB" > "{path}.blastdb"\n'
        f'cat "{output_file}"',
    )


def fake_makeblastdb(path: Path) -> Path:
    """A makeblastdb that captures stdin and its arguments."""
    return write_executable(
        path,
        f'cat > "{path}.stdin"\n'
        f'for arg in "$@"; do echo "$arg"; done > "{path}.args"\n'
        'echo "Adding sequences from FASTA; added sequences"',
    )
