"""Sequence file ingestion.

FASTA/FASTQ parsing (plain or gzip-compressed) is delegated to
``pysam.FastxFile``. Each input file becomes one :class:`SequenceCollection`;
files that cannot be parsed are reported individually and do not stop the
remaining files from being read.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import pysam

from .errors import ParseFailureError
from .models import SequenceCollection, SequenceRecord

logger = logging.getLogger(__name__)


def _normalize_table() -> bytes:
    table = bytearray(b"N" * 256)
    for b in b"ACGTN":
        table[b] = b
        table[ord(chr(b).lower())] = b
    table[ord("U")] = ord("T")
    table[ord("u")] = ord("T")
    return bytes(table)


_NORMALIZE = _normalize_table()


def normalize_bases(seq: str | bytes) -> bytes:
    """Upper-case a sequence, turn U into T and any other symbol into N."""
    if isinstance(seq, str):
        seq = seq.encode("ascii", errors="replace")
    return seq.translate(_NORMALIZE)


def read_collection(path: str | Path) -> SequenceCollection:
    """Read every record of one FASTA/FASTQ(.gz) file.

    Raises
    ------
    ParseFailureError
        If the file is missing, malformed, or contains no records.
    """
    p = Path(path)
    records: List[SequenceRecord] = []
    try:
        with pysam.FastxFile(str(p)) as fh:
            for entry in fh:
                name = entry.name if not entry.comment else f"{entry.name} {entry.comment}"
                records.append(SequenceRecord(name=name, bases=normalize_bases(entry.sequence or "")))
    except (OSError, ValueError) as e:
        raise ParseFailureError(f"Could not parse {p.name}: {e}", path=str(p)) from e

    if not records:
        raise ParseFailureError(f"No sequence records found in {p.name}", path=str(p))

    logger.info("Read %d record(s) (%d bases) from %s", len(records), sum(len(r) for r in records), p.name)
    return SequenceCollection(label=p.name, records=tuple(records))


def read_collections(
    paths: Iterable[str | Path],
) -> Tuple[List[SequenceCollection], List[ParseFailureError]]:
    """Read several files; parse failures are collected, not raised."""
    collections: List[SequenceCollection] = []
    failures: List[ParseFailureError] = []
    for path in paths:
        try:
            collections.append(read_collection(path))
        except ParseFailureError as e:
            logger.warning("%s", e.message)
            failures.append(e)
    return collections, failures


def write_fasta(path: str | Path, records: Sequence[Tuple[str, bytes]], *, width: int = 60) -> Path:
    """Write ``(name, bases)`` pairs as FASTA with fixed line width."""
    out = Path(path)
    lines: List[str] = []
    for name, bases in records:
        lines.append(f">{name}")
        seq = bases.decode("ascii")
        for i in range(0, len(seq), width):
            lines.append(seq[i : i + width])
    out.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return out
