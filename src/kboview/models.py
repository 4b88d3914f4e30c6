from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Tuple


@dataclass(frozen=True)
class SequenceRecord:
    """A single named sequence read from a FASTA/FASTQ file.

    Attributes
    ----------
    name:
        Full header line of the record (without the leading '>' or '@').
    bases:
        Upper-cased nucleotide bytes.
    """

    name: str
    bases: bytes

    def __len__(self) -> int:
        return len(self.bases)


@dataclass(frozen=True)
class SequenceCollection:
    """All records of one input file; record order is preserved."""

    label: str
    records: Tuple[SequenceRecord, ...]

    @property
    def total_bases(self) -> int:
        return sum(len(r.bases) for r in self.records)

    def is_empty(self) -> bool:
        return len(self.records) == 0 or self.total_bases == 0


@dataclass(frozen=True)
class IndexHandle:
    """An index built by the sequence-index backend.

    ``index`` is opaque to everything except the backend that built it.
    """

    index: Any = field(repr=False, compare=False)
    label: str
    total_bases: int


@dataclass(frozen=True)
class RawMatch:
    """A match run from the backend in 0-based index-space coordinates."""

    start: int
    end: int
    matches: int
    mismatches: int
    gap_bases: int = 0
    gap_opens: int = 0


@dataclass(frozen=True)
class AlignmentRecord:
    """A local alignment between a query contig and a reference index.

    Coordinates are 1-based inclusive on the forward strand of the query.
    """

    query_file: str
    ref_file: str
    query_contig: str
    ref_contig: str
    start: int
    end: int
    strand: str  # '+' or '-'
    length: int
    mismatches: int
    gap_bases: int
    gap_opens: int
    identity: float
    coverage: float


@dataclass(frozen=True)
class RawVariant:
    """A variant from the backend; ``query_pos`` is a 0-based contig offset."""

    ref_chars: bytes
    query_chars: bytes
    query_pos: int


@dataclass(frozen=True)
class VariantRecord:
    """One VCF data line."""

    chromosome: str
    position: int
    ref_base: str
    alt_base: str
    id: str = "."
    qual: str = "."
    filter: str = "."
    info: str = "."
    format: str = "GT"
    sample: str = "1"


@dataclass(frozen=True)
class CallResults:
    """Variant records of one call run plus what the VCF header needs."""

    calls: List[VariantRecord]
    contig_info: List[Tuple[str, int]]
    ref_file: str


@dataclass(frozen=True)
class ConsensusResult:
    label: str
    bases: bytes
