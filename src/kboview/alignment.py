from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .backend import SequenceIndexBackend
from .models import AlignmentRecord, IndexHandle, RawMatch, SequenceCollection
from .options import AlignmentOptions
from .utils import clamp, reverse_complement

logger = logging.getLogger(__name__)

FORWARD = "+"
REVERSE = "-"


def reflect_interval(start: int, end: int, query_len: int) -> Tuple[int, int]:
    """Map a 0-based interval on one strand onto the other strand.

    Applying the reflection twice returns the original interval.
    """
    return query_len - 1 - end, query_len - 1 - start


def to_forward_coordinates(raw: RawMatch, strand: str, query_len: int) -> Tuple[int, int]:
    """Return 1-based inclusive (start, end) on the forward strand of the query."""
    if strand == FORWARD:
        return raw.start + 1, raw.end + 1
    if strand == REVERSE:
        # query_len - raw.end and query_len - raw.start are already 1-based.
        start0, end0 = reflect_interval(raw.start, raw.end, query_len)
        return start0 + 1, end0 + 1
    raise ValueError(f"strand must be '+' or '-' (got {strand!r})")


def format_alignment(
    raw: RawMatch,
    *,
    strand: str,
    query_len: int,
    ref_bases: int,
    query_file: str,
    ref_file: str,
    query_contig: str,
    ref_contig: str,
) -> Optional[AlignmentRecord]:
    """Turn one raw match run into an AlignmentRecord.

    identity = matches / length * 100 and
    coverage = (matches + mismatches) / ref_bases * 100.
    Returns None for degenerate (zero-length) runs.
    """
    start, end = to_forward_coordinates(raw, strand, query_len)
    length = end - start + 1
    if length <= 0 or ref_bases <= 0:
        logger.debug("Dropping degenerate match %s on strand %s", raw, strand)
        return None

    identity = clamp(raw.matches / length * 100.0, 0.0, 100.0)
    coverage = clamp((raw.matches + raw.mismatches) / ref_bases * 100.0, 0.0, 100.0)

    return AlignmentRecord(
        query_file=query_file,
        ref_file=ref_file,
        query_contig=query_contig,
        ref_contig=ref_contig,
        start=start,
        end=end,
        strand=strand,
        length=length,
        mismatches=raw.mismatches,
        gap_bases=raw.gap_bases,
        gap_opens=raw.gap_opens,
        identity=identity,
        coverage=coverage,
    )


def find_alignments(
    handles: Sequence[IndexHandle],
    queries: Iterable[SequenceCollection],
    backend: SequenceIndexBackend,
    options: Optional[AlignmentOptions] = None,
    *,
    ref_file: Optional[str] = None,
) -> List[AlignmentRecord]:
    """Search every query record, on both strands, against every index handle.

    The result list is flattened in handle, query, strand order. Nothing is
    filtered by length here; see :func:`filter_min_length`.
    """
    options = (options or AlignmentOptions()).normalized()
    queries = list(queries)
    results: List[AlignmentRecord] = []

    for handle in handles:
        ref_label = ref_file if ref_file is not None else handle.label
        for collection in queries:
            for record in collection.records:
                query_len = len(record.bases)
                if query_len == 0:
                    continue
                per_query: List[AlignmentRecord] = []
                for strand, seq in (
                    (FORWARD, record.bases),
                    (REVERSE, reverse_complement(record.bases)),
                ):
                    for raw in backend.find(seq, handle.index, options):
                        rec = format_alignment(
                            raw,
                            strand=strand,
                            query_len=query_len,
                            ref_bases=handle.total_bases,
                            query_file=collection.label,
                            ref_file=ref_label,
                            query_contig=record.name,
                            ref_contig=handle.label,
                        )
                        if rec is not None:
                            per_query.append(rec)
                logger.debug(
                    "%s vs %s: %d alignment(s)", record.name, handle.label, len(per_query)
                )
                results.extend(per_query)

    logger.info("Found %d alignment(s)", len(results))
    return results


def filter_min_length(records: Iterable[AlignmentRecord], min_len: int) -> List[AlignmentRecord]:
    """Keep alignments with ``length >= min_len``; the input is left untouched."""
    return [r for r in records if r.length >= min_len]
