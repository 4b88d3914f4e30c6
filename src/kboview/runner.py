"""Mode dispatch: the one place that decides what find/call/map run."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .alignment import find_alignments
from .backend import SequenceIndexBackend
from .consensus import map_consensus
from .errors import EmptyInputError, NoResults
from .indexing import build_indexes
from .models import AlignmentRecord, CallResults, ConsensusResult, IndexHandle, SequenceCollection
from .options import RunOptions
from .table import SortableResultTable, alignment_table, variant_table
from .variants import call_variants

logger = logging.getLogger(__name__)


class Mode(enum.Enum):
    CALL = "call"
    FIND = "find"
    MAP = "map"


@dataclass
class FindOutcome:
    records: List[AlignmentRecord]
    table: SortableResultTable


@dataclass
class CallOutcome:
    results: CallResults
    table: SortableResultTable


@dataclass
class MapOutcome:
    consensus: List[ConsensusResult] = field(default_factory=list)


Outcome = Union[FindOutcome, CallOutcome, MapOutcome, NoResults]


def _require(collections: Sequence[SequenceCollection], what: str) -> None:
    if not collections or all(c.is_empty() for c in collections):
        raise EmptyInputError(f"No {what} sequences supplied.")


def run_mode(
    mode: Mode,
    reference: Sequence[SequenceCollection],
    queries: Sequence[SequenceCollection],
    backend: SequenceIndexBackend,
    options: Optional[RunOptions] = None,
    *,
    reference_index: Optional[List[IndexHandle]] = None,
    query_index: Optional[List[IndexHandle]] = None,
    progress: bool = False,
) -> Outcome:
    """Run one analysis.

    find
        Index the reference (combined, or per contig when ``detailed``) and
        search every query record on both strands.
    call
        Index the queries (combined) and scan each reference contig.
    map
        Index each query record and map every reference contig onto it.

    Prebuilt handles may be passed in; otherwise they are built here.
    """
    options = (options or RunOptions()).normalized()
    _require(reference, "reference")
    _require(queries, "query")

    if mode is Mode.FIND:
        handles = reference_index
        if handles is None:
            handles = build_indexes(
                reference, backend, options.build, detailed=options.output.detailed, progress=progress
            )
        records = find_alignments(
            handles,
            queries,
            backend,
            options.alignment,
            ref_file=reference[0].label,
        )
        if not records:
            return NoResults("No alignments found.")
        table = alignment_table(records, min_len=options.alignment.min_len)
        return FindOutcome(records=records, table=table)

    if mode is Mode.CALL:
        handles = query_index
        if handles is None:
            handles = build_indexes(queries, backend, options.build, detailed=False)
        outcome = call_variants(reference, handles[0], backend, options.alignment)
        if isinstance(outcome, NoResults):
            return outcome
        return CallOutcome(results=outcome, table=variant_table(outcome.calls))

    if mode is Mode.MAP:
        outcome = map_consensus(
            reference,
            queries,
            backend,
            build_options=options.build,
            options=options.alignment,
            progress=progress,
        )
        if isinstance(outcome, NoResults):
            return outcome
        return MapOutcome(consensus=outcome)

    raise ValueError(f"Unknown mode: {mode!r}")
