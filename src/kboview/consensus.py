from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from tqdm import tqdm

from .backend import SequenceIndexBackend
from .errors import EmptyInputError, NoResults
from .indexing import build_indexes
from .models import ConsensusResult, SequenceCollection
from .options import AlignmentOptions, BuildOptions

logger = logging.getLogger(__name__)

LINE_WIDTH = 80


def format_consensus_block(result: ConsensusResult, *, width: int = LINE_WIDTH) -> str:
    """Render one ``>label`` block hard-wrapped at ``width`` columns."""
    if width < 1:
        raise ValueError(f"width must be >= 1 (got {width})")
    seq = result.bases.decode("ascii")
    lines = [f">{result.label}"]
    lines.extend(seq[i : i + width] for i in range(0, len(seq), width))
    return "\n".join(lines) + "\n"


def format_consensus(results: Iterable[ConsensusResult], *, width: int = LINE_WIDTH) -> str:
    return "".join(format_consensus_block(r, width=width) for r in results)


def write_consensus(path: str | Path, results: Iterable[ConsensusResult], *, width: int = LINE_WIDTH) -> Path:
    out = Path(path)
    out.write_text(format_consensus(results, width=width), encoding="utf-8")
    return out


def map_consensus(
    reference: Sequence[SequenceCollection],
    queries: Sequence[SequenceCollection],
    backend: SequenceIndexBackend,
    *,
    build_options: Optional[BuildOptions] = None,
    options: Optional[AlignmentOptions] = None,
    progress: bool = False,
) -> Union[List[ConsensusResult], NoResults]:
    """Map every reference contig against an index of each query record.

    Each query record gets one ConsensusResult labelled with its name; the
    bytes are the per-contig mappings concatenated in reference order.
    """
    if not reference or all(c.is_empty() for c in reference):
        raise EmptyInputError("No reference sequences supplied.")
    options = (options or AlignmentOptions()).normalized()

    # Mapping needs select support in every query index.
    build_options = replace(build_options or BuildOptions(), select_support=True)
    handles = build_indexes(queries, backend, build_options, detailed=True, progress=progress)
    ref_contigs = [r for c in reference for r in c.records]

    results: List[ConsensusResult] = []
    it: Iterable = handles
    if progress:
        it = tqdm(handles, unit="query", desc="Mapping")
    for handle in it:
        mapped = b"".join(
            backend.map_consensus(contig.bases, handle.index, options) for contig in ref_contigs
        )
        logger.info("%s: %d consensus base(s)", handle.label, len(mapped))
        if mapped:
            results.append(ConsensusResult(label=handle.label, bases=mapped))

    if not results:
        return NoResults("No consensus sequence was produced.")
    return results
