from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from tqdm import tqdm

from .backend import SequenceIndexBackend
from .errors import BuildFailureError, EmptyInputError, KboviewError
from .external import ExternalCommandError
from .models import IndexHandle, SequenceCollection
from .options import BuildOptions

logger = logging.getLogger(__name__)


def _non_empty(collections: Sequence[SequenceCollection]) -> List[SequenceCollection]:
    return [c for c in collections if not c.is_empty()]


def _build_one(
    backend: SequenceIndexBackend,
    buffers: List[bytes],
    options: BuildOptions,
    label: str,
) -> IndexHandle:
    total = sum(len(b) for b in buffers)
    logger.info("Building index '%s' (%d bases, k=%d)", label, total, options.kmer_size)
    try:
        index = backend.build_index(buffers, options)
    except KboviewError:
        raise
    except (ExternalCommandError, FileNotFoundError, OSError, ValueError, RuntimeError) as e:
        raise BuildFailureError(f"Index construction failed for '{label}': {e}") from e
    return IndexHandle(index=index, label=label, total_bases=total)


def build_indexes(
    collections: Iterable[SequenceCollection],
    backend: SequenceIndexBackend,
    options: BuildOptions | None = None,
    *,
    detailed: bool = False,
    progress: bool = False,
) -> List[IndexHandle]:
    """Build index handles from one or more sequence collections.

    Parameters
    ----------
    collections:
        Input collections; record order is preserved.
    backend:
        Sequence-index backend used for construction.
    options:
        Build options (normalized before use).
    detailed:
        If False (combined mode), concatenate every record of every collection
        and build a single handle labelled with the first collection's label.
        If True, build one handle per record, labelled with the record name.
    progress:
        Show a progress bar over records in detailed mode.

    Returns
    -------
    list of IndexHandle
        Handles owned by the caller; nothing is cached here.

    Raises
    ------
    EmptyInputError
        If no collection was given or every collection is empty.
    BuildFailureError
        If the backend fails to build an index.
    """
    collections = list(collections)
    options = (options or BuildOptions()).normalized()

    if not collections:
        raise EmptyInputError("No sequence data supplied.")
    usable = _non_empty(collections)
    if not usable:
        raise EmptyInputError("All supplied sequence collections are empty.")

    if not detailed:
        buffer = b"".join(r.bases for c in collections for r in c.records)
        return [_build_one(backend, [buffer], options, collections[0].label)]

    records = [r for c in collections for r in c.records if len(r.bases) > 0]
    it: Iterable = records
    if progress:
        it = tqdm(records, unit="contig", desc="Building indexes")
    return [_build_one(backend, [r.bases], options, r.name) for r in it]
