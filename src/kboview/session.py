"""Asynchronous analysis session.

Index builds and runs are awaited as units of work executed in a worker
thread. Each piece of cached state lives in a :class:`Slot`. Starting a task
on a slot bumps the slot's generation; when the task finishes it may only
write the slot if no newer task has been started in the meantime. Work is
never cancelled, superseded results are dropped instead.

Index slots also remember what they were built from (the input collections,
build options and detailed flag). A run only reuses an index whose source
matches its own inputs; anything else is rebuilt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar

from .backend import SequenceIndexBackend
from .indexing import build_indexes
from .models import IndexHandle, SequenceCollection
from .options import BuildOptions, RunOptions
from .runner import Mode, Outcome, run_mode

logger = logging.getLogger(__name__)

T = TypeVar("T")

IndexSource = Tuple[Tuple[SequenceCollection, ...], BuildOptions, bool]


def index_source(
    collections: Sequence[SequenceCollection], options: BuildOptions, detailed: bool
) -> IndexSource:
    return tuple(collections), options.normalized(), bool(detailed)


class Slot(Generic[T]):
    """Single-writer cache cell guarded by a generation counter."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: Optional[T] = None
        self.source: Optional[Hashable] = None
        self.generation = 0
        self.committed_generation = 0

    def begin(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    @property
    def pending(self) -> bool:
        return self.committed_generation != self.generation

    def commit(self, generation: int, value: T, source: Optional[Hashable] = None) -> bool:
        """Store ``value`` if ``generation`` is still the newest; report success."""
        if not self.is_current(generation):
            logger.info(
                "Discarding stale %s result (generation %d, current %d)",
                self.name,
                generation,
                self.generation,
            )
            return False
        self.value = value
        self.source = source
        self.committed_generation = generation
        return True

    def fail(self, generation: int) -> None:
        """Empty the slot after the newest task failed."""
        if self.is_current(generation):
            self.value = None
            self.source = None
            self.committed_generation = generation

    def matching(self, source: Hashable) -> Optional[T]:
        """The stored value if it was built from ``source``, else None."""
        if self.value is not None and self.source == source:
            return self.value
        return None

    def clear(self) -> None:
        self.begin()
        self.value = None
        self.source = None
        self.committed_generation = self.generation


class AnalysisSession:
    """Holds the reference-index, query-index and result slots of one user session."""

    def __init__(self, backend: SequenceIndexBackend, options: Optional[RunOptions] = None) -> None:
        self.backend = backend
        self.options = (options or RunOptions()).normalized()
        self.reference_index: Slot[List[IndexHandle]] = Slot("reference index")
        self.query_index: Slot[List[IndexHandle]] = Slot("query index")
        self.result: Slot[Outcome] = Slot("result")

    async def _run_into(
        self,
        slot: Slot,
        source: Optional[Hashable],
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        generation = slot.begin()
        try:
            value = await asyncio.to_thread(fn, *args, **kwargs)
        except Exception:
            if slot.is_current(generation):
                slot.fail(generation)
                raise
            logger.info("Superseded %s task failed; ignoring", slot.name, exc_info=True)
            return False
        return slot.commit(generation, value, source)

    async def build_reference_index(
        self,
        reference: Sequence[SequenceCollection],
        options: Optional[BuildOptions] = None,
        *,
        detailed: Optional[bool] = None,
    ) -> bool:
        detailed = self.options.output.detailed if detailed is None else detailed
        options = options or self.options.build
        return await self._run_into(
            self.reference_index,
            index_source(reference, options, detailed),
            build_indexes,
            list(reference),
            self.backend,
            options,
            detailed=detailed,
        )

    async def build_query_index(
        self,
        queries: Sequence[SequenceCollection],
        options: Optional[BuildOptions] = None,
    ) -> bool:
        options = options or self.options.build
        return await self._run_into(
            self.query_index,
            index_source(queries, options, False),
            build_indexes,
            list(queries),
            self.backend,
            options,
            detailed=False,
        )

    async def run(
        self,
        mode: Mode,
        reference: Sequence[SequenceCollection],
        queries: Sequence[SequenceCollection],
        options: Optional[RunOptions] = None,
    ) -> bool:
        """Run ``mode`` and store the outcome in the result slot.

        Committed indexes are reused only when they were built from these
        inputs with these build options; otherwise the run builds its own.
        """
        options = (options or self.options).normalized()
        reference_index = self.reference_index.matching(
            index_source(reference, options.build, options.output.detailed)
        )
        query_index = self.query_index.matching(index_source(queries, options.build, False))
        if reference_index is None and self.reference_index.value is not None:
            logger.info("Reference index was built from other inputs; rebuilding")
        if query_index is None and self.query_index.value is not None:
            logger.info("Query index was built from other inputs; rebuilding")
        return await self._run_into(
            self.result,
            None,
            run_mode,
            mode,
            list(reference),
            list(queries),
            self.backend,
            options,
            reference_index=reference_index,
            query_index=query_index,
        )
