from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence

import pytest

from kboview.models import RawMatch, RawVariant, SequenceCollection, SequenceRecord
from kboview.options import AlignmentOptions, BuildOptions


class FakeBackend:
    """In-memory stand-in for the kbo library.

    ``find`` reports one exact hit when the whole query occurs in the index,
    ``call_variants`` returns whatever was scripted for a contig and
    ``map_consensus`` copies contigs found in the index and gaps out the rest.
    """

    def __init__(
        self,
        *,
        variants: Optional[Dict[bytes, List[RawVariant]]] = None,
        fail_on: Optional[bytes] = None,
    ) -> None:
        self.variants = variants or {}
        self.fail_on = fail_on
        self.built: List[bytes] = []
        self.build_options: List[BuildOptions] = []
        self.searched: List[bytes] = []

    def build_index(self, sequence_buffers: Sequence[bytes], options: BuildOptions) -> bytes:
        index = b"".join(sequence_buffers)
        if self.fail_on is not None and self.fail_on in index:
            raise RuntimeError("index construction blew up")
        self.built.append(index)
        self.build_options.append(options)
        return index

    def find(self, query: bytes, index: bytes, options: AlignmentOptions) -> List[RawMatch]:
        self.searched.append(query)
        if query and query in index:
            return [RawMatch(start=0, end=len(query) - 1, matches=len(query), mismatches=0)]
        return []

    def call_variants(self, index: bytes, contig: bytes, options: AlignmentOptions) -> List[RawVariant]:
        return list(self.variants.get(contig, []))

    def map_consensus(self, reference_contig: bytes, index: bytes, options: AlignmentOptions) -> bytes:
        if reference_contig in index:
            return reference_contig
        return b"-" * len(reference_contig)


def random_bases(n: int, seed: int = 1) -> bytes:
    rng = random.Random(seed)
    return "".join(rng.choice("ACGT") for _ in range(n)).encode("ascii")


def collection(label: str, *records: tuple) -> SequenceCollection:
    return SequenceCollection(
        label=label,
        records=tuple(SequenceRecord(name=name, bases=bases) for name, bases in records),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
