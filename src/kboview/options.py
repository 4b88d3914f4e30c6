from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace

from .utils import clamp

MIN_KMER_SIZE = 2
MAX_KMER_SIZE = 255

_PROB_EPS = sys.float_info.epsilon


@dataclass(frozen=True)
class BuildOptions:
    """Index construction parameters passed through to the backend."""

    kmer_size: int = 31
    dedup_batches: bool = True
    prefix_precalc: int = 8
    select_support: bool = True

    def normalized(self) -> "BuildOptions":
        """Return a copy with values forced into their valid ranges.

        The k-mer size is clamped to [2, 255]. A prefix precalc length below 1
        cannot be repaired and raises ``ValueError``.
        """
        if int(self.prefix_precalc) < 1:
            raise ValueError(f"prefix_precalc must be >= 1 (got {self.prefix_precalc})")
        k = int(clamp(int(self.kmer_size), MIN_KMER_SIZE, MAX_KMER_SIZE))
        return replace(self, kmer_size=k, prefix_precalc=int(self.prefix_precalc))


@dataclass(frozen=True)
class AlignmentOptions:
    """Search/call/map parameters.

    Attributes
    ----------
    max_error_prob:
        Maximum tolerated probability of a random k-mer match.
    min_len:
        Alignments shorter than this are hidden when rendering find results.
    max_gap_len:
        Longest gap the find primitive is allowed to bridge.
    call_variants, fill_gaps:
        Map-mode toggles forwarded to the backend.
    """

    max_error_prob: float = 1e-7
    min_len: int = 100
    max_gap_len: int = 0
    call_variants: bool = True
    fill_gaps: bool = True

    def normalized(self) -> "AlignmentOptions":
        if self.min_len < 0:
            raise ValueError(f"min_len must be >= 0 (got {self.min_len})")
        if self.max_gap_len < 0:
            raise ValueError(f"max_gap_len must be >= 0 (got {self.max_gap_len})")
        p = clamp(float(self.max_error_prob), _PROB_EPS, 1.0 - _PROB_EPS)
        return replace(self, max_error_prob=p)


@dataclass(frozen=True)
class OutputOptions:
    interactive: bool = True
    detailed: bool = False


@dataclass(frozen=True)
class RunOptions:
    build: BuildOptions = field(default_factory=BuildOptions)
    alignment: AlignmentOptions = field(default_factory=AlignmentOptions)
    output: OutputOptions = field(default_factory=OutputOptions)

    def normalized(self) -> "RunOptions":
        return replace(
            self,
            build=self.build.normalized(),
            alignment=self.alignment.normalized(),
        )
