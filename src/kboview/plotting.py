from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt
import numpy as np

from .models import AlignmentRecord, VariantRecord

logger = logging.getLogger(__name__)


def histogram(values: Sequence[float], *, bins: int = 20, value_range=None) -> Dict[str, List[float]]:
    """Bin ``values`` with numpy; returns ``bin_edges`` and ``counts`` lists."""
    if bins < 1:
        raise ValueError(f"bins must be >= 1 (got {bins})")
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        value_range = value_range or (0.0, 1.0)
    counts, edges = np.histogram(arr, bins=bins, range=value_range)
    return {"bin_edges": [float(x) for x in edges], "counts": [int(x) for x in counts]}


def _bar_hist(hist: Dict[str, List[float]], *, out_png: Path, xlabel: str, ylabel: str, title: str) -> None:
    bin_edges = hist["bin_edges"]
    counts = hist["counts"]
    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_alignment_lengths(
    *,
    records: Sequence[AlignmentRecord],
    out_png: str | Path,
    title: str = "Alignment length distribution",
    bins: int = 30,
) -> Dict[str, List[float]]:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    hist = histogram([r.length for r in records], bins=bins)
    _bar_hist(hist, out_png=out_png, xlabel="Alignment length (bp)", ylabel="Alignments", title=title)
    return hist


def plot_identity_hist(
    *,
    records: Sequence[AlignmentRecord],
    out_png: str | Path,
    title: str = "Alignment identity",
    bins: int = 25,
) -> Dict[str, List[float]]:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Identity is a percentage; fix the range so runs are comparable.
    hist = histogram([r.identity for r in records], bins=bins, value_range=(0.0, 100.0))
    _bar_hist(hist, out_png=out_png, xlabel="Identity (%)", ylabel="Alignments", title=title)
    return hist


def plot_variants_per_contig(
    *,
    records: Sequence[VariantRecord],
    out_png: str | Path,
    title: str = "Variants per contig",
) -> Dict[str, int]:
    """Bar chart of SNV and indel counts per contig, in first-seen contig order."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    order: List[str] = []
    snvs: Counter = Counter()
    indels: Counter = Counter()
    for r in records:
        if r.chromosome not in order:
            order.append(r.chromosome)
        if r.info == "INDEL":
            indels[r.chromosome] += 1
        else:
            snvs[r.chromosome] += 1

    xs = np.arange(len(order))
    snv_counts = [snvs[c] for c in order]
    indel_counts = [indels[c] for c in order]

    plt.figure()
    plt.bar(xs, snv_counts, label="Substitutions")
    plt.bar(xs, indel_counts, bottom=snv_counts, label="Indels")
    plt.ylabel("Variant count")
    plt.title(title)
    plt.xticks(xs, order, rotation=15, ha="right")
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()

    return {c: snvs[c] + indels[c] for c in order}
