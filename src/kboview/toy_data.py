from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .seqio import write_fasta
from .utils import ensure_outdir, reverse_complement, write_json

TOY_SEED = 7


def _random_seq(rng: random.Random, n: int) -> str:
    return "".join(rng.choice("ACGT") for _ in range(n))


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def make_toy_data(*, outdir: str | Path) -> Dict[str, object]:
    """Create a tiny reference and query assembly for quick demos/tests.

    The reference has two contigs. The query is a copy of the first contig
    carrying one substitution and one 3 bp deletion, plus a reverse-complemented
    copy of a stretch of the second contig, so ``call``, ``find`` and ``map``
    all have something to report.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - toy_query.fa (+ .fai)

    Returns
    -------
    dict
        Paths to the generated files and the planted variants.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(TOY_SEED)

    contig1 = _random_seq(rng, 600)
    contig2 = _random_seq(rng, 400)
    ref_fa = outdir_p / "toy_ref.fa"
    write_fasta(ref_fa, [("contig_1 toy reference", contig1.encode()), ("contig_2", contig2.encode())])
    pysam.faidx(str(ref_fa))

    snv_pos0 = 200
    del_pos0 = 400
    del_len = 3
    seq = list(contig1)
    seq[snv_pos0] = _mutate_base(seq[snv_pos0])
    del seq[del_pos0 : del_pos0 + del_len]
    query1 = "".join(seq)

    query2 = reverse_complement(contig2[50:350].encode()).decode()

    query_fa = outdir_p / "toy_query.fa"
    write_fasta(query_fa, [("query_1", query1.encode()), ("query_2 reverse strand", query2.encode())])
    pysam.faidx(str(query_fa))

    planted: List[Tuple[str, int, str, str]] = [
        ("contig_1", snv_pos0 + 1, contig1[snv_pos0], seq[snv_pos0]),
        (
            "contig_1",
            del_pos0,
            contig1[del_pos0 - 1 : del_pos0 + del_len],
            contig1[del_pos0 - 1],
        ),
    ]

    summary: Dict[str, object] = {
        "ref_fa": str(ref_fa),
        "query_fa": str(query_fa),
        "outdir": str(outdir_p),
        "planted_variants": [
            {"chrom": c, "pos": p, "ref": r, "alt": a} for c, p, r, a in planted
        ],
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
