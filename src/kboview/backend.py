"""Sequence-index backends.

The succinct index itself (SBWT + LCS array) and the find/call/map primitives
live in the external kbo library. Everything in kboview talks to it through
:class:`SequenceIndexBackend`; :class:`KboCliBackend` is the concrete binding
that drives the ``kbo`` command-line tool.

Backend contract
----------------
- ``build_index`` returns an opaque object that only the same backend reads.
- ``find`` returns match runs in 0-based coordinates of the sequence it was
  given (callers pass the reverse complement themselves for the '-' strand).
- ``call_variants`` returns variants with ``query_pos`` as a 0-based offset
  into ``contig``; ``ref_chars`` is the allele found in ``contig`` and
  ``query_chars`` the allele carried by the indexed sequences.
- ``map_consensus`` returns the indexed sequences projected onto the
  coordinates of ``reference_contig``.
"""

from __future__ import annotations

import csv
import itertools
import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Protocol, Sequence, Tuple

import pysam

from .external import KBO_INSTALL_HINT, ensure_executable_in_path, run_command
from .models import RawMatch, RawVariant
from .options import AlignmentOptions, BuildOptions
from .seqio import write_fasta

logger = logging.getLogger(__name__)


class SequenceIndexBackend(Protocol):
    def build_index(self, sequence_buffers: Sequence[bytes], options: BuildOptions) -> Any:
        ...

    def find(self, query: bytes, index: Any, options: AlignmentOptions) -> List[RawMatch]:
        ...

    def call_variants(self, index: Any, contig: bytes, options: AlignmentOptions) -> List[RawVariant]:
        ...

    def map_consensus(self, reference_contig: bytes, index: Any, options: AlignmentOptions) -> bytes:
        ...


@dataclass(frozen=True)
class KboIndexFiles:
    """On-disk index written by ``kbo build``.

    ``fasta`` keeps the staged input sequences because ``kbo call`` and
    ``kbo map`` index their query files themselves; ``options`` is kept so
    those commands are given the same build parameters.
    """

    prefix: Path
    fasta: Path
    options: BuildOptions = field(default_factory=BuildOptions)


def build_flags(options: BuildOptions) -> List[str]:
    """``kbo`` command-line flags for index construction."""
    flags = [
        "--kmer-size",
        str(options.kmer_size),
        "--prefix-precalc",
        str(options.prefix_precalc),
    ]
    if options.dedup_batches:
        flags.append("--dedup-batches")
    if options.select_support:
        flags.append("--build-select")
    return flags


class KboCliBackend:
    """Backend that stages sequences as FASTA and runs the ``kbo`` executable.

    Parameters
    ----------
    executable:
        Name or path of the kbo binary.
    workdir:
        Directory for staged FASTA files and index files. A temporary directory
        is created (and removed by :meth:`close`) when omitted.
    threads:
        Passed to ``kbo --threads``.
    """

    def __init__(
        self,
        *,
        executable: str = "kbo",
        workdir: Optional[str | Path] = None,
        threads: int = 1,
    ) -> None:
        self.executable = executable
        self.threads = int(threads)
        self._owns_workdir = workdir is None
        self.workdir = Path(workdir) if workdir is not None else Path(tempfile.mkdtemp(prefix="kboview-"))
        self.workdir.mkdir(parents=True, exist_ok=True)
        self._counter = itertools.count()

    def __enter__(self) -> "KboCliBackend":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_workdir:
            shutil.rmtree(self.workdir, ignore_errors=True)

    def _exe(self) -> str:
        return ensure_executable_in_path(self.executable, hint=KBO_INSTALL_HINT)

    def _stage(self, stem: str, records: Sequence[Tuple[str, bytes]]) -> Path:
        path = self.workdir / f"{stem}_{next(self._counter)}.fa"
        return write_fasta(path, records)

    @contextmanager
    def _staged(self, stem: str, records: Sequence[Tuple[str, bytes]]) -> Iterator[Path]:
        """Stage a one-off input file and remove it when the command is done."""
        path = self._stage(stem, records)
        try:
            yield path
        finally:
            path.unlink(missing_ok=True)

    def build_index(self, sequence_buffers: Sequence[bytes], options: BuildOptions) -> KboIndexFiles:
        fasta = self._stage("index", [(f"seq{i}", buf) for i, buf in enumerate(sequence_buffers)])
        prefix = fasta.with_suffix("")
        cmd = [self._exe(), "build", *build_flags(options)]
        cmd += ["--threads", str(self.threads), "--output-prefix", str(prefix), str(fasta)]
        run_command(cmd, check=True)
        return KboIndexFiles(prefix=prefix, fasta=fasta, options=options)

    def find(self, query: bytes, index: KboIndexFiles, options: AlignmentOptions) -> List[RawMatch]:
        with self._staged("query", [("query", query)]) as query_fa:
            cmd = [
                self._exe(),
                "find",
                "--index",
                str(index.prefix),
                "--max-error-prob",
                repr(options.max_error_prob),
                "--max-gap-len",
                str(options.max_gap_len),
                "--threads",
                str(self.threads),
                str(query_fa),
            ]
            cp = run_command(cmd, check=True)
        return parse_find_output(cp.stdout or "")

    def call_variants(self, index: KboIndexFiles, contig: bytes, options: AlignmentOptions) -> List[RawVariant]:
        with self._staged("contig", [("contig", contig)]) as ref_fa:
            cmd = [self._exe(), "call", *build_flags(index.options)]
            cmd += [
                "--max-error-prob",
                repr(options.max_error_prob),
                "--threads",
                str(self.threads),
                "--reference",
                str(ref_fa),
                str(index.fasta),
            ]
            cp = run_command(cmd, check=True)
        out_vcf = self.workdir / f"call_{next(self._counter)}.vcf"
        out_vcf.write_text(cp.stdout or "", encoding="utf-8")
        try:
            return parse_call_output(out_vcf)
        finally:
            out_vcf.unlink(missing_ok=True)

    def map_consensus(self, reference_contig: bytes, index: KboIndexFiles, options: AlignmentOptions) -> bytes:
        with self._staged("contig", [("contig", reference_contig)]) as ref_fa:
            cmd = [self._exe(), "map", *build_flags(index.options)]
            cmd += [
                "--max-error-prob",
                repr(options.max_error_prob),
                "--threads",
                str(self.threads),
                "--reference",
                str(ref_fa),
            ]
            if options.call_variants:
                cmd.append("--do-vc")
            if options.fill_gaps:
                cmd.append("--do-gapfill")
            cmd.append(str(index.fasta))
            cp = run_command(cmd, check=True)
        out_fa = self.workdir / f"map_{next(self._counter)}.fa"
        out_fa.write_text(cp.stdout or "", encoding="utf-8")
        try:
            return parse_map_output(out_fa)
        finally:
            out_fa.unlink(missing_ok=True)


def parse_find_output(text: str) -> List[RawMatch]:
    """Convert ``kbo find`` TSV output back into 0-based forward match runs.

    ``kbo find`` reports both strands of its input; kboview searches each
    strand separately, so only '+' rows describe the sequence that was passed.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    reader = csv.DictReader(lines, delimiter="\t")
    out: List[RawMatch] = []
    for row in reader:
        if row.get("strand", "+") != "+":
            continue
        start = int(row["q.start"]) - 1
        end = int(row["q.end"]) - 1
        length = end - start + 1
        mismatches = int(row.get("mismatches") or 0)
        gap_bases = int(row.get("gap_bases") or 0)
        identity = float(row.get("identity") or 0.0)
        matches = int(round(identity / 100.0 * length))
        out.append(
            RawMatch(
                start=start,
                end=end,
                matches=matches,
                mismatches=mismatches,
                gap_bases=gap_bases,
                gap_opens=int(row.get("gap_opens") or 0),
            )
        )
    return out


def parse_call_output(vcf_path: str | Path) -> List[RawVariant]:
    """Read a ``kbo call`` VCF and strip the indel padding base again."""
    variants: List[RawVariant] = []
    with pysam.VariantFile(str(vcf_path)) as vcf:
        for rec in vcf:
            ref = rec.ref or ""
            for alt in rec.alts or ():
                if len(ref) != len(alt):
                    variants.append(
                        RawVariant(
                            ref_chars=ref[1:].encode("ascii"),
                            query_chars=alt[1:].encode("ascii"),
                            query_pos=int(rec.pos),
                        )
                    )
                else:
                    variants.append(
                        RawVariant(
                            ref_chars=ref.encode("ascii"),
                            query_chars=alt.encode("ascii"),
                            query_pos=int(rec.pos) - 1,
                        )
                    )
    return variants


def parse_map_output(fasta_path: str | Path) -> bytes:
    """Concatenate the sequences of a ``kbo map`` FASTA output.

    Gap characters are kept; they mark reference positions without coverage.
    """
    chunks: List[bytes] = []
    with pysam.FastxFile(str(fasta_path)) as fh:
        for entry in fh:
            chunks.append((entry.sequence or "").encode("ascii"))
    return b"".join(chunks)
