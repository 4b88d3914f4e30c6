from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from . import __version__
from .backend import SequenceIndexBackend
from .errors import EmptyInputError, NoResults
from .models import CallResults, IndexHandle, RawVariant, SequenceCollection, VariantRecord
from .options import AlignmentOptions
from .utils import first_token

logger = logging.getLogger(__name__)

VCF_VERSION = "VCFv4.4"
VCF_COLUMNS = ["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO", "FORMAT"]
DEFAULT_SAMPLE_NAME = "SAMPLE"

NO_VARIANTS_MESSAGE = "No variants detected."


def split_flanking_variants(variant: RawVariant) -> Optional[Tuple[RawVariant, RawVariant]]:
    """Split a substitution block whose only differences are its two ends.

    Returns two single-base variants (at ``query_pos`` and
    ``query_pos + length - 1``) when the alleles have equal length > 1, the
    first and last bases differ and every interior base matches; otherwise
    None.
    """
    ref, query = variant.ref_chars, variant.query_chars
    n = len(ref)
    if n != len(query) or n <= 1:
        return None
    if ref[0] == query[0] or ref[-1] == query[-1]:
        return None
    if ref[1:-1] != query[1:-1]:
        return None
    return (
        RawVariant(ref_chars=ref[:1], query_chars=query[:1], query_pos=variant.query_pos),
        RawVariant(ref_chars=ref[-1:], query_chars=query[-1:], query_pos=variant.query_pos + n - 1),
    )


def format_variant(variant: RawVariant, contig_seq: bytes, chromosome: str) -> VariantRecord:
    """Convert a raw variant into a VCF record with 1-based POS.

    Indels are padded with the contig base preceding the event so neither
    allele is empty, and POS then points at that padding base. An indel at
    the very start of the contig has no preceding base and is padded with the
    base following the event instead (POS stays 1).
    """
    ref = variant.ref_chars.decode("ascii")
    alt = variant.query_chars.decode("ascii")
    pos0 = variant.query_pos
    is_indel = len(ref) != len(alt)

    if is_indel:
        if pos0 > 0:
            pad = chr(contig_seq[pos0 - 1])
            ref, alt = pad + ref, pad + alt
            position = pos0
        else:
            after = pos0 + len(ref)
            if after >= len(contig_seq):
                raise ValueError(
                    f"Cannot pad indel at {chromosome}:{pos0}; contig has no flanking base"
                )
            pad = chr(contig_seq[after])
            ref, alt = ref + pad, alt + pad
            position = 1
    else:
        position = pos0 + 1

    return VariantRecord(
        chromosome=chromosome,
        position=position,
        ref_base=ref,
        alt_base=alt,
        info="INDEL" if is_indel else ".",
    )


def format_variants(variants: Iterable[RawVariant], contig_seq: bytes, chromosome: str) -> List[VariantRecord]:
    out: List[VariantRecord] = []
    for v in variants:
        pair = split_flanking_variants(v)
        if pair is not None:
            out.extend(format_variant(x, contig_seq, chromosome) for x in pair)
        else:
            out.append(format_variant(v, contig_seq, chromosome))
    return out


def format_vcf_header(
    ref_file: str,
    contig_info: Sequence[Tuple[str, int]],
    *,
    date: Optional[_dt.date] = None,
) -> str:
    """Build the ``##`` meta-information block.

    One ``##contig`` line per contig in input order (ID is the first token of
    the contig name), then the file date, source, reference and phasing lines.
    """
    date = date or _dt.date.today()
    lines = [f"##fileformat={VCF_VERSION}"]
    for name, length in contig_info:
        lines.append(f"##contig=<ID={first_token(name)},length={int(length)}>")
    lines.extend(
        [
            f"##fileDate={date.strftime('%Y%m%d')}",
            f"##source=kboview v{__version__}",
            f"##reference={ref_file}",
            "##phasing=none",
        ]
    )
    return "\n".join(lines) + "\n"


def format_vcf(
    results: CallResults,
    *,
    records: Optional[Sequence[VariantRecord]] = None,
    sample_name: str = DEFAULT_SAMPLE_NAME,
    date: Optional[_dt.date] = None,
) -> str:
    """Render a complete tab-delimited VCF text.

    ``records`` overrides ``results.calls`` (e.g. with a sorted or filtered
    view); the header is always built from ``results.contig_info``.
    """
    rows = results.calls if records is None else records
    out = [format_vcf_header(results.ref_file, results.contig_info, date=date)]
    out.append("\t".join(VCF_COLUMNS + [sample_name]) + "\n")
    for r in rows:
        out.append(
            "\t".join(
                [
                    r.chromosome,
                    str(r.position),
                    r.id,
                    r.ref_base,
                    r.alt_base,
                    r.qual,
                    r.filter,
                    r.info,
                    r.format,
                    r.sample,
                ]
            )
            + "\n"
        )
    return "".join(out)


def write_vcf(path: str | Path, results: CallResults, **kwargs) -> Path:
    out = Path(path)
    out.write_text(format_vcf(results, **kwargs), encoding="utf-8")
    return out


def call_variants(
    reference: Sequence[SequenceCollection],
    handle: IndexHandle,
    backend: SequenceIndexBackend,
    options: Optional[AlignmentOptions] = None,
) -> Union[CallResults, NoResults]:
    """Scan every contig of the first reference collection against ``handle``.

    Returns
    -------
    CallResults
        Records in contig order, with header contig info.
    NoResults
        If the scan completed without a single variant.

    Raises
    ------
    EmptyInputError
        If no reference collection is given or the index holds no bases.
    """
    if not reference:
        raise EmptyInputError("No reference sequences supplied.")
    if handle.total_bases == 0:
        raise EmptyInputError("The query index is empty.")
    options = (options or AlignmentOptions()).normalized()

    ref_collection = reference[0]
    contig_info: List[Tuple[str, int]] = []
    calls: List[VariantRecord] = []

    for record in ref_collection.records:
        contig_info.append((record.name, len(record.bases)))
        chromosome = first_token(record.name)
        raw = backend.call_variants(handle.index, record.bases, options)
        formatted = format_variants(raw, record.bases, chromosome)
        logger.info("%s: %d raw variant(s) -> %d record(s)", chromosome, len(raw), len(formatted))
        calls.extend(formatted)

    if not calls:
        return NoResults(NO_VARIANTS_MESSAGE)
    return CallResults(calls=calls, contig_info=contig_info, ref_file=ref_collection.label)
