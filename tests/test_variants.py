import datetime as dt

import pytest

from conftest import FakeBackend, collection

from kboview.errors import EmptyInputError, ErrorCode, NoResults
from kboview.models import CallResults, IndexHandle, RawVariant
from kboview.variants import (
    format_variant,
    format_variants,
    format_vcf,
    format_vcf_header,
    call_variants,
    split_flanking_variants,
)

CONTIG = b"ACGTXACGTACGTACGTACG"


def test_flanking_split_when_only_ends_differ():
    pair = split_flanking_variants(RawVariant(b"ATG", b"GTA", 10))
    assert pair is not None
    first, last = pair
    assert (first.ref_chars, first.query_chars, first.query_pos) == (b"A", b"G", 10)
    assert (last.ref_chars, last.query_chars, last.query_pos) == (b"G", b"A", 12)


def test_no_split_when_only_middle_differs():
    assert split_flanking_variants(RawVariant(b"ATG", b"ACG", 10)) is None
    records = format_variants([RawVariant(b"ATG", b"ACG", 10)], CONTIG, "chr1")
    assert len(records) == 1
    assert (records[0].ref_base, records[0].alt_base, records[0].position) == ("ATG", "ACG", 11)


@pytest.mark.parametrize(
    "ref, query",
    [
        (b"A", b"G"),  # single base
        (b"ATG", b"GTG"),  # last base equal
        (b"ATGC", b"GAGA"),  # interior differs
        (b"ATG", b"GA"),  # lengths differ
    ],
)
def test_no_split_cases(ref, query):
    assert split_flanking_variants(RawVariant(ref, query, 3)) is None


def test_split_records_are_single_base_substitutions():
    records = format_variants([RawVariant(b"ATG", b"GTA", 10)], CONTIG, "chr1")
    assert [(r.position, r.ref_base, r.alt_base, r.info) for r in records] == [
        (11, "A", "G", "."),
        (13, "G", "A", "."),
    ]


def test_indel_is_padded_with_preceding_base():
    rec = format_variant(RawVariant(b"", b"A", 5), CONTIG, "chr1")
    assert CONTIG[4:5] == b"X"
    assert rec.ref_base == "X"
    assert rec.alt_base == "XA"
    assert rec.position == 5
    assert rec.info == "INDEL"


def test_deletion_padding():
    rec = format_variant(RawVariant(b"GTA", b"", 2), b"ACGTACGT", "chr1")
    assert (rec.ref_base, rec.alt_base, rec.position) == ("CGTA", "C", 2)


def test_indel_at_contig_start_is_padded_on_the_right():
    rec = format_variant(RawVariant(b"AC", b"", 0), b"ACGT", "chr1")
    assert (rec.ref_base, rec.alt_base, rec.position) == ("ACG", "G", 1)


def test_fixed_columns():
    rec = format_variant(RawVariant(b"A", b"T", 0), b"ACGT", "chr1")
    assert (rec.id, rec.qual, rec.filter, rec.info, rec.format, rec.sample) == (
        ".",
        ".",
        ".",
        ".",
        "GT",
        "1",
    )
    assert rec.position == 1


def test_header_keeps_contig_order():
    header = format_vcf_header(
        "ref.fa", [("chr1 desc", 100), ("chr2", 50)], date=dt.date(2024, 3, 1)
    ).splitlines()
    assert header[0] == "##fileformat=VCFv4.4"
    assert header[1] == "##contig=<ID=chr1,length=100>"
    assert header[2] == "##contig=<ID=chr2,length=50>"
    assert "##fileDate=20240301" in header
    assert "##reference=ref.fa" in header
    assert header[-1] == "##phasing=none"
    assert any(line.startswith("##source=kboview") for line in header)


def test_vcf_text_uses_header_order_not_record_order():
    results = CallResults(
        calls=[format_variant(RawVariant(b"A", b"T", 0), b"ACGT", "chr2")],
        contig_info=[("chr1 desc", 100), ("chr2", 50)],
        ref_file="ref.fa",
    )
    text = format_vcf(results, sample_name="q.fa", date=dt.date(2024, 3, 1))
    lines = text.splitlines()
    assert lines[1] == "##contig=<ID=chr1,length=100>"
    columns = [l for l in lines if l.startswith("#CHROM")]
    assert columns == ["#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tq.fa"]
    assert lines[-1] == "chr2\t1\t.\tA\tT\t.\t.\t.\tGT\t1"


def test_call_variants_in_contig_order():
    c1 = b"ACGTACGTAC"
    c2 = b"TTGACCAGTA"
    backend = FakeBackend(
        variants={
            c1: [RawVariant(b"G", b"C", 2)],
            c2: [RawVariant(b"CCA", b"", 4), RawVariant(b"T", b"A", 0)],
        }
    )
    reference = [collection("ref.fa", ("chr1 first", c1), ("chr2", c2))]
    handle = IndexHandle(index=b"query", label="q.fa", total_bases=5)

    results = call_variants(reference, handle, backend)

    assert isinstance(results, CallResults)
    assert results.ref_file == "ref.fa"
    assert results.contig_info == [("chr1 first", 10), ("chr2", 10)]
    assert [(r.chromosome, r.position, r.ref_base, r.alt_base) for r in results.calls] == [
        ("chr1", 3, "G", "C"),
        ("chr2", 4, "ACCA", "A"),
        ("chr2", 1, "T", "A"),
    ]


def test_no_variants_is_a_result_not_an_error():
    reference = [collection("ref.fa", ("chr1", b"ACGT"))]
    handle = IndexHandle(index=b"ACGT", label="q.fa", total_bases=4)
    outcome = call_variants(reference, handle, FakeBackend())
    assert isinstance(outcome, NoResults)
    assert outcome.code is ErrorCode.NO_RESULTS


def test_call_variants_rejects_empty_inputs():
    handle = IndexHandle(index=b"", label="q.fa", total_bases=0)
    with pytest.raises(EmptyInputError):
        call_variants([collection("ref.fa", ("chr1", b"ACGT"))], handle, FakeBackend())
    with pytest.raises(EmptyInputError):
        call_variants([], IndexHandle(index=b"A", label="q", total_bases=1), FakeBackend())
