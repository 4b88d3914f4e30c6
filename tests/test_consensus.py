import pytest

from conftest import FakeBackend, collection, random_bases

from kboview.consensus import format_consensus, format_consensus_block, map_consensus, write_consensus
from kboview.errors import EmptyInputError, NoResults
from kboview.models import ConsensusResult
from kboview.options import BuildOptions


def test_85_bases_wrap_at_80():
    block = format_consensus_block(ConsensusResult(label="q1", bases=b"A" * 85))
    assert block == ">q1\n" + "A" * 80 + "\n" + "A" * 5 + "\n"
    assert len(block.splitlines()) == 3
    assert block.endswith("\n")


def test_exact_multiple_has_no_empty_line():
    block = format_consensus_block(ConsensusResult(label="q1", bases=b"C" * 160))
    assert block.splitlines()[1:] == ["C" * 80, "C" * 80]


def test_blocks_concatenate_in_order(tmp_path):
    results = [ConsensusResult("b", b"AC"), ConsensusResult("a", b"GT")]
    assert format_consensus(results) == ">b\nAC\n>a\nGT\n"
    out = write_consensus(tmp_path / "consensus.fasta", results)
    assert out.read_text() == ">b\nAC\n>a\nGT\n"


def test_invalid_width():
    with pytest.raises(ValueError):
        format_consensus_block(ConsensusResult("q", b"A"), width=0)


def test_map_concatenates_reference_contigs_per_query():
    c1 = random_bases(120, seed=5)
    c2 = random_bases(60, seed=6)
    reference = [collection("ref.fa", ("c1", c1), ("c2", c2))]
    queries = [collection("q.fa", ("q_with_both", c1 + c2), ("q_with_c2", c2 + b"TTTT"))]
    backend = FakeBackend()

    results = map_consensus(reference, queries, backend)

    assert [r.label for r in results] == ["q_with_both", "q_with_c2"]
    assert results[0].bases == c1 + c2
    assert results[1].bases == b"-" * 120 + c2
    # one index per query record
    assert backend.built == [c1 + c2, c2 + b"TTTT"]


def test_map_without_output_is_no_results():
    class SilentBackend(FakeBackend):
        def map_consensus(self, reference_contig, index, options):
            return b""

    reference = [collection("ref.fa", ("c1", b"ACGTACGT"))]
    queries = [collection("q.fa", ("q", b"ACGT"))]
    outcome = map_consensus(reference, queries, SilentBackend())
    assert outcome == NoResults("No consensus sequence was produced.")


def test_map_needs_reference():
    with pytest.raises(EmptyInputError):
        map_consensus([], [collection("q.fa", ("q", b"ACGT"))], FakeBackend())


def test_map_always_builds_select_support():
    c1 = random_bases(40, seed=7)
    backend = FakeBackend()
    map_consensus(
        [collection("ref.fa", ("c1", c1))],
        [collection("q.fa", ("q1", c1), ("q2", c1 + b"AC"))],
        backend,
        build_options=BuildOptions(kmer_size=21, select_support=False),
    )

    assert [o.select_support for o in backend.build_options] == [True, True]
    assert {o.kmer_size for o in backend.build_options} == {21}
