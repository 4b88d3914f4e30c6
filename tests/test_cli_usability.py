import json
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import FakeBackend, random_bases

from kboview import cli
from kboview.models import RawVariant
from kboview.seqio import read_collection, write_fasta
from kboview.toy_data import make_toy_data
from kboview.utils import reverse_complement


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "kboview"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


class _ContextFake(FakeBackend):
    def __init__(self, *args, **kwargs):
        super().__init__(variants=_ContextFake.variants)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None


@pytest.fixture
def fake_kbo(monkeypatch):
    _ContextFake.variants = {}
    monkeypatch.setattr(cli, "KboCliBackend", _ContextFake)
    return _ContextFake


@pytest.fixture
def inputs(tmp_path):
    ref = random_bases(400, seed=31)
    ref_fa = write_fasta(tmp_path / "ref.fa", [("chr1 toy", ref[:250]), ("chr2", ref[250:])])
    query_fa = write_fasta(tmp_path / "query.fa", [("q1", ref[20:220]), ("q2", ref[:250])])
    return ref, str(ref_fa), str(query_fa)


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "kboview find" in cp.stdout
    assert "kboview call" in cp.stdout
    assert "kboview map" in cp.stdout


def test_make_toy_data(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0
    summary = json.loads(cp.stdout)
    assert Path(summary["ref_fa"]).exists()
    assert (toy_dir / "toy_ref.fa.fai").exists()
    assert (toy_dir / "toy_query.fa.fai").exists()
    assert [c["pos"] for c in summary["planted_variants"]] == [201, 400]


def test_toy_data_is_readable(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    ref = read_collection(toy["ref_fa"])
    query = read_collection(toy["query_fa"])
    assert [len(r) for r in ref.records] == [600, 400]
    assert [len(r) for r in query.records] == [597, 300]
    assert query.records[1].bases == reverse_complement(ref.records[1].bases[50:350])


def test_find_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "find"
    cp = _run_cli(
        [
            "find",
            "--reference",
            toy["ref_fa"],
            "--query",
            toy["query_fa"],
            "--outdir",
            str(outdir),
            "--dry-run",
        ]
    )
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert "report.html" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_missing_input_path_is_rejected(tmp_path: Path) -> None:
    cp = _run_cli(["call", "--reference", str(tmp_path / "nope.fa"), "--query", "x", "--outdir", str(tmp_path)])
    assert cp.returncode != 0
    assert "Path does not exist" in cp.stderr


def test_unreadable_queries_report_empty_input(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    empty = tmp_path / "empty.fa"
    empty.write_text("")
    cp = _run_cli(
        ["call", "--reference", toy["ref_fa"], "--query", str(empty), "--outdir", str(tmp_path / "o"), "--dry-run"]
    )
    assert cp.returncode == 2
    assert "[EMPTY_INPUT]" in cp.stderr
    assert "Skipping unreadable input" in cp.stderr


def test_doctor_dry_run_never_fails() -> None:
    cp = _run_cli(["doctor", "--kbo", "definitely-not-kbo-binary", "--dry-run"])
    assert cp.returncode == 0
    assert "MISSING" in cp.stdout
    assert "cargo install" in cp.stdout


def test_find_writes_report_and_plots(tmp_path, fake_kbo, inputs):
    _, ref_fa, query_fa = inputs
    outdir = tmp_path / "out"
    rc = cli.main(
        ["find", "-r", ref_fa, "-q", query_fa, "--outdir", str(outdir), "--sort-by", "length", "--descending"]
    )
    assert rc == 0
    html = (outdir / "report.html").read_text()
    assert "q1" in html and "q2" in html
    assert (outdir / "plots" / "alignment_lengths.png").exists()
    summary = json.loads((outdir / "summary.json").read_text())
    assert summary["results"]["alignments_shown"] == 2
    assert (outdir / "logs" / "find.log").exists()


def test_find_flat_writes_sorted_tsv(tmp_path, fake_kbo, inputs):
    _, ref_fa, query_fa = inputs
    outdir = tmp_path / "out"
    rc = cli.main(["find", "-r", ref_fa, "-q", query_fa, "--outdir", str(outdir), "--flat", "--sort-by", "length"])
    assert rc == 0
    lines = (outdir / "alignments.tsv").read_text().splitlines()
    assert lines[0].startswith("query\tref\tq.start")
    assert [line.split("\t")[5] for line in lines[1:]] == ["200", "250"]
    assert not (outdir / "report.html").exists()


def test_call_flat_writes_vcf(tmp_path, fake_kbo, inputs):
    ref, ref_fa, query_fa = inputs
    fake_kbo.variants = {ref[250:]: [RawVariant(ref[255:256], b"N", 5)]}
    outdir = tmp_path / "out"
    rc = cli.main(["call", "-r", ref_fa, "-q", query_fa, "--outdir", str(outdir), "--flat"])
    assert rc == 0
    text = (outdir / "variants.vcf").read_text()
    assert "##contig=<ID=chr1,length=250>\n##contig=<ID=chr2,length=150>" in text
    assert text.splitlines()[-1].startswith("chr2\t6\t.\t")


def test_map_flat_writes_consensus(tmp_path, fake_kbo, inputs):
    ref, ref_fa, query_fa = inputs
    outdir = tmp_path / "out"
    rc = cli.main(["map", "-r", ref_fa, "-q", query_fa, "--outdir", str(outdir), "--flat"])
    assert rc == 0
    text = (outdir / "consensus.fasta").read_text()
    assert text.startswith(">q1\n")
    assert ">q2\n" in text


def test_no_results_exit_zero(tmp_path, fake_kbo, inputs, capsys):
    _, ref_fa, query_fa = inputs
    rc = cli.main(["call", "-r", ref_fa, "-q", query_fa, "--outdir", str(tmp_path / "out")])
    assert rc == 0
    assert "No variants detected." in capsys.readouterr().out
    summary = json.loads((tmp_path / "out" / "summary.json").read_text())
    assert summary["results"]["no_results"] is True


def test_find_with_every_hit_below_min_len(tmp_path, fake_kbo, inputs, capsys):
    _, ref_fa, query_fa = inputs
    outdir = tmp_path / "out"
    rc = cli.main(["find", "-r", ref_fa, "-q", query_fa, "--outdir", str(outdir), "--min-len", "1000"])
    assert rc == 0
    assert "2 alignment(s) found, none with length >= 1000." in capsys.readouterr().out
    summary = json.loads((outdir / "summary.json").read_text())
    assert summary["results"] == {"alignments_total": 2, "alignments_shown": 0}
    assert "none with length" in (outdir / "report.html").read_text()


def test_unknown_sort_column_is_an_error(tmp_path, fake_kbo, inputs, capsys):
    _, ref_fa, query_fa = inputs
    rc = cli.main(["find", "-r", ref_fa, "-q", query_fa, "--outdir", str(tmp_path / "out"), "--sort-by", "bogus"])
    assert rc == 2
    assert "Unknown field" in capsys.readouterr().err
