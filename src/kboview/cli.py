from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .backend import KboCliBackend
from .consensus import write_consensus
from .doctor import CHECK_ORDER, collect_checks
from .errors import EmptyInputError, KboviewError, NoResults, ParseFailureError
from .external import KBO_INSTALL_HINT, ExternalCommandError, ensure_executable_in_path
from .options import AlignmentOptions, BuildOptions, OutputOptions, RunOptions
from .plotting import plot_alignment_lengths, plot_identity_hist, plot_variants_per_contig
from .report import render_report
from .runner import CallOutcome, FindOutcome, MapOutcome, Mode, Outcome, run_mode
from .seqio import read_collections
from .table import SortDirection
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .variants import write_vcf

FLAT_OUTPUTS = {
    Mode.FIND: "alignments.tsv",
    Mode.CALL: "variants.vcf",
    Mode.MAP: "consensus.fasta",
}


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, (ExternalCommandError, KboviewError)):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_common_args(p: argparse.ArgumentParser, mode: Mode) -> None:
    p.add_argument(
        "--reference",
        "-r",
        nargs="+",
        required=True,
        type=_path_exists,
        help="Reference FASTA/FASTQ file(s) (.gz accepted).",
    )
    p.add_argument(
        "--query",
        "-q",
        nargs="+",
        required=True,
        type=_path_exists,
        help="Query FASTA/FASTQ file(s) (.gz accepted).",
    )
    p.add_argument("--outdir", required=True, help="Output directory.")

    # Index construction
    p.add_argument("--kmer-size", type=int, default=31, help="k-mer size (clamped to 2-255).")
    p.add_argument("--prefix-precalc", type=int, default=8, help="Prefix precalc length (>= 1).")
    p.add_argument(
        "--no-dedup-batches",
        action="store_true",
        help="Do not deduplicate k-mer batches during index construction.",
    )
    if mode is not Mode.MAP:
        p.add_argument(
            "--no-build-select",
            action="store_true",
            help="Skip building select support into the index (map always builds it).",
        )

    # Alignment
    p.add_argument(
        "--max-error-prob",
        type=float,
        default=1e-7,
        help="Maximum error probability for a random match (clamped into (0, 1)).",
    )
    if mode is Mode.FIND:
        p.add_argument(
            "--min-len", type=int, default=100, help="Hide alignments shorter than this (bp)."
        )
        p.add_argument(
            "--max-gap-len", type=int, default=0, help="Merge alignments separated by gaps up to this length."
        )
        p.add_argument(
            "--detailed",
            action="store_true",
            help="Index each reference contig separately and report per-contig hits.",
        )
    if mode is Mode.MAP:
        p.add_argument("--no-call-variants", action="store_true", help="Do not call variants when mapping.")
        p.add_argument("--no-fill-gaps", action="store_true", help="Do not fill gaps when mapping.")

    # Outputs
    p.add_argument(
        "--flat",
        action="store_true",
        help="Write a plain TSV/VCF/FASTA file instead of the HTML report.",
    )
    p.add_argument("--sort-by", default=None, help="Sort the result table by this column.")
    p.add_argument("--descending", action="store_true", help="Sort in descending order.")

    # Execution
    p.add_argument("--kbo", default="kbo", help="Name or path of the kbo executable.")
    p.add_argument("--threads", type=int, default=1, help="Threads passed to kbo.")
    p.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="kboview",
        description=(
            "kboview: compare a reference and query assemblies with the kbo sequence index. "
            "Find local alignments, call variants or build a reference-guided consensus."
        ),
    )
    p.add_argument("--version", action="version", version=f"kboview {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for the three analysis modes.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference and query FASTA pair for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # find / call / map
    # -----------------
    f = sub.add_parser("find", help="Find local alignments of the queries in the reference.")
    _add_common_args(f, Mode.FIND)

    c = sub.add_parser("call", help="Call variants in the reference relative to the queries.")
    _add_common_args(c, Mode.CALL)

    m = sub.add_parser("map", help="Map the reference onto each query and write a consensus.")
    _add_common_args(m, Mode.MAP)

    # -----------------
    # doctor
    # -----------------
    d = sub.add_parser(
        "doctor",
        help="Check your environment for the kbo executable and Python dependencies.",
    )
    d.add_argument("--kbo", default="kbo", help="Name or path of the kbo executable.")
    d.add_argument("--dry-run", action="store_true", help="Print checks without exiting nonzero.")
    d.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def _run_options(args: argparse.Namespace, mode: Mode) -> RunOptions:
    build = BuildOptions(
        kmer_size=int(args.kmer_size),
        dedup_batches=not bool(args.no_dedup_batches),
        prefix_precalc=int(args.prefix_precalc),
        select_support=not bool(getattr(args, "no_build_select", False)),
    )
    alignment = AlignmentOptions(
        max_error_prob=float(args.max_error_prob),
        min_len=int(getattr(args, "min_len", 100)),
        max_gap_len=int(getattr(args, "max_gap_len", 0)),
        call_variants=not bool(getattr(args, "no_call_variants", False)),
        fill_gaps=not bool(getattr(args, "no_fill_gaps", False)),
    )
    output = OutputOptions(interactive=not bool(args.flat), detailed=bool(getattr(args, "detailed", False)))
    return RunOptions(build=build, alignment=alignment, output=output).normalized()


def _options_summary(options: RunOptions, mode: Mode) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "kmer_size": options.build.kmer_size,
        "prefix_precalc": options.build.prefix_precalc,
        "dedup_batches": options.build.dedup_batches,
        "select_support": options.build.select_support or mode is Mode.MAP,
        "max_error_prob": options.alignment.max_error_prob,
    }
    if mode is Mode.FIND:
        summary.update(
            min_len=options.alignment.min_len,
            max_gap_len=options.alignment.max_gap_len,
            detailed=options.output.detailed,
        )
    if mode is Mode.MAP:
        summary.update(
            call_variants=options.alignment.call_variants,
            fill_gaps=options.alignment.fill_gaps,
        )
    return summary


def _apply_sort(outcome: Outcome, args: argparse.Namespace) -> None:
    table = getattr(outcome, "table", None)
    if table is None or not args.sort_by:
        return
    direction = SortDirection.DESCENDING if args.descending else SortDirection.ASCENDING
    table.set_sort(args.sort_by, direction)


def _write_flat(outcome: Outcome, mode: Mode, outdir: Path) -> Path:
    out = outdir / FLAT_OUTPUTS[mode]
    if isinstance(outcome, FindOutcome):
        out.write_text(outcome.table.to_text(sorted_view=True), encoding="utf-8")
    elif isinstance(outcome, CallOutcome):
        write_vcf(out, outcome.results, records=outcome.table.view())
    elif isinstance(outcome, MapOutcome):
        write_consensus(out, outcome.consensus)
    return out


def _write_plots(outcome: Outcome, outdir: Path) -> Dict[str, str]:
    plots_dir = outdir / "plots"
    plots: Dict[str, str] = {}
    if isinstance(outcome, FindOutcome):
        shown = outcome.table.filtered()
        plot_alignment_lengths(records=shown, out_png=plots_dir / "alignment_lengths.png")
        plot_identity_hist(records=shown, out_png=plots_dir / "identity_hist.png")
        plots["Alignment lengths"] = str(Path("plots") / "alignment_lengths.png")
        plots["Identity"] = str(Path("plots") / "identity_hist.png")
    elif isinstance(outcome, CallOutcome):
        plot_variants_per_contig(records=outcome.results.calls, out_png=plots_dir / "variants_per_contig.png")
        plots["Variants per contig"] = str(Path("plots") / "variants_per_contig.png")
    return plots


def _outcome_counts(outcome: Outcome) -> Dict[str, Any]:
    if isinstance(outcome, NoResults):
        return {"no_results": True, "code": int(outcome.code), "message": outcome.message}
    if isinstance(outcome, FindOutcome):
        return {"alignments_total": len(outcome.records), "alignments_shown": len(outcome.table.filtered())}
    if isinstance(outcome, CallOutcome):
        indels = sum(1 for r in outcome.results.calls if r.info == "INDEL")
        return {
            "variants_total": len(outcome.results.calls),
            "indels": indels,
            "substitutions": len(outcome.results.calls) - indels,
        }
    return {
        "consensus": [{"label": c.label, "length": len(c.bases)} for c in outcome.consensus],
    }


def cmd_quickstart() -> int:
    lines = [
        "kboview quickstart (copy/paste):",
        "",
        "0) Generate a toy reference/query pair:",
        "   kboview make-toy-data --outdir toy/",
        "",
        "1) Local alignments of the queries in the reference:",
        "   kboview find \\",
        "     --reference toy/toy_ref.fa \\",
        "     --query toy/toy_query.fa \\",
        "     --outdir results_find/",
        "   Outputs: results_find/report.html, results_find/summary.json",
        "",
        "2) Variant calling (reference vs queries):",
        "   kboview call \\",
        "     --reference toy/toy_ref.fa \\",
        "     --query toy/toy_query.fa \\",
        "     --outdir results_call/ --flat",
        "   Outputs: results_call/variants.vcf, results_call/summary.json",
        "",
        "3) Reference-guided consensus for each query contig:",
        "   kboview map \\",
        "     --reference toy/toy_ref.fa \\",
        "     --query toy/toy_query.fa \\",
        "     --outdir results_map/ --flat",
        "   Outputs: results_map/consensus.fasta, results_map/summary.json",
        "",
        "Tip: use --dry-run to validate inputs, and 'kboview doctor' to check for the kbo executable.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_analysis(args: argparse.Namespace, mode: Mode) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, f"{mode.value}.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("kboview")
    logger.info("kboview %s (%s)", __version__, mode.value)

    try:
        options = _run_options(args, mode)
        reference, ref_failures = read_collections(args.reference)
        queries, query_failures = read_collections(args.query)
        failures: List[ParseFailureError] = ref_failures + query_failures
        for f in failures:
            sys.stderr.write(f"Skipping unreadable input: {f}\n")
        if not reference:
            raise EmptyInputError("None of the reference files could be read.")
        if not queries:
            raise EmptyInputError("None of the query files could be read.")

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Reference: {', '.join(f'{c.label} ({len(c.records)} contigs, {c.total_bases} bp)' for c in reference)}")
            print(f"Queries: {', '.join(f'{c.label} ({len(c.records)} contigs, {c.total_bases} bp)' for c in queries)}")
            for key, value in _options_summary(options, mode).items():
                print(f"  {key} = {value}")
            try:
                print(f"kbo executable: {ensure_executable_in_path(args.kbo)}")
            except FileNotFoundError:
                print(f"kbo executable: NOT FOUND ('{args.kbo}')\n{KBO_INSTALL_HINT}")
            print("Planned outputs:")
            if options.output.interactive:
                print(f"  report.html -> {outdir / 'report.html'}")
            else:
                print(f"  {FLAT_OUTPUTS[mode]} -> {outdir / FLAT_OUTPUTS[mode]}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        with KboCliBackend(executable=args.kbo, threads=int(args.threads)) as backend:
            outcome = run_mode(mode, reference, queries, backend, options, progress=True)
        _apply_sort(outcome, args)

        outputs: List[str] = []
        message = None
        if isinstance(outcome, NoResults):
            message = outcome.message
            print(outcome.message)
        elif isinstance(outcome, FindOutcome) and not outcome.table.filtered():
            message = (
                f"{len(outcome.records)} alignment(s) found, "
                f"none with length >= {options.alignment.min_len}."
            )
            print(message)
        elif not options.output.interactive:
            flat = _write_flat(outcome, mode, outdir)
            outputs.append(flat.name)
            logger.info("Wrote %s", flat)
            print(str(flat))

        summary = {
            "version": __version__,
            "mode": mode.value,
            "reference": [c.label for c in reference],
            "queries": [c.label for c in queries],
            "parse_failures": [str(f) for f in failures],
            "options": _options_summary(options, mode),
            "results": _outcome_counts(outcome),
        }
        write_json(outdir / "summary.json", summary)

        if options.output.interactive:
            plots = {} if isinstance(outcome, NoResults) else _write_plots(outcome, outdir)
            consensus = None
            if isinstance(outcome, MapOutcome):
                consensus = [
                    {"label": c.label, "length": len(c.bases), "gaps": c.bases.count(b"-")}
                    for c in outcome.consensus
                ]
            report_path = render_report(
                outdir=outdir,
                version=__version__,
                mode=mode.value,
                reference=[c.label for c in reference],
                queries=[c.label for c in queries],
                options=_options_summary(options, mode),
                table=getattr(outcome, "table", None),
                consensus=consensus,
                message=message,
                failures=[str(f) for f in failures],
                plots=plots,
                outputs=outputs,
            )
            print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def cmd_doctor(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    checks = collect_checks(executable=args.kbo)

    lines = []
    ok_all = True
    for name in CHECK_ORDER:
        r = checks[name]
        status = "OK" if r.ok else "MISSING"
        lines.append(f"{name:7s} : {status:7s}  {r.detail}")
        if not r.ok:
            ok_all = False

    print("\n".join(lines))

    for name in CHECK_ORDER:
        r = checks[name]
        if not r.ok and r.howto:
            print("\n---")
            print(f"How to install/fix '{name}':")
            print(r.howto)

    if args.dry_run:
        return 0
    return 0 if ok_all else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd in ("find", "call", "map"):
        return cmd_analysis(args, Mode(args.cmd))
    if args.cmd == "doctor":
        return cmd_doctor(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
