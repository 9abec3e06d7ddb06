"""Command line entry point: ``splicetracks {plan,run-job,aggregate,run}``."""

from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from pathlib import Path
from typing import List, Optional

from SpliceTracks import job_list
from SpliceTracks.config import OUTPUT_NAMES, PIPELINE_CONFIG, STRANDS
from SpliceTracks.errors import SpliceTracksError
from SpliceTracks.job_worker import run_job
from SpliceTracks.models import SequenceRecord
from SpliceTracks.pipeline import PipelineSettings, aggregate_run, plan_run, run_pipeline
from SpliceTracks.reference import FastaSequenceProvider, load_chrom_sizes
from SpliceTracks.scorer import load_scorer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def _load_records(reference: str, chrom_sizes: Optional[str]) -> List[SequenceRecord]:
    if chrom_sizes:
        return load_chrom_sizes(chrom_sizes)
    return FastaSequenceProvider(reference).sequences()


def _settings(args: argparse.Namespace) -> PipelineSettings:
    return PipelineSettings(
        chunk_size=args.chunk_size,
        overlap=args.overlap,
        min_size=args.min_size,
        max_batch_count=args.max_batch_count,
        seed=args.seed,
        resolution=args.resolution,
        floor=args.floor,
        workers=getattr(args, "workers", None),
        bigwig=getattr(args, "bigwig", False),
    )


# ──────────────────────────────────────────────────────────────────────────────
# SUBCOMMANDS
# ──────────────────────────────────────────────────────────────────────────────

def cmd_plan(args: argparse.Namespace) -> int:
    records = _load_records(args.reference, args.chrom_sizes)
    units, jobs = plan_run(records, args.reference, args.out_dir, _settings(args), args.scorer)
    print(f"{len(units)} units, {len(jobs)} jobs → {Path(args.out_dir) / OUTPUT_NAMES['job_list']}")
    return 0


def cmd_run_job(args: argparse.Namespace) -> int:
    try:
        job = job_list.find_job(job_list.read_manifest(args.manifest), args.job_id)
    except (KeyError, ValueError) as exc:
        logger.error(f"Cannot load job {args.job_id} from {args.manifest}: {exc}")
        return 1
    provider = FastaSequenceProvider(job.reference)
    scorer = load_scorer(args.scorer)
    run_job(job, provider, scorer, args.out_dir)
    return 0


def cmd_aggregate(args: argparse.Namespace) -> int:
    records = load_chrom_sizes(args.chrom_sizes)
    jobs = job_list.read_manifest(args.manifest)
    if args.strand:
        jobs = [job for job in jobs if job.strand == args.strand]
    tracks, errors = aggregate_run(
        records,
        jobs,
        args.artifact_dir,
        args.out_dir,
        bigwig=args.bigwig,
        chrom_sizes_path=args.chrom_sizes,
    )
    for strand, written in tracks.items():
        for path in written.values():
            print(path)
    return 1 if errors else 0


def cmd_run(args: argparse.Namespace) -> int:
    records = _load_records(args.reference, args.chrom_sizes)
    summary = run_pipeline(
        records,
        args.reference,
        args.out_dir,
        provider_factory=partial(FastaSequenceProvider, args.reference),
        scorer_factory=partial(load_scorer, args.scorer),
        settings=_settings(args),
        scorer_target=args.scorer,
    )
    for strand, written in summary.tracks.items():
        for path in written.values():
            print(path)
    return 0 if summary.ok else 1


# ──────────────────────────────────────────────────────────────────────────────
# PARSER
# ──────────────────────────────────────────────────────────────────────────────

def _add_planning_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("reference", help="Uncompressed FASTA (indexed on first use)")
    parser.add_argument("--scorer", required=True, help="Scorer factory as module:callable")
    parser.add_argument("--out-dir", required=True, type=Path)
    parser.add_argument("--chrom-sizes", default=None,
                        help="name<TAB>length file; defaults to the FASTA index")
    parser.add_argument("--chunk-size", type=int, default=PIPELINE_CONFIG['chunk_size'])
    parser.add_argument("--overlap", type=int, default=PIPELINE_CONFIG['overlap'])
    parser.add_argument("--min-size", type=int, default=PIPELINE_CONFIG['min_size'])
    parser.add_argument("--max-batch-count", type=int, default=PIPELINE_CONFIG['max_batch_count'])
    parser.add_argument("--seed", type=int, default=PIPELINE_CONFIG['seed'])
    parser.add_argument("--resolution", type=int, default=PIPELINE_CONFIG['resolution'])
    parser.add_argument("--floor", type=float, default=PIPELINE_CONFIG['floor'])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splicetracks",
        description="Genome-wide splice-site probability tracks",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Plan units and write the job list")
    _add_planning_options(plan)
    plan.set_defaults(func=cmd_plan)

    run_one = sub.add_parser("run-job", help="Execute a single job from a manifest")
    run_one.add_argument("--manifest", required=True, type=Path)
    run_one.add_argument("--job-id", required=True, type=int)
    run_one.add_argument("--scorer", required=True)
    run_one.add_argument("--out-dir", required=True, type=Path)
    run_one.set_defaults(func=cmd_run_job)

    aggregate = sub.add_parser("aggregate", help="Concatenate job artifacts into tracks")
    aggregate.add_argument("--manifest", required=True, type=Path)
    aggregate.add_argument("--chrom-sizes", required=True, type=Path)
    aggregate.add_argument("--artifact-dir", required=True, type=Path)
    aggregate.add_argument("--out-dir", required=True, type=Path)
    aggregate.add_argument("--strand", choices=list(STRANDS), default=None,
                           help="Aggregate one strand only")
    aggregate.add_argument("--bigwig", action="store_true", help="Also write bigWig files")
    aggregate.set_defaults(func=cmd_aggregate)

    run = sub.add_parser("run", help="Plan, execute locally and aggregate")
    _add_planning_options(run)
    run.add_argument("--workers", type=int, default=None,
                     help="Worker processes (default: sized from CPU and RAM)")
    run.add_argument("--bigwig", action="store_true", help="Also write bigWig files")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    # run-job instances share an output directory; their logs go to the scheduler
    log_file = None if args.command == "run-job" else args.out_dir / OUTPUT_NAMES['log']
    setup_logging(log_file, args.verbose)

    try:
        return args.func(args)
    except SpliceTracksError as exc:
        logger.error(f"{args.command} failed: {type(exc).__name__}: {exc}")
        return 1
    except (ImportError, AttributeError, TypeError, ValueError, OSError) as exc:
        # bad --scorer target, unreadable or malformed manifest
        logger.error(f"{args.command} failed: {type(exc).__name__}: {exc}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
