"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Pipeline - Plan → Dispatch → Barrier → Aggregate                             │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Ties the stages together for one run:

        1. plan_run()       chrom sizes → units → jobs; writes chrom.sizes,
                            plan.tsv, jobs.jsonl and the cluster jobList
        2. executor         every job runs once (locally or on a cluster)
        3. aggregate_run()  after all jobs finished, each strand is
                            aggregated independently

    A failed job blocks only its own strand; the other strand is still
    aggregated so its tracks are usable while the failure is investigated.

OUTPUT LAYOUT::

    <out_dir>/
        chrom.sizes
        plan.tsv
        jobs.jsonl
        jobList
        results/job_000000.plus.txt ...
        tracks/plus.acceptor.wig, plus.donor.wig, minus.acceptor.wig, ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from SpliceTracks import job_list
from SpliceTracks.chunk_planner import ChunkPlanner
from SpliceTracks.config import OUTPUT_NAMES, PIPELINE_CONFIG, STRANDS
from SpliceTracks.errors import AggregationError
from SpliceTracks.local_executor import ExecutionReport, ParallelJobExecutor
from SpliceTracks.models import JobDescriptor, SequenceRecord, WorkUnit
from SpliceTracks.reference import write_chrom_sizes
from SpliceTracks.track_aggregator import TrackAggregator

logger = logging.getLogger(__name__)


@dataclass
class PipelineSettings:
    """Run parameters; defaults come from ``PIPELINE_CONFIG``."""
    chunk_size: int = PIPELINE_CONFIG['chunk_size']
    overlap: int = PIPELINE_CONFIG['overlap']
    min_size: int = PIPELINE_CONFIG['min_size']
    max_batch_count: int = PIPELINE_CONFIG['max_batch_count']
    seed: int = PIPELINE_CONFIG['seed']
    resolution: int = PIPELINE_CONFIG['resolution']
    floor: float = PIPELINE_CONFIG['floor']
    workers: Optional[int] = None
    bigwig: bool = False

    def planner(self) -> ChunkPlanner:
        return ChunkPlanner(
            chunk_size=self.chunk_size,
            overlap=self.overlap,
            min_size=self.min_size,
            max_batch_count=self.max_batch_count,
            seed=self.seed,
        )


@dataclass
class RunSummary:
    """What a run produced and what went wrong."""
    units: List[WorkUnit]
    jobs: List[JobDescriptor]
    report: Optional[ExecutionReport] = None
    tracks: Dict[str, Dict[str, Path]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors and (self.report is None or self.report.ok)


def plan_run(
    records: Sequence[SequenceRecord],
    reference: str,
    out_dir,
    settings: PipelineSettings,
    scorer_target: str = "",
) -> Tuple[List[WorkUnit], List[JobDescriptor]]:
    """
    Plan units and jobs and write the dispatch files into *out_dir*.

    Raises:
        PlanningError: Invalid records or parameters; nothing is written
                       except what was completed before the failure.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    planner = settings.planner()
    units = planner.plan(records)
    jobs = job_list.generate(units, reference, settings.resolution, settings.floor)

    write_chrom_sizes(records, out_dir / OUTPUT_NAMES['chrom_sizes'])
    planner.summarize(units).to_csv(out_dir / OUTPUT_NAMES['plan'], sep="\t", index=False)
    manifest = job_list.write_manifest(jobs, out_dir / OUTPUT_NAMES['manifest'])
    if scorer_target:
        job_list.write_job_list(
            jobs,
            out_dir / OUTPUT_NAMES['job_list'],
            manifest=manifest.resolve(),
            out_dir=(out_dir / OUTPUT_NAMES['artifacts']).resolve(),
            scorer=scorer_target,
        )
    return units, jobs


def aggregate_run(
    records: Sequence[SequenceRecord],
    jobs: Sequence[JobDescriptor],
    artifact_dir,
    tracks_dir,
    blocked_strands: Set[str] = frozenset(),
    bigwig: bool = False,
    chrom_sizes_path=None,
) -> Tuple[Dict[str, Dict[str, Path]], Dict[str, str]]:
    """
    Aggregate every strand not in *blocked_strands*.

    Returns:
        ``(tracks, errors)`` keyed by strand symbol.  A strand appears in
        exactly one of them.
    """
    aggregator = TrackAggregator(records, tracks_dir)
    tracks: Dict[str, Dict[str, Path]] = {}
    errors: Dict[str, str] = {}

    for strand, strand_jobs in job_list.jobs_by_strand(jobs).items():
        if not strand_jobs:
            continue
        if strand in blocked_strands:
            errors[strand] = f"{STRANDS[strand]} strand not aggregated: one or more jobs failed"
            logger.error(errors[strand])
            continue
        try:
            written = aggregator.aggregate(strand_jobs, artifact_dir)
            if bigwig:
                if chrom_sizes_path is None:
                    raise AggregationError("bigWig conversion needs a chrom.sizes path")
                written.update({
                    f"{event}.bw": aggregator.to_bigwig(path, chrom_sizes_path)
                    for event, path in list(written.items())
                })
            tracks[strand] = written
        except AggregationError as exc:
            errors[strand] = str(exc)
            logger.error(f"Aggregation of {STRANDS[strand]} strand failed: {exc}")

    return tracks, errors


def run_pipeline(
    records: Sequence[SequenceRecord],
    reference: str,
    out_dir,
    provider_factory: Callable,
    scorer_factory: Callable,
    settings: Optional[PipelineSettings] = None,
    scorer_target: str = "",
) -> RunSummary:
    """
    Plan, execute locally and aggregate.

    Args:
        records:          Sequences to score.
        reference:        Reference handle recorded in every job.
        out_dir:          Run directory (see module docstring for layout).
        provider_factory: Picklable callable building a sequence provider.
        scorer_factory:   Picklable callable building a scorer.
        settings:         Run parameters.
        scorer_target:    ``module:factory`` string written to the jobList.

    Returns:
        :class:`RunSummary`; ``summary.ok`` is False when any job or strand
        failed.
    """
    settings = settings or PipelineSettings()
    out_dir = Path(out_dir)

    units, jobs = plan_run(records, reference, out_dir, settings, scorer_target)

    artifact_dir = out_dir / OUTPUT_NAMES['artifacts']
    executor = ParallelJobExecutor(
        provider_factory=provider_factory,
        scorer_factory=scorer_factory,
        out_dir=artifact_dir,
        workers=settings.workers,
    )
    report = executor.execute(jobs)

    tracks, errors = aggregate_run(
        records,
        jobs,
        artifact_dir,
        out_dir / OUTPUT_NAMES['tracks'],
        blocked_strands=report.failed_strands(),
        bigwig=settings.bigwig,
        chrom_sizes_path=out_dir / OUTPUT_NAMES['chrom_sizes'],
    )

    summary = RunSummary(units=units, jobs=jobs, report=report, tracks=tracks, errors=errors)
    if summary.ok:
        logger.info(f"Run complete: {len(jobs):,} jobs, tracks in {out_dir / OUTPUT_NAMES['tracks']}")
    else:
        logger.error(
            f"Run finished with {len(report.failures):,} failed job(s) and "
            f"{len(errors)} unaggregated strand(s)"
        )
    return summary
