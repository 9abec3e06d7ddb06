"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Local Executor - Parallel Job Execution on One Machine                       │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Runs a job list the way a cluster scheduler would, on local cores:

        Main Process
            ↓
        ProcessPoolExecutor (workers from SystemResourceInspector)
            ↓
        _init_worker()  [once per process: build provider + scorer]
            ↓
        _execute_job()  [per job: fetch → score → stitch → artifact]
            ↓
        Main: record success / failure per job, no ordering assumed

    Jobs are independent: a failing job is recorded and its siblings keep
    running.  The caller decides what a failure means (the strand it belongs
    to is not aggregated).  Only lightweight metadata crosses the process
    boundary.

    With ``workers == 1`` everything runs in-process, which is also the
    fallback when the process pool itself breaks.

USAGE::

    executor = ParallelJobExecutor(
        provider_factory=partial(FastaSequenceProvider, "genome.fa"),
        scorer_factory=partial(load_scorer, "mypkg:build"),
        out_dir="results",
    )
    report = executor.execute(jobs)
    report.failed_strands()    # {'-'} when a minus-strand job failed
"""

from __future__ import annotations

import gc
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from SpliceTracks.config import PIPELINE_CONFIG
from SpliceTracks.job_worker import run_job
from SpliceTracks.models import JobDescriptor
from SpliceTracks.system_resource_inspector import SystemResourceInspector

logger = logging.getLogger(__name__)

# Per-process collaborators, set by _init_worker
_PROVIDER = None
_SCORER = None


# ──────────────────────────────────────────────────────────────────────────────
# MODULE-LEVEL WORKER (must be picklable for ProcessPoolExecutor)
# ──────────────────────────────────────────────────────────────────────────────

def _init_worker(provider_factory: Callable[[], Any], scorer_factory: Callable[[], Any]) -> None:
    """Build the sequence provider and scorer once per worker process."""
    global _PROVIDER, _SCORER
    _PROVIDER = provider_factory()
    _SCORER = scorer_factory()


def _execute_job(job: JobDescriptor, out_dir: str) -> Dict[str, Any]:
    return run_job(job, _PROVIDER, _SCORER, out_dir)


@dataclass
class ExecutionReport:
    """Outcome of running a job list."""
    jobs: List[JobDescriptor]
    results: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    failures: Dict[int, str] = field(default_factory=dict)

    def record_failure(self, job: JobDescriptor, exc: BaseException) -> None:
        self.failures[job.sequential_id] = f"{type(exc).__name__}: {exc}"
        logger.error(f"Job {job.sequential_id} ({job.strand}) failed: {type(exc).__name__}: {exc}")

    def failed_strands(self) -> Set[str]:
        by_id = {job.sequential_id: job for job in self.jobs}
        return {by_id[i].strand for i in self.failures}

    @property
    def ok(self) -> bool:
        return not self.failures and len(self.results) == len(self.jobs)


class ParallelJobExecutor:
    """
    Execute jobs in a process pool and collect per-job outcomes.

    Args:
        provider_factory: Picklable zero-argument callable returning a
                          sequence provider.
        scorer_factory:   Picklable zero-argument callable returning a scorer.
        out_dir:          Directory receiving job artifacts.
        workers:          Worker processes; ``None`` sizes the pool from
                          CPU count and RAM budget.
    """

    def __init__(
        self,
        provider_factory: Callable[[], Any],
        scorer_factory: Callable[[], Any],
        out_dir,
        workers: Optional[int] = None,
        per_worker_ram: int = PIPELINE_CONFIG['per_worker_ram'],
    ):
        self.provider_factory = provider_factory
        self.scorer_factory = scorer_factory
        self.out_dir = Path(out_dir)
        if workers is None:
            workers = SystemResourceInspector().suggest_workers(per_worker_ram)
        self.workers = max(1, int(workers))
        logger.info(f"ParallelJobExecutor ready (workers={self.workers})")

    def _run_sequential(self, jobs: Sequence[JobDescriptor], report: ExecutionReport) -> None:
        provider = self.provider_factory()
        scorer = self.scorer_factory()
        for job in jobs:
            try:
                report.results[job.sequential_id] = run_job(job, provider, scorer, self.out_dir)
            except Exception as exc:
                report.record_failure(job, exc)

    def execute(self, jobs: Sequence[JobDescriptor]) -> ExecutionReport:
        """
        Run every job once; return when all have finished (the barrier
        before aggregation).
        """
        report = ExecutionReport(jobs=list(jobs))
        if not jobs:
            return report
        self.out_dir.mkdir(parents=True, exist_ok=True)

        if self.workers == 1:
            self._run_sequential(jobs, report)
        else:
            try:
                with ProcessPoolExecutor(
                    max_workers=self.workers,
                    initializer=_init_worker,
                    initargs=(self.provider_factory, self.scorer_factory),
                ) as executor:
                    futures = {
                        executor.submit(_execute_job, job, str(self.out_dir)): job
                        for job in jobs
                    }
                    for future in as_completed(futures):
                        job = futures[future]
                        try:
                            report.results[job.sequential_id] = future.result()
                        except BrokenProcessPool:
                            raise
                        except Exception as exc:
                            report.record_failure(job, exc)
                        gc.collect()
            except BrokenProcessPool as exc:
                remaining = [
                    j for j in jobs
                    if j.sequential_id not in report.results and j.sequential_id not in report.failures
                ]
                logger.warning(
                    f"ParallelJobExecutor: process pool broke ({exc}); running "
                    f"{len(remaining)} remaining job(s) sequentially"
                )
                self._run_sequential(remaining, report)

        logger.info(
            f"ParallelJobExecutor: {len(report.results):,} job(s) succeeded, "
            f"{len(report.failures):,} failed"
        )
        return report
