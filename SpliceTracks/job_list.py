"""
Job List Generation for SpliceTracks
====================================

Turns planned work units into per-strand job descriptors and serializes them
for dispatch.

Features:
- One descriptor per (unit, strand); plus-strand list first, then minus
- Sequential IDs in submission order (stable for a given plan and seed)
- JSON-lines manifest that workers read their descriptor back from
- Cluster job list: one ``splicetracks run-job`` command per line
- Deterministic artifact names derived from the sequential ID
"""

import json
import logging
import shlex
from pathlib import Path
from typing import Dict, List, Sequence

from SpliceTracks.config import PIPELINE_CONFIG, STRANDS
from SpliceTracks.models import JobDescriptor, WorkUnit

logger = logging.getLogger(__name__)

# Width of the zero-padded sequential ID in artifact names
ID_WIDTH = 6


def generate(
    units: Sequence[WorkUnit],
    reference: str,
    resolution: int = PIPELINE_CONFIG['resolution'],
    floor: float = PIPELINE_CONFIG['floor'],
) -> List[JobDescriptor]:
    """
    Build the ordered job list for *units*.

    The plus-strand jobs for all units come first, followed by the
    minus-strand jobs, each in planning order.  ``sequential_id`` follows
    that concatenated order starting at 0.

    Args:
        units:      Work units from the chunk planner, in planning order.
        reference:  Reference handle every worker fetches from.
        resolution: Fractional digits written per value.
        floor:      Values below this are written as 0.

    Returns:
        List of :class:`JobDescriptor`, ``len(units) * 2`` long.
    """
    jobs: List[JobDescriptor] = []
    for strand in STRANDS:
        for unit in units:
            jobs.append(JobDescriptor(
                unit=unit,
                strand=strand,
                sequential_id=len(jobs),
                reference=str(reference),
                resolution=resolution,
                floor=floor,
            ))

    logger.info(f"Generated {len(jobs):,} jobs for {len(units):,} units")
    return jobs


def artifact_name(job: JobDescriptor) -> str:
    """Result file name of *job*, e.g. ``job_000012.plus.txt``."""
    return f"job_{job.sequential_id:0{ID_WIDTH}d}.{job.strand_name}.txt"


def jobs_by_strand(jobs: Sequence[JobDescriptor]) -> Dict[str, List[JobDescriptor]]:
    """Group jobs by strand symbol, each group sorted by sequential ID."""
    grouped: Dict[str, List[JobDescriptor]] = {strand: [] for strand in STRANDS}
    for job in sorted(jobs, key=lambda j: j.sequential_id):
        grouped[job.strand].append(job)
    return grouped


# ──────────────────────────────────────────────────────────────────────────────
# DISPATCH BOUNDARY
# ──────────────────────────────────────────────────────────────────────────────

def write_manifest(jobs: Sequence[JobDescriptor], path) -> Path:
    """Write one JSON object per job, in sequential ID order."""
    path = Path(path)
    with open(path, 'w') as fh:
        for job in jobs:
            fh.write(json.dumps(job.to_dict(), sort_keys=True))
            fh.write('\n')
    logger.info(f"Wrote {len(jobs):,} job descriptors to {path}")
    return path


def read_manifest(path) -> List[JobDescriptor]:
    """
    Read descriptors written by :func:`write_manifest`.

    Raises:
        ValueError: On a malformed line or duplicated sequential ID.
    """
    jobs: List[JobDescriptor] = []
    seen = set()
    with open(path, 'r') as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                job = JobDescriptor.from_dict(json.loads(line))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_no}: malformed job descriptor: {e}") from e
            if job.sequential_id in seen:
                raise ValueError(f"{path}:{line_no}: duplicate sequential_id {job.sequential_id}")
            seen.add(job.sequential_id)
            jobs.append(job)
    return sorted(jobs, key=lambda j: j.sequential_id)


def find_job(jobs: Sequence[JobDescriptor], sequential_id: int) -> JobDescriptor:
    """Return the job with *sequential_id* or raise ``KeyError``."""
    for job in jobs:
        if job.sequential_id == sequential_id:
            return job
    raise KeyError(f"No job with sequential_id {sequential_id}")


def write_job_list(
    jobs: Sequence[JobDescriptor],
    path,
    manifest,
    out_dir,
    scorer: str,
    program: str = 'splicetracks',
) -> Path:
    """
    Write a cluster job list: one self-contained worker command per line.

    Each line runs a single job from *manifest* and writes its artifact to
    *out_dir*; lines are independent and may run in any order.
    """
    path = Path(path)
    with open(path, 'w') as fh:
        for job in jobs:
            command = [
                program, 'run-job',
                '--manifest', str(manifest),
                '--job-id', str(job.sequential_id),
                '--scorer', scorer,
                '--out-dir', str(out_dir),
            ]
            fh.write(' '.join(shlex.quote(part) for part in command))
            fh.write('\n')
    logger.info(f"Wrote job list with {len(jobs):,} commands to {path}")
    return path
