"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Job Worker – fetch, score and stitch one (unit, strand) job                  │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

Each job:
  • Fetches every segment of its unit on its strand (reverse complement for -).
  • Scores the fetched bases.
  • Stitches the scores down to the output interval.
  • Streams the canonical lines to ``<name>.tmp`` and renames the file to its
    final artifact name only after every segment succeeded, so a failed or
    interrupted job never leaves an artifact for aggregation to pick up.
  • Returns a lightweight metadata dict – no probability vectors are passed
    back across process boundaries.

This module must remain importable from worker processes so that
``spawn``-based multiprocessing works on all platforms.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from time import perf_counter
from typing import Any, Dict

from SpliceTracks.errors import FetchError
from SpliceTracks.job_list import artifact_name
from SpliceTracks.models import JobDescriptor, ScoredOutput
from SpliceTracks.stitcher import stitch_segment

logger = logging.getLogger(__name__)


def run_job(job: JobDescriptor, provider, scorer, out_dir) -> Dict[str, Any]:
    """
    Execute *job* and write its artifact into *out_dir*.

    Args:
        job:      Descriptor produced by the job list generator.
        provider: Object with ``fetch(name, start, end, strand) -> str``.
        scorer:   Object with ``score(sequence) -> (acceptor, donor)``.
        out_dir:  Directory receiving the artifact.

    Returns:
        ``{"sequential_id", "strand", "file", "positions", "elapsed"}``

    Raises:
        FetchError:  A segment could not be fetched.
        StitchError: Scores do not fit the segment coordinates.
    """
    t0 = perf_counter()
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    final_path = out_dir / artifact_name(job)
    tmp_path = final_path.with_name(final_path.name + ".tmp")

    positions = 0
    try:
        with open(tmp_path, "w") as fh:
            for segment in job.unit.segments():
                sequence = provider.fetch(
                    segment.name, segment.fetch_start, segment.fetch_end, job.strand
                )
                if len(sequence) != segment.fetch_length:
                    raise FetchError(
                        f"{segment.name}:{segment.fetch_start}-{segment.fetch_end}: "
                        f"fetched {len(sequence)} bases, expected {segment.fetch_length}"
                    )
                acceptor, donor = scorer.score(sequence)
                canonical = stitch_segment(
                    ScoredOutput(acceptor, donor), segment, job.strand,
                    job.resolution, job.floor,
                )
                positions += len(canonical)
                for line in canonical.lines():
                    fh.write(line)
                    fh.write("\n")
        os.replace(tmp_path, final_path)
    except BaseException:
        # Partial output must never be visible to aggregation
        tmp_path.unlink(missing_ok=True)
        raise

    elapsed = perf_counter() - t0
    logger.info(
        f"Job {job.sequential_id} ({job.strand}): {positions:,} positions → "
        f"{final_path.name} in {elapsed:.1f}s"
    )
    return {
        "sequential_id": job.sequential_id,
        "strand": job.strand,
        "file": str(final_path),
        "positions": positions,
        "elapsed": elapsed,
    }
