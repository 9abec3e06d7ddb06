"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Track Aggregator - Stream-Merge Job Artifacts into Genome-Wide Tracks        │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Assembles the two tracks of one strand (acceptor, donor) by streaming the
    strand's job artifacts in sequential-ID order, splitting each line on its
    event-type prefix and appending the remainder to that event's wiggle
    file.  Nothing larger than one line is held in memory.

    Every artifact is checked against the job that produced it before its
    lines are accepted:

        - the artifact exists
        - headers come in (acceptor, donor) pairs with identical chrom/start
        - each header matches the next planned segment of the job's unit
        - value lines alternate acceptor, donor
        - each segment carries exactly its output interval's positions
        - per chromosome, segments continue exactly where the previous one
          stopped and never run past the chromosome size

    A wiggle track cannot carry a gap or overlap at an unplanned offset
    without shifting every later coordinate, so any defect aborts the whole
    strand: partial outputs are removed and AggregationError is raised.

    Conversion to bigWig uses the external ``wigToBigWig`` tool with the
    same chrom.sizes used for planning.

USAGE::

    aggregator = TrackAggregator(records, out_dir="tracks")
    tracks = aggregator.aggregate(plus_jobs, artifact_dir="results")
    # {'acceptor': Path('tracks/plus.acceptor.wig'), 'donor': ...}
    aggregator.to_bigwig(tracks['donor'], "chrom.sizes")
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Sequence, Tuple

from SpliceTracks.config import EVENT_TYPES
from SpliceTracks.errors import AggregationError
from SpliceTracks.job_list import artifact_name
from SpliceTracks.models import JobDescriptor, SequenceRecord
from SpliceTracks.stitcher import parse_header

logger = logging.getLogger(__name__)


class _ArtifactReader:
    """Validate one artifact line by line against its job's segments."""

    def __init__(self, job: JobDescriptor, path: Path, sizes: Dict[str, int],
                 last_end: Dict[str, int]):
        self.job = job
        self.path = path
        self.sizes = sizes
        self.last_end = last_end
        self.segments = list(job.unit.segments())
        self.segment_index = -1
        self.expected = 0
        self.seen = 0
        self.pending_header = None
        self.next_event = 0

    def fail(self, line_no: int, message: str) -> AggregationError:
        return AggregationError(f"{self.path.name}:{line_no}: {message}")

    def _close_segment(self, line_no: int) -> None:
        if self.segment_index >= 0 and self.seen != self.expected:
            segment = self.segments[self.segment_index]
            raise self.fail(
                line_no,
                f"{segment.name}:{segment.output_start}-{segment.output_end} has "
                f"{self.seen} positions, expected {self.expected}",
            )

    def _open_segment(self, line_no: int, chrom: str, start: int) -> None:
        self._close_segment(line_no)
        self.segment_index += 1
        if self.segment_index >= len(self.segments):
            raise self.fail(line_no, f"unexpected extra segment {chrom}:{start}")
        segment = self.segments[self.segment_index]
        if chrom not in self.sizes:
            raise self.fail(line_no, f"unknown chrom {chrom!r}")
        if (chrom, start) != (segment.name, segment.output_start):
            raise self.fail(
                line_no,
                f"header {chrom}:{start} does not match planned segment "
                f"{segment.name}:{segment.output_start}",
            )
        expected_start = self.last_end.get(chrom, 0) + 1
        if start != expected_start:
            raise self.fail(
                line_no,
                f"non-monotonic coordinates on {chrom}: segment starts at {start}, "
                f"previous output ended at {expected_start - 1}",
            )
        if segment.output_end > self.sizes[chrom]:
            raise self.fail(
                line_no,
                f"{chrom}:{start}-{segment.output_end} runs past chrom size {self.sizes[chrom]}",
            )
        self.expected = segment.output_length
        self.seen = 0
        self.last_end[chrom] = segment.output_end

    def feed(self, line_no: int, line: str) -> Tuple[str, str]:
        """Return ``(event, payload)`` for a line to be written."""
        event, sep, payload = line.rstrip("\n").partition("\t")
        if not sep or event not in EVENT_TYPES:
            raise self.fail(line_no, f"unrecognised line {line.rstrip()!r}")

        if payload.startswith("fixedStep"):
            try:
                chrom, start = parse_header(payload)
            except ValueError as e:
                raise self.fail(line_no, str(e)) from e
            if self.next_event != 0:
                raise self.fail(line_no, "header inside an unfinished value pair")
            if self.pending_header is None:
                if event != EVENT_TYPES[0]:
                    raise self.fail(line_no, f"header pair must start with {EVENT_TYPES[0]}")
                self.pending_header = (chrom, start)
            else:
                if event != EVENT_TYPES[1] or (chrom, start) != self.pending_header:
                    raise self.fail(line_no, "misaligned acceptor/donor headers")
                self._open_segment(line_no, chrom, start)
                self.pending_header = None
            return event, payload

        if self.pending_header is not None or self.segment_index < 0:
            raise self.fail(line_no, "value line before a complete header pair")
        if event != EVENT_TYPES[self.next_event]:
            raise self.fail(line_no, f"expected {EVENT_TYPES[self.next_event]} line, got {event}")
        if self.next_event == 1:
            self.seen += 1
            if self.seen > self.expected:
                raise self.fail(line_no, f"more than {self.expected} positions in segment")
        self.next_event = 1 - self.next_event
        return event, payload

    def finish(self, line_no: int) -> None:
        if self.pending_header is not None or self.next_event != 0:
            raise self.fail(line_no, "artifact ends inside a header or value pair")
        self._close_segment(line_no)
        if self.segment_index != len(self.segments) - 1:
            raise self.fail(
                line_no,
                f"{self.segment_index + 1} segment(s) present, "
                f"{len(self.segments)} planned",
            )


class TrackAggregator:
    """
    Concatenate per-job artifacts of one strand into wiggle tracks.

    Usage::

        aggregator = TrackAggregator(records, out_dir="tracks")
        for strand, strand_jobs in jobs_by_strand(jobs).items():
            aggregator.aggregate(strand_jobs, artifact_dir="results")
    """

    def __init__(self, records: Sequence[SequenceRecord], out_dir):
        self.sizes: Dict[str, int] = {r.name: r.length for r in records}
        self.out_dir = Path(out_dir)

    def track_path(self, strand_name: str, event: str, suffix: str = ".wig") -> Path:
        return self.out_dir / f"{strand_name}.{event}{suffix}"

    def aggregate(self, jobs: Sequence[JobDescriptor], artifact_dir) -> Dict[str, Path]:
        """
        Build ``<strand>.acceptor.wig`` and ``<strand>.donor.wig``.

        Args:
            jobs:         All jobs of one strand.
            artifact_dir: Directory holding the job artifacts.

        Returns:
            ``{event: path}`` of the written wiggle files.

        Raises:
            AggregationError: Missing or malformed artifact, mixed strands,
                              or coordinates that do not continue cleanly.
        """
        if not jobs:
            raise AggregationError("No jobs to aggregate")
        strands = {job.strand for job in jobs}
        if len(strands) != 1:
            raise AggregationError(f"Jobs from several strands given: {sorted(strands)}")
        strand_name = jobs[0].strand_name

        artifact_dir = Path(artifact_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        final = {event: self.track_path(strand_name, event) for event in EVENT_TYPES}
        tmp = {event: path.with_name(path.name + ".tmp") for event, path in final.items()}

        last_end: Dict[str, int] = {}
        handles = {event: open(tmp[event], "w") for event in EVENT_TYPES}
        try:
            for job in sorted(jobs, key=lambda j: j.sequential_id):
                path = artifact_dir / artifact_name(job)
                if not path.exists():
                    raise AggregationError(f"Missing artifact for job {job.sequential_id}: {path}")

                reader = _ArtifactReader(job, path, self.sizes, last_end)
                line_no = 0
                with open(path, "r") as fh:
                    for line_no, line in enumerate(fh, start=1):
                        event, payload = reader.feed(line_no, line)
                        handles[event].write(payload)
                        handles[event].write("\n")
                reader.finish(line_no)
                logger.debug(f"Aggregated {path.name}")
        except BaseException:
            for handle in handles.values():
                handle.close()
            for path in list(tmp.values()) + list(final.values()):
                path.unlink(missing_ok=True)
            raise
        for handle in handles.values():
            handle.close()
        for event in EVENT_TYPES:
            tmp[event].replace(final[event])

        logger.info(
            f"TrackAggregator: {len(jobs):,} artifact(s) → "
            f"{', '.join(p.name for p in final.values())}"
        )
        return final

    def to_bigwig(self, wig_path, chrom_sizes_path, executable: str = "wigToBigWig") -> Path:
        """
        Convert a wiggle track to bigWig with the external ``wigToBigWig``.

        Raises:
            AggregationError: Tool missing from PATH or conversion failed.
        """
        if not shutil.which(executable):
            raise AggregationError(f"`{executable}` not found in PATH. This tool is required for bigWig output.")

        wig_path = Path(wig_path)
        bw_path = wig_path.with_suffix(".bw")
        try:
            subprocess.run(
                [executable, str(wig_path), str(chrom_sizes_path), str(bw_path)],
                check=True, capture_output=True, text=True,
            )
        except subprocess.CalledProcessError as e:
            bw_path.unlink(missing_ok=True)
            raise AggregationError(f"{executable} failed for {wig_path.name}: {e.stderr.strip()}") from e

        logger.info(f"Converted {wig_path.name} → {bw_path.name}")
        return bw_path

