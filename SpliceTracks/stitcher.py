"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Stitcher - Scored Fetch Window → Canonical Per-Base Output Stream            │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Converts probability vectors computed over a unit's fetch interval into
    exactly one (acceptor, donor) pair per base of its output interval.

    Each position p of the output interval takes:

        leading event   value of base p-1   (lead-in context is dropped)
        trailing event  value of base p+1   (trail-out context is consumed)

    On the plus strand donor leads and acceptor trails.  The minus-strand
    vectors arrive in reverse-complement order; they are reversed first,
    which swaps the roles: acceptor leads and donor trails.

    Sequence boundaries:

        output starts at base 1           → leading event opens with a 0
        output ends at the upper bound    → trailing event closes with a 0
        (wiggleStop, the sequence length)

    Needing a base that was not fetched anywhere else is a contract
    violation between planner and stitcher and raises StitchError.

    Whole-sequence (batch) segments apply the same shift to the full
    sequence: the leading event drops its last physical position and gains
    a leading 0, the trailing event drops its first and gains a trailing 0.

    After trimming, values below ``floor`` are written as a literal ``0``;
    all others with ``resolution`` fractional digits.

ARTIFACT FORMAT::

    acceptor<TAB>fixedStep chrom=chr1 start=6000001 step=1
    donor<TAB>fixedStep chrom=chr1 start=6000001 step=1
    acceptor<TAB>0
    donor<TAB>0.93
    ...

USAGE::

    stream = stitch(scored, unit, "+", resolution=2, floor=0.01)
    stream.write(fh)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence, Tuple, Union

import numpy as np

from SpliceTracks.config import EVENT_TYPES, LEADING_EVENT, STRANDS, TRAILING_EVENT
from SpliceTracks.errors import StitchError
from SpliceTracks.models import BatchUnit, RangeUnit, ScoredOutput, Segment, WorkUnit

logger = logging.getLogger(__name__)

HEADER_TEMPLATE = "fixedStep chrom={chrom} start={start} step=1"
HEADER_RE = re.compile(r"^fixedStep chrom=(\S+) start=(\d+) step=1$")


def format_header(chrom: str, start: int) -> str:
    return HEADER_TEMPLATE.format(chrom=chrom, start=start)


def parse_header(text: str) -> Tuple[str, int]:
    """Return ``(chrom, start)`` of a fixedStep header or raise ``ValueError``."""
    match = HEADER_RE.match(text)
    if not match:
        raise ValueError(f"Not a fixedStep header: {text!r}")
    return match.group(1), int(match.group(2))


def render(values: np.ndarray, resolution: int, floor: float) -> List[str]:
    """Format values: below *floor* → ``"0"``, otherwise *resolution* digits."""
    fmt = f"{{:.{resolution}f}}"
    return ["0" if v < floor else fmt.format(v) for v in values.tolist()]


@dataclass
class CanonicalSegment:
    """Rendered values for one contiguous output interval of one sequence."""
    chrom: str
    start: int
    acceptor: List[str] = field(default_factory=list)
    donor: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.acceptor)

    @property
    def end(self) -> int:
        return self.start + len(self.acceptor) - 1

    def lines(self) -> Iterator[str]:
        header = format_header(self.chrom, self.start)
        for event in EVENT_TYPES:
            yield f"{event}\t{header}"
        for acceptor, donor in zip(self.acceptor, self.donor):
            yield f"acceptor\t{acceptor}"
            yield f"donor\t{donor}"


@dataclass
class CanonicalStream:
    """The trimmed, floor-clamped, rendered output of one job."""
    strand: str
    segments: List[CanonicalSegment] = field(default_factory=list)

    def __len__(self) -> int:
        return sum(len(s) for s in self.segments)

    def lines(self) -> Iterator[str]:
        for segment in self.segments:
            yield from segment.lines()

    def write(self, fh) -> int:
        """Write artifact lines to an open text handle; return positions written."""
        for line in self.lines():
            fh.write(line)
            fh.write("\n")
        return len(self)


# ──────────────────────────────────────────────────────────────────────────────
# COORDINATE SHIFTS
# ──────────────────────────────────────────────────────────────────────────────

def _leading(values: np.ndarray, segment: Segment) -> np.ndarray:
    """Values for the event read from the preceding base."""
    n = segment.output_length
    if segment.whole:
        return np.concatenate(([0.0], values[:n - 1]))

    offset = segment.output_start - 1 - segment.fetch_start
    if offset < 0:
        if segment.output_start == 1:
            return np.concatenate(([0.0], values[:n - 1]))
        raise StitchError(
            f"{segment.name}:{segment.output_start}-{segment.output_end}: lead-in index "
            f"{offset} is negative (fetch starts at {segment.fetch_start})"
        )
    if offset + n > len(values):
        raise StitchError(
            f"{segment.name}:{segment.output_start}-{segment.output_end}: lead-in window "
            f"[{offset}, {offset + n}) exceeds vector of {len(values)}"
        )
    return values[offset:offset + n]


def _trailing(values: np.ndarray, segment: Segment) -> np.ndarray:
    """Values for the event read from the following base."""
    n = segment.output_length
    if segment.whole:
        return np.concatenate((values[1:n], [0.0]))

    offset = segment.output_start + 1 - segment.fetch_start
    stop = offset + n
    if stop > len(values):
        if segment.output_end == segment.sequence_length and stop == len(values) + 1:
            return np.concatenate((values[offset:], [0.0]))
        raise StitchError(
            f"{segment.name}:{segment.output_start}-{segment.output_end}: trail-out index "
            f"{stop - 1} is past the vector of {len(values)} "
            f"(fetch ends at {segment.fetch_end}, sequence at {segment.sequence_length})"
        )
    return values[offset:stop]


def stitch_segment(
    scored: ScoredOutput,
    segment: Segment,
    strand: str,
    resolution: int,
    floor: float,
) -> CanonicalSegment:
    """
    Trim one scored fetch window down to its output interval.

    Raises:
        StitchError: Vector length differs from the fetch interval, or a
                     shifted index falls outside the fetched bases.
    """
    if strand not in STRANDS:
        raise StitchError(f"Invalid strand {strand!r}")
    if len(scored) != segment.fetch_length:
        raise StitchError(
            f"{segment.name}:{segment.fetch_start}-{segment.fetch_end}: scorer returned "
            f"{len(scored)} values for {segment.fetch_length} fetched bases"
        )

    vectors = {event: scored.event(event) for event in EVENT_TYPES}
    for event, values in vectors.items():
        if not np.all(np.isfinite(values)):
            raise StitchError(f"{segment.name}: non-finite {event} probabilities")
    if strand == "-":
        vectors = {event: values[::-1] for event, values in vectors.items()}

    shifted = {
        LEADING_EVENT[strand]: _leading(vectors[LEADING_EVENT[strand]], segment),
        TRAILING_EVENT[strand]: _trailing(vectors[TRAILING_EVENT[strand]], segment),
    }

    result = CanonicalSegment(
        chrom=segment.name,
        start=segment.output_start,
        acceptor=render(shifted["acceptor"], resolution, floor),
        donor=render(shifted["donor"], resolution, floor),
    )
    logger.debug(
        f"Stitched {segment.name}:{segment.output_start:,}-{segment.output_end:,} ({strand}) "
        f"from fetch {segment.fetch_start:,}-{segment.fetch_end:,}"
    )
    return result


def stitch(
    scored: Union[ScoredOutput, Sequence[ScoredOutput]],
    unit: WorkUnit,
    strand: str,
    resolution: int,
    floor: float,
) -> CanonicalStream:
    """
    Build the canonical stream of one job.

    Args:
        scored:     One :class:`ScoredOutput` for a range unit, or one per
                    member sequence (in unit order) for a batch unit.
        unit:       The job's work unit.
        strand:     ``"+"`` or ``"-"``.
        resolution: Fractional digits written per value.
        floor:      Values below this are written as ``0``.

    Raises:
        StitchError: See :func:`stitch_segment`; also when the number of
                     scored outputs does not match the unit's segments.
    """
    if resolution < 0:
        raise StitchError(f"resolution must be non-negative, got {resolution}")
    if isinstance(scored, ScoredOutput):
        scored = [scored]
    segments = unit.segments()
    if len(scored) != len(segments):
        kind = "range" if isinstance(unit, RangeUnit) else "batch"
        raise StitchError(
            f"{len(scored)} scored output(s) for a {kind} unit of {len(segments)} sequence(s)"
        )

    stream = CanonicalStream(strand=strand)
    for output, segment in zip(scored, segments):
        stream.segments.append(stitch_segment(output, segment, strand, resolution, floor))

    if isinstance(unit, BatchUnit):
        logger.debug(f"Stitched batch of {len(segments)} sequence(s), {len(stream):,} positions")
    return stream
