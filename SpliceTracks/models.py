"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Data Model - Sequences, Work Units, Jobs and Scored Output                   │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Immutable value types passed between the planner, the job list generator,
    the workers and the aggregator.  All coordinates are 1-based and fully
    closed.

    Two kinds of work unit exist:

        RangeUnit  – one sub-interval of a long sequence.  ``fetch_*`` is the
                     interval actually read and scored (output interval plus
                     overlap, clamped to the sequence); ``output_*`` is the
                     interval whose values are kept.

        BatchUnit  – several short sequences, each scored in full.

    Both expose ``segments()``: the per-sequence pieces a worker fetches,
    scores and stitches one after another.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple, Union

import numpy as np

from SpliceTracks.config import STRANDS
from SpliceTracks.errors import StitchError


@dataclass(frozen=True)
class SequenceRecord:
    """A named reference sequence and its length (bp)."""
    name: str
    length: int


@dataclass(frozen=True)
class Segment:
    """
    One sequence interval processed inside a job.

    Attributes:
        name:            Sequence name
        fetch_start:     First fetched base
        fetch_end:       Last fetched base
        output_start:    First base written to the track
        output_end:      Last base written to the track
        sequence_length: Declared upper bound of the sequence (``wiggleStop``)
        whole:           True when the segment is a complete short sequence
    """
    name: str
    fetch_start: int
    fetch_end: int
    output_start: int
    output_end: int
    sequence_length: int
    whole: bool = False

    @property
    def fetch_length(self) -> int:
        return self.fetch_end - self.fetch_start + 1

    @property
    def output_length(self) -> int:
        return self.output_end - self.output_start + 1


@dataclass(frozen=True)
class RangeUnit:
    """A chunk of a sequence that is at least ``chunk_size`` long."""
    sequence_name: str
    fetch_start: int
    fetch_end: int
    output_start: int
    output_end: int
    sequence_length: int

    kind: ClassVar[str] = 'range'

    def segments(self) -> Tuple[Segment, ...]:
        return (Segment(
            name=self.sequence_name,
            fetch_start=self.fetch_start,
            fetch_end=self.fetch_end,
            output_start=self.output_start,
            output_end=self.output_end,
            sequence_length=self.sequence_length,
        ),)

    @property
    def output_bases(self) -> int:
        return self.output_end - self.output_start + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'sequence_name': self.sequence_name,
            'fetch_start': self.fetch_start,
            'fetch_end': self.fetch_end,
            'output_start': self.output_start,
            'output_end': self.output_end,
            'sequence_length': self.sequence_length,
        }


@dataclass(frozen=True)
class BatchUnit:
    """Short sequences scored whole, sharing one job."""
    sequences: Tuple[SequenceRecord, ...]
    mode: str = 'whole-sequence'

    kind: ClassVar[str] = 'batch'

    @property
    def sequence_names(self) -> Tuple[str, ...]:
        return tuple(record.name for record in self.sequences)

    @property
    def output_bases(self) -> int:
        return sum(record.length for record in self.sequences)

    def segments(self) -> Tuple[Segment, ...]:
        return tuple(
            Segment(
                name=record.name,
                fetch_start=1,
                fetch_end=record.length,
                output_start=1,
                output_end=record.length,
                sequence_length=record.length,
                whole=True,
            )
            for record in self.sequences
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'mode': self.mode,
            'sequences': [[r.name, r.length] for r in self.sequences],
        }


WorkUnit = Union[RangeUnit, BatchUnit]


def unit_from_dict(data: Dict[str, Any]) -> WorkUnit:
    """Rebuild a work unit from its ``to_dict()`` form."""
    kind = data.get('kind')
    if kind == RangeUnit.kind:
        return RangeUnit(
            sequence_name=data['sequence_name'],
            fetch_start=int(data['fetch_start']),
            fetch_end=int(data['fetch_end']),
            output_start=int(data['output_start']),
            output_end=int(data['output_end']),
            sequence_length=int(data['sequence_length']),
        )
    if kind == BatchUnit.kind:
        return BatchUnit(
            sequences=tuple(SequenceRecord(str(n), int(l)) for n, l in data['sequences']),
            mode=data.get('mode', 'whole-sequence'),
        )
    raise ValueError(f"Unknown work unit kind: {kind!r}")


@dataclass(frozen=True)
class JobDescriptor:
    """
    Everything one worker needs to score a unit on one strand.

    ``sequential_id`` is assigned in submission order and is the only link
    between a job and its place in the aggregated track.
    """
    unit: WorkUnit
    strand: str
    sequential_id: int
    reference: str
    resolution: int
    floor: float

    def __post_init__(self):
        if self.strand not in STRANDS:
            raise ValueError(f"Invalid strand {self.strand!r}; expected one of {list(STRANDS)}")

    @property
    def strand_name(self) -> str:
        return STRANDS[self.strand]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequential_id': self.sequential_id,
            'strand': self.strand,
            'reference': self.reference,
            'resolution': self.resolution,
            'floor': self.floor,
            'unit': self.unit.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JobDescriptor':
        return cls(
            unit=unit_from_dict(data['unit']),
            strand=data['strand'],
            sequential_id=int(data['sequential_id']),
            reference=data['reference'],
            resolution=int(data['resolution']),
            floor=float(data['floor']),
        )


class ScoredOutput:
    """
    Acceptor and donor probabilities for one scored sequence.

    Both vectors are aligned to the fetched bases in the order they were
    given to the scorer (reverse-complemented order on the minus strand).
    """

    __slots__ = ('acceptor', 'donor')

    def __init__(self, acceptor, donor):
        self.acceptor = np.asarray(acceptor, dtype=np.float64).ravel()
        self.donor = np.asarray(donor, dtype=np.float64).ravel()
        if len(self.acceptor) != len(self.donor):
            raise StitchError(
                f"Scored vectors differ in length: acceptor={len(self.acceptor)}, "
                f"donor={len(self.donor)}"
            )

    def __len__(self) -> int:
        return len(self.acceptor)

    def event(self, event_type: str) -> np.ndarray:
        if event_type == 'acceptor':
            return self.acceptor
        if event_type == 'donor':
            return self.donor
        raise ValueError(f"Unknown event type: {event_type!r}")
