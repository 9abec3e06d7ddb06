"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Reference Access - Chromosome Sizes and Indexed FASTA Fetching               │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Reads the sequence size index used for planning and fetches sequence
    intervals for workers.

    Size index      – two-column ``name<TAB>length`` file (UCSC chrom.sizes),
                      or the first two columns of a samtools ``.fai`` index.
    Sequence fetch  – random access into an uncompressed FASTA through
                      pyfaidx; the ``.fai`` index is built on first use when
                      absent.  Only the requested interval is read, so memory
                      scales with the fetch interval, not the genome.

    Ambiguous bases are expected to have been replaced upstream; the
    provider only uppercases.  Minus-strand fetches are reverse complemented.

USAGE::

    records  = load_chrom_sizes("hg38.chrom.sizes")
    provider = FastaSequenceProvider("hg38.fa")
    seq      = provider.fetch("chr1", 1, 6_050_000, "-")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd
import pyfaidx

from SpliceTracks.errors import FetchError, PlanningError
from SpliceTracks.models import SequenceRecord

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans("ACGTNacgtn", "TGCANtgcan")


def reverse_complement(sequence: str) -> str:
    """Return the reverse complement of an (already resolved) DNA sequence."""
    return sequence.translate(_COMPLEMENT)[::-1]


# ──────────────────────────────────────────────────────────────────────────────
# SIZE INDEX
# ──────────────────────────────────────────────────────────────────────────────

def load_chrom_sizes(path) -> List[SequenceRecord]:
    """
    Read a chrom.sizes / .fai file into sequence records.

    Order is preserved as found in the file; planning does not rely on it.

    Raises:
        PlanningError: If the file is unreadable, empty, has non-integer or
                       non-positive lengths, or repeats a sequence name.
    """
    try:
        df = pd.read_csv(
            path,
            sep="\t",
            header=None,
            usecols=[0, 1],
            names=["name", "length"],
            dtype={"name": str},
            comment="#",
        )
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise PlanningError(f"Cannot read size index {path}: {exc}") from exc

    if df.empty:
        raise PlanningError(f"Size index {path} lists no sequences")

    lengths = pd.to_numeric(df["length"], errors="coerce")
    bad = df[lengths.isna() | (lengths <= 0) | (lengths % 1 != 0)]
    if not bad.empty:
        row = bad.iloc[0]
        raise PlanningError(
            f"Size index {path}: invalid length {row['length']!r} for {row['name']!r}"
        )

    duplicated = df["name"][df["name"].duplicated()]
    if not duplicated.empty:
        raise PlanningError(f"Size index {path}: duplicate sequence {duplicated.iloc[0]!r}")

    records = [
        SequenceRecord(name=name, length=int(length))
        for name, length in zip(df["name"], lengths)
    ]
    logger.info(
        f"Loaded {len(records):,} sequences ({sum(r.length for r in records):,} bp) from {path}"
    )
    return records


def write_chrom_sizes(records: List[SequenceRecord], path) -> Path:
    """Write records as a two-column chrom.sizes file."""
    path = Path(path)
    df = pd.DataFrame(
        [(r.name, r.length) for r in records], columns=["name", "length"]
    )
    df.to_csv(path, sep="\t", header=False, index=False)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# SEQUENCE PROVIDER
# ──────────────────────────────────────────────────────────────────────────────

class FastaSequenceProvider:
    """
    Fetch strand-specific intervals from an indexed FASTA file.

    Indexing and random access go through ``pyfaidx.Fasta``, which writes
    the ``.fai`` next to the FASTA when it is missing.  A provider holds an
    open file handle, so worker processes build their own from a provider
    factory rather than receiving a pickled instance.

    Usage::

        provider = FastaSequenceProvider("genome.fa")
        provider.fetch("chr2", 100, 200, "+")
    """

    def __init__(self, fasta_path, build_index: bool = True):
        self.fasta_path = Path(fasta_path)
        fai_path = Path(f"{self.fasta_path}.fai")
        indexed = fai_path.exists()
        if not indexed and not build_index:
            raise FetchError(f"Missing FASTA index {fai_path}")
        try:
            self.fasta = pyfaidx.Fasta(
                str(self.fasta_path),
                as_raw=True,
                sequence_always_upper=True,
                strict_bounds=True,
            )
        except (OSError, pyfaidx.FastaIndexingError) as exc:
            raise FetchError(f"Cannot open reference {self.fasta_path}: {exc}") from exc

        self.lengths: Dict[str, int] = {
            name: len(self.fasta[name]) for name in self.fasta.keys()
        }
        if not indexed:
            logger.info(f"Indexed {len(self.lengths):,} sequences in {self.fasta_path} → {fai_path}")

    def sequences(self) -> List[SequenceRecord]:
        """Sequence records in index order."""
        return [SequenceRecord(name, length) for name, length in self.lengths.items()]

    def fetch(self, name: str, start: int, end: int, strand: str = "+") -> str:
        """
        Return bases ``start..end`` (1-based, fully closed) of *name*.

        Raises:
            FetchError: Unknown sequence, interval outside the sequence, or an
                        unreadable / truncated FASTA.
        """
        if name not in self.lengths:
            raise FetchError(f"Sequence {name!r} not found in {self.fasta_path}")
        length = self.lengths[name]
        if start < 1 or end > length or start > end:
            raise FetchError(
                f"Interval {name}:{start}-{end} outside sequence bounds 1-{length}"
            )
        if strand not in ("+", "-"):
            raise FetchError(f"Invalid strand {strand!r}")

        try:
            sequence = str(self.fasta.get_seq(name, start, end))
        except (OSError, pyfaidx.FetchError) as exc:
            raise FetchError(f"Cannot read {name}:{start}-{end}: {exc}") from exc

        if len(sequence) != end - start + 1:
            raise FetchError(
                f"Short read for {name}:{start}-{end}: got {len(sequence)} bases"
            )

        logger.debug(f"Fetched {name}:{start:,}-{end:,} ({strand}) from {self.fasta_path}")
        return reverse_complement(sequence) if strand == "-" else sequence
