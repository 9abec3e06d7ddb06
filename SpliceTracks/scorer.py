"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ Scorer Interface - Sequence → Acceptor / Donor Probability Vectors           │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    The scoring model is an external collaborator.  This module defines the
    narrow interface the workers call and an adapter for SpliceAI-style
    models:

        input   (batch, SCORER_CONTEXT + block, 4)  one-hot A/C/G/T, N = 0
        output  (batch, block, 3)                   channels: neither,
                                                     acceptor, donor

    The adapter pads the sequence with SCORER_CONTEXT / 2 N bases on each
    side, cuts it into blocks of ``block_size`` output positions (each with
    its full flanking context) and stitches the block outputs back into one
    vector per event type, aligned 1:1 with the input bases.

USAGE::

    scorer = ModelScorer(model)              # model: ndarray -> ndarray
    acceptor, donor = scorer.score("ACGT...")

    scorer = load_scorer("mypkg.models:build_spliceai")
"""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from typing import Callable, Tuple

import numpy as np

from SpliceTracks.config import SCORER_CONTEXT
from SpliceTracks.errors import StitchError

logger = logging.getLogger(__name__)

# One-hot encoding of the inputs: 0 is for padding / N, and 1, 2, 3, 4
# correspond to A, C, G, T respectively.
IN_MAP = np.asarray([[0, 0, 0, 0],
                     [1, 0, 0, 0],
                     [0, 1, 0, 0],
                     [0, 0, 1, 0],
                     [0, 0, 0, 1]], dtype=np.float32)

_BASE_CODES = np.zeros(256, dtype=np.int8)
for _code, _base in enumerate("ACGT", start=1):
    _BASE_CODES[ord(_base)] = _code
    _BASE_CODES[ord(_base.lower())] = _code

# Output channel order of the model
ACCEPTOR_CHANNEL = 1
DONOR_CHANNEL = 2


def one_hot_encode(sequence: str) -> np.ndarray:
    """Encode *sequence* as an (L, 4) float array; non-ACGT bases are all-zero."""
    codes = _BASE_CODES[np.frombuffer(sequence.encode("ascii"), dtype=np.uint8)]
    return IN_MAP[codes]


class BaseScorer(ABC):
    """Abstract scorer: one acceptor and one donor value per input base."""

    @abstractmethod
    def score(self, sequence: str) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(acceptor, donor)`` vectors of ``len(sequence)`` values."""
        ...


class ModelScorer(BaseScorer):
    """
    Wrap a block-wise model callable as a :class:`BaseScorer`.

    Args:
        model:      Callable mapping ``(n, context + block, 4)`` arrays to
                    ``(n, block, 3)`` probabilities.
        context:    Total flanking context consumed by the model (even).
        block_size: Output positions per model input row.
    """

    def __init__(
        self,
        model: Callable[[np.ndarray], np.ndarray],
        context: int = SCORER_CONTEXT,
        block_size: int = 5_000,
    ):
        if context % 2 != 0:
            raise ValueError(f"context ({context}) must be even")
        if block_size <= 0:
            raise ValueError(f"block_size ({block_size}) must be positive")
        self.model = model
        self.context = context
        self.block_size = block_size

    def _blocks(self, sequence: str) -> np.ndarray:
        flank = "N" * (self.context // 2)
        num_blocks = -(-len(sequence) // self.block_size)
        tail = "N" * (num_blocks * self.block_size - len(sequence))
        encoded = one_hot_encode(flank + sequence + tail + flank)

        width = self.block_size + self.context
        return np.stack([
            encoded[i * self.block_size:i * self.block_size + width]
            for i in range(num_blocks)
        ])

    def score(self, sequence: str) -> Tuple[np.ndarray, np.ndarray]:
        if not sequence:
            return np.zeros(0), np.zeros(0)

        x = self._blocks(sequence)
        y = np.asarray(self.model(x))
        if y.ndim != 3 or y.shape[0] != x.shape[0] or y.shape[1] != self.block_size:
            raise StitchError(
                f"Model returned shape {y.shape} for input {x.shape}; expected "
                f"({x.shape[0]}, {self.block_size}, 3) with context {self.context}"
            )

        y = y.reshape(-1, y.shape[-1])[:len(sequence)]
        logger.debug(f"Scored {len(sequence):,} bases in {x.shape[0]} block(s)")
        return y[:, ACCEPTOR_CHANNEL], y[:, DONOR_CHANNEL]


def load_scorer(target: str) -> BaseScorer:
    """
    Build a scorer from a ``"module:factory"`` import path.

    The factory is called without arguments.  A result with a ``score``
    method is used as-is; any other callable is treated as a block-wise
    model and wrapped in :class:`ModelScorer`.

    Raises:
        ValueError: Malformed target string.
        TypeError:  The factory returned something that cannot score.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Scorer must be given as 'module:factory', got {target!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    scorer = factory()
    if hasattr(scorer, "score"):
        return scorer
    if callable(scorer):
        return ModelScorer(scorer)
    raise TypeError(f"{target} returned {type(scorer).__name__}, which cannot score sequences")
