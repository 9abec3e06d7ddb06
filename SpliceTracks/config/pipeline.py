"""
Pipeline configuration for SpliceTracks.

This module contains the run parameters shared by planning, job generation,
stitching and aggregation:
- Chunking thresholds (chunk size, overlap margin, batching limits)
- Rendering of probabilities (resolution, zero floor)
- Strand and event-type vocabularies
- Scorer context margin

CHUNKING BEHAVIOR
-----------------
- length <  min_size              : sequence is skipped entirely
- min_size <= length < chunk_size : batched whole with other short sequences
- length >= chunk_size            : split into range units of chunk_size bp,
                                    each fetched with `overlap` bp of context
                                    on both sides (clamped to the sequence)

RENDERING
---------
Values below `floor` are written as a literal 0 so the aggregated wiggle
tracks compress well; everything else is written with `resolution`
fractional digits.
"""

# ==================== PIPELINE PARAMETERS ====================
PIPELINE_CONFIG = {
    # Chunking
    'chunk_size': 6_000_000,      # Maximum output bases per range unit / batch (bp)
    'overlap': 50_000,            # Context fetched on each side of a range unit (bp)
    'min_size': 1,                # Sequences shorter than this are not scored (bp)
    'max_batch_count': 1_000,     # Maximum short sequences sharing one job

    # Reproducibility
    'seed': 0,                    # Seed for the planning permutation

    # Rendering
    'resolution': 2,              # Fractional digits written per value
    'floor': 0.01,                # Values below this are written as 0

    # Local execution
    'per_worker_ram': 4_000_000_000,  # Estimated RAM per scoring worker (bytes)
}

# ==================== VOCABULARIES ====================
# Strand symbol -> name used in artifact and track file names
STRANDS = {
    '+': 'plus',
    '-': 'minus',
}

# Interleaving order of the per-position pair; the aggregator relies on it
EVENT_TYPES = ('acceptor', 'donor')

# Event whose value is taken from the preceding base ("leading") and from the
# following base ("trailing"), per strand. Reversal of the minus-strand
# vector swaps the roles.
LEADING_EVENT = {'+': 'donor', '-': 'acceptor'}
TRAILING_EVENT = {'+': 'acceptor', '-': 'donor'}

# ==================== SCORER ====================
# Total flanking context (N bases) the model consumes, half on each side.
# Must be even.
SCORER_CONTEXT = 10_000

# ==================== FILE NAMES ====================
OUTPUT_NAMES = {
    'chrom_sizes': 'chrom.sizes',
    'plan': 'plan.tsv',
    'manifest': 'jobs.jsonl',
    'job_list': 'jobList',
    'artifacts': 'results',
    'tracks': 'tracks',
    'log': 'splicetracks.log',
}
