"""
SpliceTracks package.

Genome-wide splice-site probability tracks, computed in independent jobs:

- Configuration (config/)
- Data model (models.py)
- Exceptions (errors.py)
- Reference access (reference.py)
- Scorer interface (scorer.py)
- Command line (cli.py)

Pipeline components:
- ChunkPlanner              – Overlapping range units + short-sequence batches
- Job list generator        – Per-strand job descriptors, manifest, jobList
- Stitcher                  – Scored fetch window → canonical per-base stream
- Job worker                – Fetch, score, stitch, write one artifact
- SystemResourceInspector   – RAM / CPU availability for local workers
- ParallelJobExecutor       – Parallel / sequential local job execution
- TrackAggregator           – Stream-merge artifacts into four wiggle tracks
"""

__version__ = "2025.1"
