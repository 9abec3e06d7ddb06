"""
Configuration modules for SpliceTracks.

This package contains all configuration constants including:
- pipeline: chunking, rendering and execution defaults
"""

from .pipeline import (
    PIPELINE_CONFIG,
    STRANDS,
    EVENT_TYPES,
    LEADING_EVENT,
    TRAILING_EVENT,
    SCORER_CONTEXT,
    OUTPUT_NAMES,
)

__all__ = [
    'PIPELINE_CONFIG',
    'STRANDS',
    'EVENT_TYPES',
    'LEADING_EVENT',
    'TRAILING_EVENT',
    'SCORER_CONTEXT',
    'OUTPUT_NAMES',
]
