"""
Exception hierarchy for SpliceTracks.

    SpliceTracksError
        PlanningError     – bad input or parameters; nothing is dispatched
        FetchError        – a job could not read its sequence interval
        StitchError       – scored output does not fit the unit's coordinates
        AggregationError  – artifacts cannot be assembled into a track

FetchError and StitchError are fatal for one job only; the strand that job
belongs to cannot be aggregated afterwards.
"""


class SpliceTracksError(RuntimeError):
    """Base class for all pipeline failures"""
    pass


class PlanningError(SpliceTracksError):
    """Raised when sequence metadata or chunking parameters are invalid"""
    pass


class FetchError(SpliceTracksError):
    """Raised when a sequence interval cannot be retrieved"""
    pass


class StitchError(SpliceTracksError):
    """Raised when a scored vector cannot be trimmed to its output interval"""
    pass


class AggregationError(SpliceTracksError):
    """Raised when per-job artifacts cannot be concatenated into a track"""
    pass
