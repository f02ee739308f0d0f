"""Error types raised by the insight engine."""


class InsightError(Exception):
    """Base class for insight engine failures."""


class AggregationError(InsightError):
    """A session record is malformed and cannot be aggregated.

    Raised per record during aggregation and recovered there by dropping
    the record; it never reaches callers of ``aggregate``.
    """

    def __init__(self, record_id, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Session {record_id}: {reason}")


class GenerationUnavailable(InsightError):
    """The generative text service failed, timed out, or returned nothing."""


class CacheUnavailable(InsightError):
    """The persisted insight cache could not be read or written."""
