"""Session aggregation for insight prompts.

Reduces the raw session rows of a window to a compact AggregatedSummary:
totals, a per-activity ranking with percentage shares, description
density, a few recent session notes and, when the prior window's summary
is supplied, trend deltas.

Example:
    >>> aggregator = SessionAggregator(sample_limit=5)
    >>> summary = aggregator.aggregate(records, window)
    >>> summary.activities[0].activity
    'writing'
"""

import logging
from typing import Iterable, List, Optional, Union

from .errors import AggregationError
from .models import (
    ActivityStat,
    AggregatedSummary,
    SessionRecord,
    TimeWindow,
    TrendBlock,
)

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_LIMIT = 5


def _hours(seconds: float) -> float:
    return round(seconds / 3600, 2)


def _as_record(record: Union[SessionRecord, dict]) -> SessionRecord:
    if isinstance(record, SessionRecord):
        return record
    return SessionRecord.from_row(record)


def _validate(record: SessionRecord) -> None:
    """Raise AggregationError if the record cannot be aggregated."""
    if not record.activity_type:
        raise AggregationError(record.id, "missing activity type")
    if record.duration is None or record.duration <= 0:
        raise AggregationError(record.id, f"non-positive duration {record.duration}")
    if record.end_time < record.start_time:
        raise AggregationError(
            record.id,
            f"end_time {record.end_time} before start_time {record.start_time}",
        )


def empty_summary(activity: Optional[str] = None) -> AggregatedSummary:
    """Summary for a window with no sessions."""
    return AggregatedSummary(activity=activity)


class SessionAggregator:
    """Aggregates focus sessions over a time window.

    Attributes:
        sample_limit: Maximum number of sample descriptions kept.
    """

    def __init__(self, sample_limit: int = DEFAULT_SAMPLE_LIMIT):
        self.sample_limit = sample_limit

    def window_records(
        self,
        records: Iterable[Union[SessionRecord, dict]],
        window: TimeWindow,
    ) -> List[SessionRecord]:
        """Select the valid records that belong to a window.

        A record belongs to the window when its start_time falls in
        ``[window.start, window.end)`` and, for activity windows, its
        activity matches. Malformed records are logged and dropped.

        Args:
            records: Candidate session records or ``sessions`` rows.
            window: The window to select for.

        Returns:
            Valid records in input order.
        """
        selected = []
        for raw in records:
            record = _as_record(raw)
            if not window.contains(record.start_time):
                continue
            if window.activity and record.activity_type != window.activity:
                continue
            try:
                _validate(record)
            except AggregationError as e:
                logger.warning(f"Dropping session from aggregation: {e}")
                continue
            selected.append(record)
        return selected

    def aggregate(
        self,
        records: Iterable[Union[SessionRecord, dict]],
        window: TimeWindow,
        prior_summary: Optional[AggregatedSummary] = None,
    ) -> AggregatedSummary:
        """Aggregate the sessions of a window into a summary.

        Args:
            records: Session records; out-of-window ones are ignored.
            window: Window to aggregate.
            prior_summary: Summary of the preceding window, for trends.

        Returns:
            AggregatedSummary for the window.
        """
        return self.summarize(self.window_records(records, window), window, prior_summary)

    def summarize(
        self,
        sessions: List[SessionRecord],
        window: TimeWindow,
        prior_summary: Optional[AggregatedSummary] = None,
    ) -> AggregatedSummary:
        """Summarize records already selected by window_records."""
        if not sessions:
            summary = empty_summary(window.activity)
            if prior_summary is not None:
                summary.trends = self._calculate_trends(summary, prior_summary)
            return summary

        total_sessions = len(sessions)
        total_seconds = sum(s.duration for s in sessions)

        with_notes = sum(
            1 for s in sessions
            if isinstance(s.description, str) and s.description.strip()
        )
        density = min(1.0, max(0.0, with_notes / total_sessions))

        summary = AggregatedSummary(
            total_sessions=total_sessions,
            total_seconds=total_seconds,
            total_hours=_hours(total_seconds),
            avg_session_minutes=round(total_seconds / total_sessions / 60, 1),
            activities=self._rank_activities(sessions, total_seconds),
            description_density=density,
            sample_descriptions=self._sample_descriptions(sessions),
            activity=window.activity,
        )

        if prior_summary is not None:
            summary.trends = self._calculate_trends(summary, prior_summary)

        return summary

    def _rank_activities(
        self,
        sessions: List[SessionRecord],
        total_seconds: int,
    ) -> List[ActivityStat]:
        """Group by activity, rank by duration descending, ties by name."""
        grouped = {}
        for session in sessions:
            count, seconds = grouped.get(session.activity_type, (0, 0))
            grouped[session.activity_type] = (count + 1, seconds + session.duration)

        ranked = sorted(grouped.items(), key=lambda item: (-item[1][1], item[0]))
        return [
            ActivityStat(
                activity=activity,
                session_count=count,
                total_seconds=seconds,
                hours=_hours(seconds),
                percentage=round(seconds / total_seconds * 100, 1),
                avg_minutes=round(seconds / count / 60, 1),
            )
            for activity, (count, seconds) in ranked
        ]

    def _sample_descriptions(self, sessions: List[SessionRecord]) -> List[str]:
        """Most recent unique non-empty descriptions, up to sample_limit."""
        newest_first = sorted(
            sessions,
            key=lambda s: (s.start_time, s.created_at),
            reverse=True,
        )
        samples = []
        for session in newest_first:
            if len(samples) >= self.sample_limit:
                break
            if not isinstance(session.description, str):
                continue
            text = session.description.strip()
            if text and text not in samples:
                samples.append(text)
        return samples

    def _calculate_trends(
        self,
        current: AggregatedSummary,
        prior: AggregatedSummary,
    ) -> TrendBlock:
        prior_sessions = getattr(prior, "total_sessions", 0) or 0
        prior_seconds = getattr(prior, "total_seconds", 0) or 0

        if prior_seconds == 0:
            percentage_change = 0
        else:
            percentage_change = round(
                (current.total_seconds - prior_seconds) / prior_seconds * 100
            )

        return TrendBlock(
            session_count_change=current.total_sessions - prior_sessions,
            hours_change=_hours(current.total_seconds - prior_seconds),
            percentage_change=percentage_change,
        )


def aggregate(
    records: Iterable[Union[SessionRecord, dict]],
    window: TimeWindow,
    prior_summary: Optional[AggregatedSummary] = None,
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
) -> AggregatedSummary:
    """Aggregate records over a window with a throwaway SessionAggregator."""
    return SessionAggregator(sample_limit).aggregate(records, window, prior_summary)
