"""Data types shared by the aggregator, prompt builder, cache and orchestrator.

Timestamps are Unix seconds (int) throughout. Windows are half-open:
a session belongs to ``[start, end)`` when ``start <= start_time < end``.
"""

from dataclasses import dataclass, field
from typing import List, Optional


INSIGHT_KINDS = ("daily", "weekly", "monthly", "activity")


@dataclass(frozen=True)
class SessionRecord:
    """An immutable focus session as recorded by the session tracker.

    Attributes:
        id: Unique, stable session identifier.
        activity_type: Activity tag (e.g. "writing", "deep-work").
        duration: Focused duration in seconds.
        start_time: Unix timestamp when the session started.
        end_time: Unix timestamp when the session ended.
        description: Optional free-text note entered by the user.
        created_at: Unix timestamp when the row was written.
    """
    id: int
    activity_type: str
    duration: int
    start_time: int
    end_time: int
    description: Optional[str] = None
    created_at: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "SessionRecord":
        """Build a record from a ``sessions`` table row."""
        return cls(
            id=row["id"],
            activity_type=row["activity_type"],
            duration=row["duration"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            description=row.get("description"),
            created_at=row.get("created_at") or 0,
        )


@dataclass(frozen=True)
class TimeWindow:
    """A half-open time interval that an insight covers.

    Attributes:
        start: Inclusive Unix timestamp.
        end: Exclusive Unix timestamp.
        label: Human-readable description ("Yesterday", "Dec 01 - Dec 07, 2025").
        kind: One of INSIGHT_KINDS.
        activity: Activity tag, required when kind is "activity".
    """
    start: int
    end: int
    label: str
    kind: str
    activity: Optional[str] = None

    def __post_init__(self):
        if self.kind not in INSIGHT_KINDS:
            raise ValueError(f"Unknown insight kind: {self.kind}")
        if self.end <= self.start:
            raise ValueError(f"Window end {self.end} must be after start {self.start}")
        if self.kind == "activity" and not self.activity:
            raise ValueError("Activity windows require an activity name")

    @property
    def cache_kind(self) -> str:
        """Insight type stored in the cache for this window.

        Activity insights are keyed per activity so two activities over the
        same dates never share a row.
        """
        if self.kind == "activity":
            return f"activity_{self.activity}"
        return self.kind

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end


@dataclass
class ActivityStat:
    """Totals for one activity type within a window."""
    activity: str
    session_count: int
    total_seconds: int
    hours: float
    percentage: float
    avg_minutes: float


@dataclass
class TrendBlock:
    """Change versus the prior window.

    Attributes:
        session_count_change: Current minus prior session count.
        hours_change: Current minus prior focus hours.
        percentage_change: Whole-number change in total focus time,
            0 when the prior window had no focus time.
    """
    session_count_change: int
    hours_change: float
    percentage_change: int


@dataclass
class AggregatedSummary:
    """Derived statistics for one window, recomputed on every request.

    Attributes:
        total_sessions: Number of valid sessions in the window.
        total_seconds: Sum of session durations.
        total_hours: Total focus time in hours (two decimals).
        avg_session_minutes: Mean session length in minutes (one decimal).
        activities: Activities ranked by total duration, ties by name.
        description_density: Fraction of sessions with a note, in [0, 1].
        sample_descriptions: Most recent unique notes, bounded.
        trends: Change versus the prior window, when one was supplied.
        activity: Activity tag for activity-specific summaries.
    """
    total_sessions: int = 0
    total_seconds: int = 0
    total_hours: float = 0.0
    avg_session_minutes: float = 0.0
    activities: List[ActivityStat] = field(default_factory=list)
    description_density: float = 0.0
    sample_descriptions: List[str] = field(default_factory=list)
    trends: Optional[TrendBlock] = None
    activity: Optional[str] = None

    def top_activities(self, count: int = 3) -> List[ActivityStat]:
        return self.activities[:count]


@dataclass
class CacheEntry:
    """One row of the ``insights_cache`` table.

    Attributes:
        insight_type: Cache kind (see TimeWindow.cache_kind).
        time_period_start: Window start, part of the unique key.
        time_period_end: Window end, part of the unique key.
        data_hash: Fingerprint of the sessions that produced the text.
        generated_at: Unix timestamp of generation.
        insight_text: The generated insight.
        id: Row id when read back from the store.
    """
    insight_type: str
    time_period_start: int
    time_period_end: int
    data_hash: str
    generated_at: int
    insight_text: str
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "CacheEntry":
        return cls(
            insight_type=row["insight_type"],
            time_period_start=row["time_period_start"],
            time_period_end=row["time_period_end"],
            data_hash=row["data_hash"],
            generated_at=row["generated_at"],
            insight_text=row["insight_text"],
            id=row.get("id"),
        )


@dataclass
class InsightResult:
    """Insight text plus how it was obtained.

    Attributes:
        text: The insight shown to the user.
        window: The window the insight covers.
        fingerprint: Fingerprint of the window's sessions at request time.
        from_cache: True when no generation call was made.
        stale: True when generation failed and an outdated entry was served.
        generated_at: When the returned text was generated.
    """
    text: str
    window: TimeWindow
    fingerprint: str
    from_cache: bool = False
    stale: bool = False
    generated_at: Optional[int] = None
