"""Insight windows and natural-language reference dates.

Resolves an insight kind and a reference time into a half-open
TimeWindow in local time, finds the window preceding it for trend
comparison, and parses the date expressions accepted by the CLI and the
HTTP API.

Example:
    >>> parser = TimeParser(datetime(2025, 12, 10, 9, 30))
    >>> window = parser.window_for("weekly")
    >>> datetime.fromtimestamp(window.start), datetime.fromtimestamp(window.end)
    (datetime(2025, 12, 1, 0, 0), datetime(2025, 12, 8, 0, 0))
    >>> window.label
    'Dec 01 - Dec 07, 2025'
"""

from datetime import datetime, timedelta
from typing import Optional
import re

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from .models import INSIGHT_KINDS, TimeWindow

DEFAULT_ACTIVITY_DAYS = 7

_WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class TimeParser:
    """Build insight windows relative to a reference time.

    Attributes:
        now: Reference datetime for relative calculations (defaults to now)
        today_start: Start of the reference day at midnight
        activity_days: Length of activity insight windows in days
    """

    def __init__(self, reference_time: datetime = None, activity_days: int = DEFAULT_ACTIVITY_DAYS):
        """Initialize TimeParser.

        Args:
            reference_time: Base datetime for relative calculations.
                If None, uses current datetime.
            activity_days: Days covered by an activity insight.
        """
        self.now = reference_time or datetime.now()
        self.today_start = _midnight(self.now)
        self.activity_days = activity_days

    def window_for(self, kind: str, activity: Optional[str] = None) -> TimeWindow:
        """Latest window of a kind as of the reference time.

        Daily, weekly and monthly insights cover the most recent completed
        day, Monday-based week and calendar month. Activity insights cover
        the last ``activity_days`` days including the reference day.

        Args:
            kind: One of "daily", "weekly", "monthly", "activity".
            activity: Activity name, required for activity insights.

        Returns:
            Half-open TimeWindow.

        Raises:
            ValueError: If kind is unknown or activity is missing.
        """
        if kind == "daily":
            moment = self.today_start - timedelta(days=1)
        elif kind == "weekly":
            moment = self.today_start - timedelta(days=self.now.weekday() + 7)
        elif kind == "monthly":
            moment = self.today_start.replace(day=1) - relativedelta(months=1)
        elif kind == "activity":
            moment = self.now
        else:
            raise ValueError(f"Unknown insight kind: {kind}")
        return self.window_containing(kind, moment, activity)

    def window_containing(
        self,
        kind: str,
        moment: datetime,
        activity: Optional[str] = None,
    ) -> TimeWindow:
        """Window of a kind that contains a moment.

        For activity insights the window is the ``activity_days`` days
        ending with the moment's day.
        """
        if kind not in INSIGHT_KINDS:
            raise ValueError(f"Unknown insight kind: {kind}")

        day = _midnight(moment)
        if kind == "daily":
            start, end = day, day + timedelta(days=1)
        elif kind == "weekly":
            start = day - timedelta(days=day.weekday())
            end = start + timedelta(days=7)
        elif kind == "monthly":
            start = day.replace(day=1)
            end = start + relativedelta(months=1)
        else:
            end = day + timedelta(days=1)
            start = end - timedelta(days=self.activity_days)

        return self._window(kind, start, end, activity)

    def previous_window(self, window: TimeWindow) -> TimeWindow:
        """The window immediately before another one, same kind and length.

        Monthly windows step back one calendar month.
        """
        start = datetime.fromtimestamp(window.start)
        end = datetime.fromtimestamp(window.end)
        if window.kind == "monthly":
            prev_start = start - relativedelta(months=1)
        else:
            prev_start = start - (end - start)
        return self._window(window.kind, prev_start, start, window.activity)

    def _window(self, kind: str, start: datetime, end: datetime,
                activity: Optional[str]) -> TimeWindow:
        label = self.describe_range(start, end - timedelta(seconds=1))
        if kind == "activity":
            label = f"{label} - {activity}"
        return TimeWindow(
            start=int(start.timestamp()),
            end=int(end.timestamp()),
            label=label,
            kind=kind,
            activity=activity,
        )

    def parse_date(self, text: str) -> datetime:
        """Parse a reference date expression to midnight of that day.

        Supports "today", "yesterday", "N days ago", weekday names
        ("monday", "last friday"), ISO dates and anything dateutil accepts.

        Raises:
            ValueError: If the text cannot be parsed.
        """
        text = text.lower().strip()

        if text == 'today':
            return self.today_start
        if text == 'yesterday':
            return self.today_start - timedelta(days=1)

        match = re.match(r'^(\d+) days? ago$', text)
        if match:
            return self.today_start - timedelta(days=int(match.group(1)))

        match = re.match(r'^(last )?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)$', text)
        if match:
            target = _WEEKDAYS.index(match.group(2))
            days_ago = (self.now.weekday() - target) % 7
            if match.group(1) and days_ago == 0:
                days_ago = 7
            return self.today_start - timedelta(days=days_ago)

        match = re.match(r'^(\d{4}-\d{2}-\d{2})$', text)
        if match:
            return datetime.strptime(match.group(1), '%Y-%m-%d')

        try:
            return _midnight(dateutil_parser.parse(text, fuzzy=True))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Could not parse date: {text}") from e

    def describe_range(self, start: datetime, end: datetime) -> str:
        """Generate human-readable description of a time range.

        Args:
            start: Start datetime of the range.
            end: Last moment inside the range.

        Returns:
            Formatted string describing the range.
        """
        if start.date() == end.date():
            return start.strftime('%A, %B %d, %Y')
        elif (end - start).days <= 7:
            return f"{start.strftime('%b %d')} - {end.strftime('%b %d, %Y')}"
        else:
            return f"{start.strftime('%B %d')} - {end.strftime('%B %d, %Y')}"
