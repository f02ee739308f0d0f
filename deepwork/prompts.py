"""Prompt construction for insight generation.

One policy per insight kind turns an aggregated summary into the prompt
sent to the LLM. Prompts adapt to the data: windows without sessions get
a fixed encouragement prompt, and session notes are only included when
enough sessions carry one.

The builder tolerates partial input. The summary may be an
AggregatedSummary, a plain dict or None, and missing fields read as
zero or empty.
"""

from typing import List, Optional

from .models import INSIGHT_KINDS

SYSTEM_PROMPT = (
    "You are a productivity coach providing personalized insights based on "
    "focus session data. Be encouraging, specific, and actionable. Keep "
    "responses under 150 words."
)

DEFAULT_DESCRIPTION_THRESHOLD = 0.3
TOP_ACTIVITY_COUNT = 3

_DEFAULT_LABELS = {
    "daily": "yesterday",
    "weekly": "last week",
    "monthly": "last month",
    "activity": "the last 7 days",
}


def _get(obj, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def _number(obj, name: str) -> float:
    value = _get(obj, name, 0)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _signed(value, fmt: str = "") -> str:
    """Render a delta with an explicit sign, '+' for zero and above."""
    sign = "+" if value >= 0 else "-"
    return f"{sign}{abs(value):{fmt}}"


class PromptBuilder:
    """Builds LLM prompts from aggregated summaries.

    Attributes:
        description_threshold: Minimum description density before session
            notes are quoted in the prompt.
    """

    def __init__(self, description_threshold: float = DEFAULT_DESCRIPTION_THRESHOLD):
        self.description_threshold = description_threshold

    def build(
        self,
        kind: str,
        summary,
        label: Optional[str] = None,
        activity: Optional[str] = None,
    ) -> str:
        """Build the prompt for an insight kind.

        Args:
            kind: One of "daily", "weekly", "monthly", "activity".
            summary: Aggregated summary (object, dict or None).
            label: Human-readable window label.
            activity: Activity name for activity insights; falls back to
                the summary's activity field.

        Returns:
            Prompt text.

        Raises:
            ValueError: If kind is not a known insight kind.
        """
        if kind not in INSIGHT_KINDS:
            raise ValueError(f"Unknown insight kind: {kind}")

        label = label or _DEFAULT_LABELS[kind]
        if kind == "activity":
            activity = activity or _get(summary, "activity") or "this activity"

        if int(_number(summary, "total_sessions")) == 0:
            return self._empty_prompt(kind, activity)

        if kind == "daily":
            return self._daily(summary, label)
        if kind == "weekly":
            return self._weekly(summary, label)
        if kind == "monthly":
            return self._monthly(summary, label)
        return self._activity(summary, label, activity)

    def _daily(self, summary, label: str) -> str:
        lines = [
            f"Analyze this user's focus session data from {label}:",
            "",
            f"Total Sessions: {int(_number(summary, 'total_sessions'))}",
            f"Total Focus Time: {_number(summary, 'total_hours'):.1f} hours",
            f"Average Session: {_number(summary, 'avg_session_minutes'):.0f} minutes",
            "",
            "Activity Breakdown:",
            self._format_activities(summary),
        ]
        lines += self._descriptions_block(summary, "Sample session descriptions:")
        lines += [
            "",
            "Provide a brief, encouraging insight (2-3 sentences) that:",
            "1. Highlights a specific pattern or achievement",
            "2. Offers one actionable suggestion for improvement",
            "Keep the tone supportive and motivational.",
        ]
        return "\n".join(lines)

    def _weekly(self, summary, label: str) -> str:
        top = self._activities(summary)
        most_productive = _get(top[0], "activity", "N/A") if top else "N/A"
        lines = [
            "Analyze this user's weekly focus performance:",
            "",
            f"Week Summary ({label}):",
            f"- Sessions Completed: {int(_number(summary, 'total_sessions'))}",
            f"- Total Focus Time: {_number(summary, 'total_hours'):.1f} hours",
            f"- Avg Session Length: {_number(summary, 'avg_session_minutes'):.0f} minutes",
            f"- Most Productive Activity: {most_productive}",
        ]

        trends = _get(summary, "trends")
        if trends:
            sessions_delta = int(_number(trends, "session_count_change"))
            hours_delta = _number(trends, "hours_change")
            pct_delta = int(_number(trends, "percentage_change"))
            lines += [
                "",
                "Trends vs Previous Week:",
                f"- Session Count: {_signed(sessions_delta)}",
                f"- Focus Time: {_signed(hours_delta, '.1f')} hours",
                f"- Change: {_signed(pct_delta)}%",
            ]

        lines += [
            "",
            "Activity Distribution:",
            self._format_activities(summary),
        ]
        lines += self._descriptions_block(summary, "Sample session descriptions:")
        lines += [
            "",
            "Generate a weekly review (3-4 sentences) that:",
            "1. Celebrates specific wins from this week",
            "2. Frames the key trend or pattern compared to the previous week",
            "3. Suggests one strategy to optimize next week's performance",
            "Keep the tone supportive and motivational.",
        ]
        return "\n".join(lines)

    def _monthly(self, summary, label: str) -> str:
        total_hours = _number(summary, "total_hours")
        density = _number(summary, "description_density")
        lines = [
            "Analyze this user's monthly focus performance:",
            "",
            f"Month: {label}",
            f"- Total Sessions: {int(_number(summary, 'total_sessions'))}",
            f"- Total Focus Hours: {total_hours:.1f}",
            f"- Daily Average: {total_hours / 30:.1f} hours",
            f"- Session Consistency: {'High' if density > 0.5 else 'Moderate'}",
            "",
            "Top Focus Areas:",
            self._format_activities(summary),
        ]
        lines += self._descriptions_block(summary, "Sample session descriptions:")
        lines += [
            "",
            "Generate a monthly review (4-5 sentences) that:",
            "1. Provides a big-picture perspective on their month",
            "2. Highlights their strongest performance area",
            "3. Identifies one area for growth next month",
            "4. Offers specific, actionable advice",
            "Keep the tone supportive and motivational.",
        ]
        return "\n".join(lines)

    def _activity(self, summary, label: str, activity: str) -> str:
        lines = [
            f"Analyze the user's {activity} activity over {label}:",
            "",
            f"Sessions: {int(_number(summary, 'total_sessions'))}",
            f"Total Time: {_number(summary, 'total_hours'):.1f} hours",
            f"Average Duration: {_number(summary, 'avg_session_minutes'):.0f} minutes",
            "",
            "Activity Breakdown:",
            self._format_activities(summary),
        ]
        lines += self._descriptions_block(summary, "Recent session notes:", limit=2)
        lines += [
            "",
            "Provide activity-specific feedback (2-3 sentences) that:",
            f"1. Comments on their {activity} focus patterns",
            "2. Suggests how to optimize this activity type",
            "Keep the tone supportive and motivational.",
        ]
        return "\n".join(lines)

    def _activities(self, summary) -> List:
        activities = _get(summary, "activities") or []
        return list(activities)[:TOP_ACTIVITY_COUNT]

    def _format_activities(self, summary) -> str:
        top = self._activities(summary)
        if not top:
            return "- No activities recorded"
        return "\n".join(
            f"{rank}. {_get(act, 'activity', 'unknown')}: "
            f"{_number(act, 'hours'):.1f}h ({_number(act, 'percentage'):.0f}%)"
            for rank, act in enumerate(top, start=1)
        )

    def _descriptions_block(self, summary, heading: str, limit: int = 3) -> List[str]:
        if _number(summary, "description_density") <= self.description_threshold:
            return []
        samples = [d for d in (_get(summary, "sample_descriptions") or []) if d][:limit]
        if not samples:
            return []
        return ["", heading] + [f"{i}. {desc}" for i, desc in enumerate(samples, start=1)]

    def _empty_prompt(self, kind: str, activity: Optional[str]) -> str:
        if kind == "activity":
            return (
                f"The user has no {activity} sessions in this period. Write an "
                "encouraging 2-sentence message that motivates them to schedule "
                f"focused time for {activity}."
            )
        period = {"daily": "day", "weekly": "week", "monthly": "month"}[kind]
        return (
            f"The user has no focus sessions for this {period}. Write an "
            "encouraging 2-sentence message that:\n"
            "1. Acknowledges they're just getting started or took a break\n"
            "2. Motivates them to schedule their next focus session"
        )


def build_prompt(kind: str, summary, label: Optional[str] = None,
                 activity: Optional[str] = None) -> str:
    """Build a prompt with the default description threshold."""
    return PromptBuilder().build(kind, summary, label=label, activity=activity)
