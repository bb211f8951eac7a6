"""
============================================================================
Temporal Expression Parser
============================================================================
Turns time phrases in a search query into a half-open time window:

- "2 hours ago", "30 minutes ago", "3 weeks ago"
- "yesterday", "today"
- "last Saturday", "this Monday", "on Friday"
- "last week", "this month", "last year"
- "in March"

Patterns are tried in that priority order and the first match wins. The
matched span is removed from the query so scoring only sees the topic.
Weeks start on Sunday. Times are naive local datetimes.
============================================================================
"""

import logging
import re
from datetime import datetime, timedelta

from ..models import TemporalFilter

logger = logging.getLogger(__name__)

DAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
MONTHS = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# (pattern, unit seconds, unit name); months are approximated as 30 days
RELATIVE_TIME_PATTERNS = [
    (re.compile(r"(\d+)\s*(hours?|hrs?)\s*ago", re.I), 3600, "hour"),
    (re.compile(r"(\d+)\s*(minutes?|mins?)\s*ago", re.I), 60, "minute"),
    (re.compile(r"(\d+)\s*(days?)\s*ago", re.I), 86400, "day"),
    (re.compile(r"(\d+)\s*(weeks?)\s*ago", re.I), 7 * 86400, "week"),
    (re.compile(r"(\d+)\s*(months?)\s*ago", re.I), 30 * 86400, "month"),
]
MAX_HALF_WIDTH = timedelta(hours=2)

YESTERDAY = re.compile(r"\byesterday\b", re.I)
TODAY = re.compile(r"\btoday\b", re.I)
LAST_WEEK = re.compile(r"\blast\s+week\b", re.I)
THIS_WEEK = re.compile(r"\bthis\s+week\b", re.I)
LAST_MONTH = re.compile(r"\blast\s+month\b", re.I)
THIS_MONTH = re.compile(r"\bthis\s+month\b", re.I)
LAST_YEAR = re.compile(r"\blast\s+year\b", re.I)
THIS_YEAR = re.compile(r"\bthis\s+year\b", re.I)

TEMPORAL_ONLY_PATTERNS = [
    re.compile(r"^what\s+(i\s+)?(wrote|was\s+thinking|thought|noted)\s*[?.]?\s*$", re.I),
    re.compile(r"^what\s+did\s+i\s+(write|note)\s*[?.]?\s*$", re.I),
    re.compile(r"^what\s+did\s+i\s+(write|note)\s+down\s*[?.]?\s*$", re.I),
    re.compile(r"^notes?\s+(from|i\s+wrote)\s*[?.]?\s*$", re.I),
    re.compile(r"^(from|my\s+notes?)\s*[?.]?\s*$", re.I),
]

def _strip(pattern: re.Pattern, query: str) -> str:
    return " ".join(pattern.sub(" ", query).split())


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _weekday_index(moment: datetime) -> int:
    """Day of week with Sunday = 0."""
    return (moment.weekday() + 1) % 7


def _start_of_week(moment: datetime) -> datetime:
    today = _start_of_day(moment)
    return today - timedelta(days=_weekday_index(today))


def _add_months(year: int, month: int, delta: int) -> datetime:
    index = year * 12 + (month - 1) + delta
    return datetime(index // 12, index % 12 + 1, 1)


def last_day_of_week(day: int, now: datetime) -> datetime:
    """Most recent strictly-past occurrence; today's weekday means a week ago."""
    today = _start_of_day(now)
    days_ago = _weekday_index(today) - day
    if days_ago <= 0:
        days_ago += 7
    return today - timedelta(days=days_ago)


def this_day_of_week(day: int, now: datetime) -> datetime:
    """Current or upcoming occurrence."""
    today = _start_of_day(now)
    days_until = (day - _weekday_index(today)) % 7
    return today + timedelta(days=days_until)


def _parse_relative_time(query: str, now: datetime) -> TemporalFilter | None:
    for pattern, unit_seconds, unit_name in RELATIVE_TIME_PATTERNS:
        match = pattern.search(query)
        if not match:
            continue

        value = int(match.group(1))
        try:
            ago = timedelta(seconds=value * unit_seconds)
            half_width = min(ago * 0.5, MAX_HALF_WIDTH)
            center = now - ago
            start_time = center - half_width
            end_time = center + half_width
        except (OverflowError, ValueError):
            # Out of datetime range
            logger.debug(f"Ignoring relative time beyond datetime range: {match.group(0)}")
            continue
        plural = "" if value == 1 else "s"

        return TemporalFilter(
            start_time=start_time,
            end_time=end_time,
            description=f"Around {value} {unit_name}{plural} ago",
            query=_strip(pattern, query),
        )
    return None


def _parse_simple_relative(query: str, now: datetime) -> TemporalFilter | None:
    today = _start_of_day(now)

    if YESTERDAY.search(query):
        return TemporalFilter(
            start_time=today - timedelta(days=1),
            end_time=today,
            description="Yesterday",
            query=_strip(YESTERDAY, query),
        )

    if TODAY.search(query):
        return TemporalFilter(
            start_time=today,
            end_time=today + timedelta(days=1),
            description="Today",
            query=_strip(TODAY, query),
        )

    return None


def _parse_weekday(query: str, now: datetime) -> TemporalFilter | None:
    for index, day in enumerate(DAYS):
        name = day.capitalize()
        candidates = [
            (re.compile(rf"\blast\s+{day}\b", re.I), last_day_of_week, f"Last {name}"),
            (re.compile(rf"\bthis\s+{day}\b", re.I), this_day_of_week, f"This {name}"),
            (re.compile(rf"\bon\s+{day}\b", re.I), last_day_of_week, f"Last {name}"),
        ]
        for pattern, resolve, description in candidates:
            if pattern.search(query):
                start = resolve(index, now)
                return TemporalFilter(
                    start_time=start,
                    end_time=start + timedelta(days=1),
                    description=description,
                    query=_strip(pattern, query),
                )
    return None


def _parse_period(query: str, now: datetime) -> TemporalFilter | None:
    if LAST_WEEK.search(query):
        end = _start_of_week(now)
        return TemporalFilter(end - timedelta(days=7), end, "Last week", _strip(LAST_WEEK, query))

    if THIS_WEEK.search(query):
        start = _start_of_week(now)
        return TemporalFilter(start, start + timedelta(days=7), "This week", _strip(THIS_WEEK, query))

    if LAST_MONTH.search(query):
        return TemporalFilter(
            _add_months(now.year, now.month, -1),
            _add_months(now.year, now.month, 0),
            "Last month",
            _strip(LAST_MONTH, query),
        )

    if THIS_MONTH.search(query):
        return TemporalFilter(
            _add_months(now.year, now.month, 0),
            _add_months(now.year, now.month, 1),
            "This month",
            _strip(THIS_MONTH, query),
        )

    if LAST_YEAR.search(query):
        return TemporalFilter(
            datetime(now.year - 1, 1, 1),
            datetime(now.year, 1, 1),
            "Last year",
            _strip(LAST_YEAR, query),
        )

    if THIS_YEAR.search(query):
        return TemporalFilter(
            datetime(now.year, 1, 1),
            datetime(now.year + 1, 1, 1),
            "This year",
            _strip(THIS_YEAR, query),
        )

    return None


def _parse_month_mention(query: str, now: datetime) -> TemporalFilter | None:
    for index, month in enumerate(MONTHS):
        pattern = re.compile(rf"\bin\s+{month}\b", re.I)
        if not pattern.search(query):
            continue

        # A month that hasn't happened yet this year means last year's
        year = now.year - 1 if index + 1 > now.month else now.year
        return TemporalFilter(
            start_time=datetime(year, index + 1, 1),
            end_time=_add_months(year, index + 1, 1),
            description=f"{month.capitalize()} {year}",
            query=_strip(pattern, query),
        )
    return None


_PARSERS = (
    _parse_relative_time,
    _parse_simple_relative,
    _parse_weekday,
    _parse_period,
    _parse_month_mention,
)


def parse_temporal_query(query: str, now: datetime | None = None) -> TemporalFilter | None:
    """
    Extract a time window from a query.

    Args:
        query: Free-text search query
        now: Reference time (defaults to the current local time)

    Returns:
        TemporalFilter with the remaining lowercased query, or None when no
        time phrase is present
    """
    now = now or datetime.now()
    lowered = query.lower().strip()

    for parser in _PARSERS:
        result = parser(lowered, now)
        if result is not None:
            return result
    return None


def is_temporal_only(remainder: str) -> bool:
    """True when nothing topical is left once the time phrase is removed."""
    remainder = remainder.strip()
    if not re.sub(r"[?.]", " ", remainder).strip():
        return True
    return any(p.match(remainder) for p in TEMPORAL_ONLY_PATTERNS)
