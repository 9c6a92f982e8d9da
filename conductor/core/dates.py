"""Date resolution collaborator.

Relative expressions ("tomorrow", "next friday") are resolved to absolute
dates in the user's timezone before they reach any capability, so steps
never re-interpret relative time on their own.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from conductor.utils.logging import get_logger

log = get_logger(__name__)

Granularity = Literal["day", "week", "month", "custom"]

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_PERIODS: dict[str, tuple[Granularity, int]] = {
    "today": ("day", 0),
    "tomorrow": ("day", 1),
    "yesterday": ("day", -1),
    "this week": ("week", 0),
    "next week": ("week", 1),
    "last week": ("week", -1),
    "this month": ("month", 0),
    "next month": ("month", 1),
    "last month": ("month", -1),
}

_WEEKDAY_RE = re.compile(r"^(?:(next|this|last)\s+)?(" + "|".join(_WEEKDAYS) + r")$")
_IN_N_RE = re.compile(r"^in\s+(\d{1,3})\s+(day|week)s?$")
_RANGE_RE = re.compile(r"^(?:from\s+(.+?)\s+to|between\s+(.+?)\s+and)\s+(.+)$")

# Expressions rewritten inside task text. Qualified weekdays come before bare
# ones so "next friday" is replaced as a whole.
_TASK_DATE_RE = re.compile(
    r"\b(?:(?:next|this|last)\s+(?:" + "|".join(_WEEKDAYS) + r")"
    r"|(?:this|next|last)\s+(?:week|month)"
    r"|in\s+\d{1,3}\s+(?:day|week)s?"
    r"|today|tomorrow|yesterday"
    r"|" + "|".join(_WEEKDAYS) + r")\b",
    re.IGNORECASE,
)


@dataclass
class ResolvedDate:
    timestamp: int  # UTC unix seconds
    iso: str  # ISO 8601 with the user's offset

    @property
    def day(self) -> str:
        return self.iso.split("T", 1)[0]


@dataclass
class ResolvedDateRange:
    start: ResolvedDate
    end: ResolvedDate
    granularity: Granularity


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        log.warning("invalid_timezone", timezone=name)
        raise ValueError(f"Invalid timezone: {name!r}") from e


def _to_resolved(moment: datetime) -> ResolvedDate:
    return ResolvedDate(timestamp=int(moment.timestamp()), iso=moment.isoformat(timespec="seconds"))


class DateResolver(ABC):
    @abstractmethod
    def resolve(
        self,
        text: str,
        timezone: str,
        reference_date: datetime | None = None,
        forward_date: bool = True,
    ) -> ResolvedDate | None:
        """Resolve a single point in time, or None when not understood."""

    @abstractmethod
    def resolve_range(
        self,
        text: str,
        timezone: str,
        reference_date: datetime | None = None,
        forward_date: bool = True,
    ) -> ResolvedDateRange | None:
        """Resolve a span (a day, week, month or explicit from/to)."""


class KeywordDateResolver(DateResolver):
    """Resolver for the keyword expressions users actually send over SMS.

    Understands today/tomorrow/yesterday, this/next/last week and month,
    weekday names (optionally with this/next/last), "in N days|weeks" and ISO
    dates. Anything else resolves to None.
    """

    def resolve(
        self,
        text: str,
        timezone: str,
        reference_date: datetime | None = None,
        forward_date: bool = True,
    ) -> ResolvedDate | None:
        phrase = " ".join(text.strip().lower().split())
        if not phrase:
            return None
        tz = _zone(timezone)
        today = self._local_now(tz, reference_date).date()

        # Spans belong to resolve_range
        if phrase in _PERIODS or _RANGE_RE.match(phrase):
            return None

        day = self._weekday(phrase, today, forward_date) or self._relative(phrase, today)
        if day is not None:
            return _to_resolved(datetime.combine(day, time.min, tzinfo=tz))

        return self._iso(phrase, tz)

    def resolve_range(
        self,
        text: str,
        timezone: str,
        reference_date: datetime | None = None,
        forward_date: bool = True,
    ) -> ResolvedDateRange | None:
        phrase = " ".join(text.strip().lower().split())
        if not phrase:
            return None
        tz = _zone(timezone)
        today = self._local_now(tz, reference_date).date()

        period = _PERIODS.get(phrase)
        if period is not None:
            granularity, offset = period
            start, end = self._period_bounds(today, granularity, offset)
            return self._range(start, end, tz, granularity)

        explicit = _RANGE_RE.match(phrase)
        if explicit:
            first = explicit.group(1) or explicit.group(2)
            start = self.resolve(first, timezone, reference_date, forward_date)
            end = self.resolve(explicit.group(3), timezone, reference_date, forward_date)
            if start is None or end is None:
                return None
            return ResolvedDateRange(start=start, end=end, granularity="custom")

        single = self.resolve(phrase, timezone, reference_date, forward_date)
        if single is None:
            return None
        day = datetime.fromisoformat(single.iso).date()
        return self._range(day, day, tz, "day")

    @staticmethod
    def _local_now(tz: ZoneInfo, reference_date: datetime | None) -> datetime:
        ref = reference_date or datetime.now(timezone.utc)
        if ref.tzinfo is None:
            ref = ref.replace(tzinfo=timezone.utc)
        return ref.astimezone(tz)

    @staticmethod
    def _weekday(phrase: str, today: date, forward_date: bool) -> date | None:
        match = _WEEKDAY_RE.match(phrase)
        if not match:
            return None
        modifier, name = match.groups()
        ahead = _WEEKDAYS.index(name) - today.weekday()
        if modifier == "next":
            if ahead <= 0:
                ahead += 7
        elif modifier == "last":
            if ahead >= 0:
                ahead -= 7
        elif modifier == "this" or forward_date:
            ahead %= 7
        elif ahead > 0:
            ahead -= 7
        return today + timedelta(days=ahead)

    @staticmethod
    def _relative(phrase: str, today: date) -> date | None:
        match = _IN_N_RE.match(phrase)
        if not match:
            return None
        count = int(match.group(1))
        unit = 7 if match.group(2) == "week" else 1
        return today + timedelta(days=count * unit)

    @staticmethod
    def _iso(phrase: str, tz: ZoneInfo) -> ResolvedDate | None:
        try:
            parsed = datetime.fromisoformat(phrase.upper() if "t" in phrase else phrase)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        return _to_resolved(parsed.astimezone(tz))

    @staticmethod
    def _period_bounds(today: date, granularity: Granularity, offset: int) -> tuple[date, date]:
        if granularity == "day":
            day = today + timedelta(days=offset)
            return day, day
        if granularity == "week":
            monday = today - timedelta(days=today.weekday()) + timedelta(weeks=offset)
            return monday, monday + timedelta(days=6)
        month_index = today.year * 12 + (today.month - 1) + offset
        first = date(month_index // 12, month_index % 12 + 1, 1)
        following = date((month_index + 1) // 12, (month_index + 1) % 12 + 1, 1)
        return first, following - timedelta(days=1)

    @staticmethod
    def _range(start: date, end: date, tz: ZoneInfo, granularity: Granularity) -> ResolvedDateRange:
        return ResolvedDateRange(
            start=_to_resolved(datetime.combine(start, time.min, tzinfo=tz)),
            end=_to_resolved(datetime.combine(end, time(23, 59, 59), tzinfo=tz)),
            granularity=granularity,
        )


def resolve_task_dates(
    task: str,
    timezone: str,
    resolver: DateResolver,
    reference_date: datetime | None = None,
) -> str:
    """Rewrite relative date expressions in ``task`` as ``YYYY-MM-DD (expression)``.

    Expressions the resolver cannot handle, and an invalid timezone, leave the
    text untouched.
    """

    def _replace(match: re.Match[str]) -> str:
        expression = match.group(0)
        try:
            span = resolver.resolve_range(expression, timezone, reference_date, forward_date=True)
        except ValueError:
            return expression
        if span is None:
            return expression
        return f"{span.start.day} ({expression})"

    return _TASK_DATE_RE.sub(_replace, task)
