from __future__ import annotations
import calendar
import re
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional, Pattern

from dateutil.relativedelta import relativedelta

from indicator_services.errors import InvalidPeriodFormat, InvalidPeriodValue, UnsupportedFrequency
from indicator_services.periods.frequency import Frequency

_STEPS: Dict[Frequency, relativedelta] = {
    Frequency.MINUTE: relativedelta(minutes=1),
    Frequency.HOURLY: relativedelta(hours=1),
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.BIWEEKLY: relativedelta(weeks=2),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.BIMONTHLY: relativedelta(months=2),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.TRIANNUAL: relativedelta(months=4),
    Frequency.SEMIANNUAL: relativedelta(months=6),
    Frequency.ANNUAL: relativedelta(years=1),
}

# Strict label grammars; [0-9] rather than \d so non-ASCII digits are rejected
_GRAMMARS: Dict[Frequency, Pattern[str]] = {
    Frequency.MINUTE: re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2}) ([0-9]{2}):([0-9]{2})"),
    Frequency.HOURLY: re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2}) ([0-9]{2}):00"),
    Frequency.DAILY: re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})"),
    Frequency.WEEKLY: re.compile(r"([0-9]{4})-W([0-9]{2})"),
    Frequency.BIWEEKLY: re.compile(r"([0-9]{4})-W([0-9]{2})"),
    Frequency.MONTHLY: re.compile(r"([0-9]{4})-([0-9]{2})"),
    Frequency.BIMONTHLY: re.compile(r"([0-9]{4})-([0-9]{2})"),
    Frequency.QUARTERLY: re.compile(r"([0-9]{4})-Q([0-9])"),
    Frequency.TRIANNUAL: re.compile(r"([0-9]{4})-T([0-9])"),
    Frequency.SEMIANNUAL: re.compile(r"([0-9]{4})-H([0-9])"),
    Frequency.ANNUAL: re.compile(r"([0-9]{4})"),
}

_SHAPES: Dict[Frequency, str] = {
    Frequency.MINUTE: "YYYY-MM-DD HH:MM",
    Frequency.HOURLY: "YYYY-MM-DD HH:00",
    Frequency.DAILY: "YYYY-MM-DD",
    Frequency.WEEKLY: "YYYY-Www",
    Frequency.BIWEEKLY: "YYYY-Www",
    Frequency.MONTHLY: "YYYY-MM",
    Frequency.BIMONTHLY: "YYYY-MM",
    Frequency.QUARTERLY: "YYYY-QN",
    Frequency.TRIANNUAL: "YYYY-TN",
    Frequency.SEMIANNUAL: "YYYY-HN",
    Frequency.ANNUAL: "YYYY",
}


def _calendar_frequency(frequency: "str | Frequency") -> Frequency:
    freq = Frequency.parse(frequency)
    if freq is Frequency.CUSTOM:
        raise UnsupportedFrequency("custom frequency has no calendar semantics")
    return freq


def interval_of(frequency: "str | Frequency") -> relativedelta:
    """Calendar step between two consecutive periods of `frequency`."""
    return _STEPS[_calendar_frequency(frequency)]


def weeks_in_year(year: int) -> int:
    # 28 December always falls in the last ISO week of its year
    return date(year, 12, 28).isocalendar()[1]


def week_start(year: int, week: int) -> datetime:
    """Monday of ISO week `week`; week 1 is the week containing 4 January."""
    jan4 = datetime(year, 1, 4)
    first_monday = jan4 - timedelta(days=jan4.weekday())
    return first_monday + timedelta(weeks=week - 1)


def format_period(instant: "date | datetime", frequency: "str | Frequency") -> str:
    freq = _calendar_frequency(frequency)
    y, m = instant.year, instant.month
    if freq is Frequency.MINUTE:
        return f"{y:04d}-{m:02d}-{instant.day:02d} {getattr(instant, 'hour', 0):02d}:{getattr(instant, 'minute', 0):02d}"
    if freq is Frequency.HOURLY:
        return f"{y:04d}-{m:02d}-{instant.day:02d} {getattr(instant, 'hour', 0):02d}:00"
    if freq is Frequency.DAILY:
        return f"{y:04d}-{m:02d}-{instant.day:02d}"
    if freq.is_weekly:
        # ISO week-year, so late-December days in week 1 render as next year's W01
        iso_year, iso_week = instant.isocalendar()[:2]
        return f"{iso_year:04d}-W{iso_week:02d}"
    if freq in (Frequency.MONTHLY, Frequency.BIMONTHLY):
        return f"{y:04d}-{m:02d}"
    if freq is Frequency.QUARTERLY:
        return f"{y:04d}-Q{(m - 1) // 3 + 1}"
    if freq is Frequency.TRIANNUAL:
        return f"{y:04d}-T{(m - 1) // 4 + 1}"
    if freq is Frequency.SEMIANNUAL:
        return f"{y:04d}-H{1 if m <= 6 else 2}"
    return f"{y:04d}"


def _require(ok: bool, period: str, freq: Frequency, detail: str) -> None:
    if not ok:
        raise InvalidPeriodValue(period, freq.value, detail)


def _checked_datetime(period: str, freq: Frequency, year: int, month: int, day: int = 1,
                      hour: int = 0, minute: int = 0) -> datetime:
    _require(year >= 1, period, freq, f"invalid year: {year}")
    _require(1 <= month <= 12, period, freq, f"invalid month: {month}, month must be between 1 and 12")
    days = calendar.monthrange(year, month)[1]
    _require(1 <= day <= days, period, freq, f"invalid day: {day}, day must be between 1 and {days} for month {month}")
    _require(0 <= hour <= 23, period, freq, f"invalid hour: {hour}")
    _require(0 <= minute <= 59, period, freq, f"invalid minute: {minute}")
    return datetime(year, month, day, hour, minute)


def _parse_week(period: str, freq: Frequency, year: int, week: int) -> datetime:
    _require(year >= 1, period, freq, f"invalid year: {year}")
    last = weeks_in_year(year)
    _require(1 <= week <= last, period, freq, f"invalid week number: {week}, {year} has {last} weeks")
    return week_start(year, week)


def _parse_bucket(size: int, name: str) -> Callable[..., datetime]:
    """Builder for year-split labels (quarters, thirds, halves) of `size` months each."""
    buckets = 12 // size

    def build(period: str, freq: Frequency, year: int, n: int) -> datetime:
        _require(1 <= n <= buckets, period, freq, f"invalid {name}: {n}, {name} must be between 1 and {buckets}")
        return _checked_datetime(period, freq, year, (n - 1) * size + 1)

    return build


_BUILDERS: Dict[Frequency, Callable[..., datetime]] = {
    Frequency.MINUTE: _checked_datetime,
    Frequency.HOURLY: _checked_datetime,
    Frequency.DAILY: _checked_datetime,
    Frequency.WEEKLY: _parse_week,
    Frequency.BIWEEKLY: _parse_week,
    Frequency.MONTHLY: _checked_datetime,
    Frequency.BIMONTHLY: _checked_datetime,
    Frequency.QUARTERLY: _parse_bucket(3, "quarter"),
    Frequency.TRIANNUAL: _parse_bucket(4, "third"),
    Frequency.SEMIANNUAL: _parse_bucket(6, "half"),
    Frequency.ANNUAL: lambda period, freq, year: _checked_datetime(period, freq, year, 1),
}


def parse_period(period: str, frequency: "str | Frequency") -> datetime:
    """Strict inverse of `format_period`.

    Raises InvalidPeriodFormat when `period` does not have the frequency's shape
    and InvalidPeriodValue when the shape matches but a component is out of range.
    """
    freq = _calendar_frequency(frequency)
    if not isinstance(period, str):
        raise InvalidPeriodFormat(str(period), freq.value, f"expected {_SHAPES[freq]}")
    m = _GRAMMARS[freq].fullmatch(period)
    if not m:
        raise InvalidPeriodFormat(period, freq.value, f"expected {_SHAPES[freq]}")
    return _BUILDERS[freq](period, freq, *(int(g) for g in m.groups()))


def generate_start(frequency: "str | Frequency", today: Optional[datetime] = None) -> str:
    """Today's period under `frequency`, the default seed for an empty grid.

    Custom frequencies have no grammar of their own and get a monthly label.
    """
    freq = Frequency.parse(frequency)
    if freq is Frequency.CUSTOM:
        freq = Frequency.MONTHLY
    return format_period(today or datetime.now(), freq)


class PeriodFormat(str, Enum):
    MINUTE = "minute"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    TRIANNUAL = "triannual"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"
    UNKNOWN = "unknown"


# Order matters: hourly labels also have the minute shape
_DETECTION = (
    (PeriodFormat.HOURLY, _GRAMMARS[Frequency.HOURLY]),
    (PeriodFormat.MINUTE, _GRAMMARS[Frequency.MINUTE]),
    (PeriodFormat.DAILY, _GRAMMARS[Frequency.DAILY]),
    (PeriodFormat.WEEKLY, re.compile(r"[0-9]{4}-W[0-9]{1,2}")),
    (PeriodFormat.MONTHLY, _GRAMMARS[Frequency.MONTHLY]),
    (PeriodFormat.QUARTERLY, re.compile(r"[0-9]{4}-Q[1-4]")),
    (PeriodFormat.TRIANNUAL, re.compile(r"[0-9]{4}-T[1-3]")),
    (PeriodFormat.SEMIANNUAL, re.compile(r"[0-9]{4}-H[1-2]")),
    (PeriodFormat.ANNUAL, _GRAMMARS[Frequency.ANNUAL]),
)


def detect_period_format(period: str) -> PeriodFormat:
    """Guess a label's grammar. Only a hint: monthly and bimonthly labels look alike."""
    for fmt, pattern in _DETECTION:
        if pattern.fullmatch(period or ""):
            return fmt
    return PeriodFormat.UNKNOWN


def matches_frequency(period: str, frequency: "str | Frequency") -> bool:
    """Whether `period` has the shape of the frequency's grammar (values are not range-checked)."""
    freq = Frequency.parse(frequency)
    if freq is Frequency.CUSTOM:
        return True
    return bool(_GRAMMARS[freq].fullmatch(period or ""))
