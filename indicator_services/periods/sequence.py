from __future__ import annotations
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from indicator_services.errors import InvalidPeriod
from indicator_services.periods.calendar import format_period, interval_of, parse_period, weeks_in_year
from indicator_services.periods.frequency import Frequency

logger = logging.getLogger(__name__)

# Weekly stepping works on (year, week) and wraps here, even for 53-week ISO years.
WEEKS_PER_YEAR = 52

WeekRef = Tuple[int, int]


def _month_start(year: int, month: int) -> datetime:
    # relativedelta normalizes out-of-range months (13 -> January next year)
    return datetime(year, 1, 1) + relativedelta(months=month - 1)


def _lenient_week(year: int, week: int) -> WeekRef:
    # out-of-range weeks roll over with the same 52-week wrap used for stepping
    if 1 <= week <= weeks_in_year(year):
        return year, week
    return step_week(year, 1, week - 1)


def _lenient_datetime(year: int, month: int, day: int = 1, hour: int = 0, minute: int = 0) -> datetime:
    return _month_start(year, month) + timedelta(days=day - 1, hours=hour, minutes=minute)


# Permissive matchers for legacy labels that fail strict parsing. One entry per
# frequency; out-of-range components roll over instead of being rejected.
_FALLBACK_MATCHERS: Dict[Frequency, Tuple[Pattern[str], Callable[..., object]]] = {
    Frequency.MINUTE: (
        re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})[ T](\d{1,2}):(\d{1,2})(?::\d{1,2})?"),
        _lenient_datetime,
    ),
    Frequency.HOURLY: (
        re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})[ T](\d{1,2})(?::\d{1,2}){0,2}"),
        _lenient_datetime,
    ),
    Frequency.DAILY: (
        re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})"),
        _lenient_datetime,
    ),
    Frequency.WEEKLY: (
        re.compile(r"(\d{4})\s*-?\s*W\s*(\d{1,2})", re.IGNORECASE),
        _lenient_week,
    ),
    Frequency.BIWEEKLY: (
        re.compile(r"(\d{4})\s*-?\s*W\s*(\d{1,2})", re.IGNORECASE),
        _lenient_week,
    ),
    Frequency.MONTHLY: (
        re.compile(r"(\d{4})[-/.]?(\d{1,2})"),
        _month_start,
    ),
    Frequency.BIMONTHLY: (
        re.compile(r"(\d{4})[-/.]?(\d{1,2})"),
        _month_start,
    ),
    Frequency.QUARTERLY: (
        re.compile(r"(\d{4})\s*-?\s*Q\s*(\d)", re.IGNORECASE),
        lambda year, q: _month_start(year, (q - 1) * 3 + 1),
    ),
    Frequency.TRIANNUAL: (
        re.compile(r"(\d{4})\s*-?\s*T\s*(\d)", re.IGNORECASE),
        lambda year, t: _month_start(year, (t - 1) * 4 + 1),
    ),
    Frequency.SEMIANNUAL: (
        re.compile(r"(\d{4})\s*-?\s*[HS]\s*(\d)", re.IGNORECASE),
        lambda year, h: _month_start(year, (h - 1) * 6 + 1),
    ),
    Frequency.ANNUAL: (
        re.compile(r"(?:FY|CY)?\s*(\d{4})(?:[-/.].*)?", re.IGNORECASE),
        lambda year: datetime(year, 1, 1),
    ),
}


def fallback_parse(period: str, frequency: "str | Frequency") -> Optional[object]:
    """Best-effort parse of a label that strict parsing rejected.

    Returns a datetime, a (year, week) pair for weekly frequencies, or None.
    """
    freq = Frequency.parse(frequency)
    matcher = _FALLBACK_MATCHERS.get(freq)
    if matcher is None or not period:
        return None
    pattern, build = matcher
    m = pattern.fullmatch(period.strip())
    if not m:
        return None
    try:
        return build(*(int(g) for g in m.groups()))
    except (ValueError, OverflowError):
        return None


def _resolve_instant(period: str, freq: Frequency) -> Optional[datetime]:
    try:
        return parse_period(period, freq)
    except InvalidPeriod as e:
        logger.warning("Strict parse of %r failed (%s); trying fallback parser", period, e.detail)
    parsed = fallback_parse(period, freq)
    if parsed is None:
        logger.warning("Could not parse reference period %r as %s", period, freq.value)
    return parsed


def _resolve_week(period: str, freq: Frequency) -> Optional[WeekRef]:
    try:
        iso = parse_period(period, freq).isocalendar()
        return iso[0], iso[1]
    except InvalidPeriod as e:
        logger.warning("Strict parse of %r failed (%s); trying fallback parser", period, e.detail)
    parsed = fallback_parse(period, freq)
    if parsed is None:
        logger.warning("Could not parse reference period %r as %s", period, freq.value)
    return parsed


def step_week(year: int, week: int, delta: int) -> WeekRef:
    """Move `delta` weeks from (year, week), wrapping the counter at WEEKS_PER_YEAR."""
    if delta == 0:
        return year, week
    week += delta
    while week > WEEKS_PER_YEAR:
        week -= WEEKS_PER_YEAR
        year += 1
    while week < 1:
        week += WEEKS_PER_YEAR
        year -= 1
    return year, week


def _week_labels(ref: WeekRef, freq: Frequency, offsets: Iterable[int]) -> List[str]:
    stride = 2 if freq is Frequency.BIWEEKLY else 1
    out: List[str] = []
    for k in offsets:
        year, week = step_week(ref[0], ref[1], k * stride)
        if not 1 <= year <= 9999:
            logger.warning("Weekly sequence left the supported year range at %s", year)
            return []
        out.append(f"{year:04d}-W{week:02d}")
    return out


def build_schedule(
    instant: datetime, frequency: "str | Frequency", count: int, backward: bool = False
) -> List[Tuple[datetime, str]]:
    """`count` consecutive (instant, label) pairs starting at `instant`, or ending at it when `backward`.

    Always ascending. Stepping is multiplied from `instant` rather than accumulated,
    so month-based frequencies never drift on short months.
    """
    if count <= 0:
        return []
    freq = Frequency.parse(frequency)
    step = interval_of(freq)
    offsets = range(-(count - 1), 1) if backward else range(count)
    schedule: List[Tuple[datetime, str]] = []
    for k in offsets:
        d = instant + step * k
        schedule.append((d, format_period(d, freq)))
    return schedule


def generate_sequence(
    existing: Optional[Sequence[str]],
    count: int,
    forward: bool = True,
    start: Optional[str] = None,
    frequency: "str | Frequency" = Frequency.MONTHLY,
) -> List[str]:
    """Generate `count` period labels, ascending.

    - existing labels present: extend beyond the last (forward) or before the first
      (backward) non-blank label; the reference label itself is not repeated
    - no existing labels and a `start`: a run beginning at (forward) or ending at
      (backward) `start`, which is included
    - custom frequency: `count` blank labels for the caller to fill in
    - unparseable reference: empty list (logged), never an exception
    """
    freq = Frequency.parse(frequency)
    if count <= 0:
        return []
    if freq is Frequency.CUSTOM:
        return [""] * count

    labels = sorted(p.strip() for p in (existing or []) if p and p.strip())
    if labels:
        reference = labels[-1] if forward else labels[0]
        seeded = False
    elif start and start.strip():
        reference = start.strip()
        seeded = True
    else:
        logger.debug("No existing periods and no start period; nothing to generate")
        return []

    try:
        if freq.is_weekly:
            ref = _resolve_week(reference, freq)
            if ref is None:
                return []
            if seeded:
                offsets = range(count) if forward else range(-(count - 1), 1)
            else:
                offsets = range(1, count + 1) if forward else range(-count, 0)
            out = _week_labels(ref, freq, offsets)
        else:
            instant = _resolve_instant(reference, freq)
            if instant is None:
                return []
            if seeded:
                schedule = build_schedule(instant, freq, count, backward=not forward)
            else:
                schedule = build_schedule(instant, freq, count + 1, backward=not forward)
                # drop the reference period itself
                schedule = schedule[1:] if forward else schedule[:-1]
            out = [label for _, label in schedule]
    except (ValueError, OverflowError) as e:
        logger.warning("Sequence from %r left the supported date range: %s", reference, e)
        return []

    logger.debug("Generated %d %s periods from %r (forward=%s)", len(out), freq.value, reference, forward)
    return out


def next_period(period: str, frequency: "str | Frequency") -> Optional[str]:
    out = generate_sequence([period], 1, True, None, frequency)
    return out[0] if out and out[0] else None


def previous_period(period: str, frequency: "str | Frequency") -> Optional[str]:
    out = generate_sequence([period], 1, False, None, frequency)
    return out[0] if out and out[0] else None


def is_consistent_sequence(periods: Sequence[str], frequency: "str | Frequency") -> bool:
    """True when every label is the generated successor of the one before it.

    Custom frequencies carry no calendar and are always consistent.
    """
    freq = Frequency.parse(frequency)
    if freq is Frequency.CUSTOM:
        return True
    for prev, curr in zip(periods, periods[1:]):
        if next_period(prev, freq) != curr:
            return False
    return True


def is_in_schedule(
    instant: datetime, anchor: datetime, frequency: "str | Frequency", max_cycles: int = 1000
) -> bool:
    """Whether `instant` falls (within a second) on the schedule starting at `anchor`."""
    step = interval_of(frequency)
    for k in range(max_cycles):
        current = anchor + step * k
        if abs((instant - current).total_seconds()) < 1:
            return True
        if instant < current:
            return False
    return False
