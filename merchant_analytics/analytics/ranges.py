"""
Date Range Resolution

Turns a named timeframe (or custom bounds) into a concrete inclusive
[start, end] interval, honouring the merchant's fiscal year, and derives
the previous-period and previous-year windows used for comparisons.

Every start is normalized to 00:00:00.000 and every end to 23:59:59.999.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

import structlog
from pydantic import ValidationError

from .exceptions import InvalidFilterError
from .schemas import DateRange, FilterState

logger = structlog.get_logger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)
ONE_MS = timedelta(milliseconds=1)

_MMDD = re.compile(r"^(\d{2})-(\d{2})$")
_CUSTOM_TOKEN = re.compile(r"^custom_(\d{4}-\d{2}-\d{2})_(\d{4}-\d{2}-\d{2})$")
_YEAR = re.compile(r"^\d{4}$")

TIMEFRAME_LABELS = {
    "today": "Today",
    "yesterday": "Yesterday",
    "last7days": "Last 7 days",
    "last30days": "Last 30 days",
    "last90days": "Last 90 days",
    "last6months": "Last 6 months",
    "lastYear": "Last year",
    "thisMonth": "This month",
    "lastMonth": "Last month",
    "thisYear": "This year",
    "financial_current": "Current financial year",
    "financial_previous": "Previous financial year",
    "custom": "Custom range",
}


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, END_OF_DAY)


def _day_range(start: date, end: date) -> DateRange:
    return DateRange(start_date=start_of_day(start), end_date=end_of_day(end))


def _clamp_day(year: int, month: int, day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def shift_months(d: date, months: int) -> date:
    """Move ``d`` by whole calendar months, clamping the day to the target month."""
    index = d.year * 12 + (d.month - 1) + months
    return _clamp_day(index // 12, index % 12 + 1, d.day)


def parse_mmdd(value: str) -> Tuple[int, int]:
    """Parse a fiscal boundary such as ``"04-01"`` into (month, day)."""
    match = _MMDD.match(value or "")
    if not match:
        raise InvalidFilterError(f"Invalid MM-DD value: {value!r}")
    month, day = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or not 1 <= day <= calendar.monthrange(2000, month)[1]:
        raise InvalidFilterError(f"Invalid MM-DD value: {value!r}")
    return month, day


def fiscal_year_dates(year: int, fiscal_year_start: str, fiscal_year_end: str) -> DateRange:
    """
    Concrete fiscal year beginning in ``year``.

    When the start month/day falls after the end month/day the year wraps and
    the end lands in ``year + 1``.
    """
    start_month, start_day = parse_mmdd(fiscal_year_start)
    end_month, end_day = parse_mmdd(fiscal_year_end)

    end_year = year + 1 if (start_month, start_day) > (end_month, end_day) else year
    return _day_range(
        _clamp_day(year, start_month, start_day),
        _clamp_day(end_year, end_month, end_day),
    )


def current_fiscal_year(fiscal_year_start: str, fiscal_year_end: str, today: date) -> DateRange:
    """The fiscal year containing ``today``."""
    candidate = fiscal_year_dates(today.year, fiscal_year_start, fiscal_year_end)
    if candidate.start_date.date() > today:
        candidate = fiscal_year_dates(today.year - 1, fiscal_year_start, fiscal_year_end)
    return candidate


def _parse_day(value: str) -> date:
    try:
        return datetime.fromisoformat(value.strip()).date()
    except (AttributeError, ValueError) as e:
        raise InvalidFilterError(f"Invalid date: {value!r}") from e


def _custom_range(start_value: str, end_value: str) -> DateRange:
    start, end = _parse_day(start_value), _parse_day(end_value)
    if start > end:
        start, end = end, start
    return _day_range(start, end)


def resolve_range(
    timeframe: Optional[str],
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
    fiscal_year_start: str = "01-01",
    fiscal_year_end: str = "12-31",
    now: Optional[datetime] = None,
) -> DateRange:
    """
    Resolve a timeframe name into a concrete date range.

    Args:
        timeframe: Named timeframe, a four-digit year, ``custom`` or a
            ``custom_<YYYY-MM-DD>_<YYYY-MM-DD>`` token
        custom_start: Start date for ``custom``
        custom_end: End date for ``custom``
        fiscal_year_start: Fiscal year start as MM-DD
        fiscal_year_end: Fiscal year end as MM-DD
        now: Reference instant; defaults to the current local time

    Returns:
        DateRange with normalized bounds. Unknown timeframes and malformed
        custom input resolve to the current fiscal year.
    """
    today = (now or datetime.now()).date()
    name = (timeframe or "").strip()

    def fallback() -> DateRange:
        return current_fiscal_year(fiscal_year_start, fiscal_year_end, today)

    if name.startswith("custom"):
        try:
            token = _CUSTOM_TOKEN.match(name)
            if token:
                return _custom_range(token.group(1), token.group(2))
            if name == "custom" and custom_start and custom_end:
                return _custom_range(custom_start, custom_end)
            raise InvalidFilterError(f"Incomplete custom range: {name!r}")
        except InvalidFilterError as e:
            logger.warning("Invalid custom range, using current financial year", timeframe=name, error=str(e))
            return fallback()

    if name == "today":
        return _day_range(today, today)
    if name == "yesterday":
        yesterday = today - timedelta(days=1)
        return _day_range(yesterday, yesterday)
    if name == "last7days":
        return _day_range(today - timedelta(days=7), today)
    if name == "last30days":
        return _day_range(today - timedelta(days=30), today)
    if name == "last90days":
        return _day_range(today - timedelta(days=90), today)
    if name == "last6months":
        return _day_range(shift_months(today, -6), today)
    if name == "lastYear":
        return _day_range(today - timedelta(days=365), today)
    if name == "thisMonth":
        return _day_range(today.replace(day=1), today)
    if name == "lastMonth":
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return _day_range(last_month_end.replace(day=1), last_month_end)
    if name == "thisYear":
        return _day_range(date(today.year, 1, 1), today)
    if _YEAR.match(name):
        year = int(name)
        return _day_range(date(year, 1, 1), date(year, 12, 31))
    if name == "financial_current":
        return fallback()
    if name == "financial_previous":
        current = fallback()
        return fiscal_year_dates(current.start_date.year - 1, fiscal_year_start, fiscal_year_end)

    if name:
        logger.info("Unknown timeframe, using current financial year", timeframe=name)
    return fallback()


def previous_period(date_range: DateRange) -> DateRange:
    """Same-length window ending 1 ms before ``date_range`` starts."""
    prev_end = date_range.start_date - ONE_MS
    return DateRange(start_date=prev_end - date_range.duration, end_date=prev_end)


def _shift_year(value: datetime, years: int) -> datetime:
    return datetime.combine(
        _clamp_day(value.year + years, value.month, value.day),
        value.time(),
    )


def previous_year(date_range: DateRange) -> DateRange:
    """
    Shift both bounds back one calendar year.

    Feb 29 maps to Feb 28, so the result can be a day shorter than the input.
    """
    return DateRange(
        start_date=_shift_year(date_range.start_date, -1),
        end_date=_shift_year(date_range.end_date, -1),
    )


def build_filter_state(
    date_range: DateRange,
    segment: Optional[str] = None,
    channel: Optional[str] = None,
    product: Optional[str] = None,
) -> FilterState:
    """Combine a resolved range with optional dimension filters."""
    try:
        return FilterState(
            start_date=date_range.start_date,
            end_date=date_range.end_date,
            segment=segment,
            channel=channel,
            product=product,
        )
    except ValidationError as e:
        raise InvalidFilterError(str(e)) from e


def timeframe_label(timeframe: str) -> str:
    """Human readable name for a timeframe."""
    if timeframe in TIMEFRAME_LABELS:
        return TIMEFRAME_LABELS[timeframe]
    if _YEAR.match(timeframe or ""):
        return timeframe
    token = _CUSTOM_TOKEN.match(timeframe or "")
    if token:
        return f"{token.group(1)} to {token.group(2)}"
    return TIMEFRAME_LABELS["financial_current"]
