"""
Shared analytics helpers: date filters, filter merging and rounding.
"""

from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Tuple, Union

from ...errors import BadParametersError

DateLike = Union[str, date, datetime]


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round halves away from zero (2.5 -> 3), unlike the built-in round().

    Example:
        >>> round_half_up(12.25, 1)
        12.3
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded) if digits else float(int(rounded))


def percentage(part: float, whole: float, digits: int = 0, empty: float = 0) -> float:
    """``part / whole * 100`` rounded half-up, or ``empty`` when whole is 0."""
    if not whole:
        return empty
    value = round_half_up(part / whole * 100, digits)
    return value if digits else int(value)


def parse_date(value: Optional[DateLike]) -> Optional[datetime]:
    """
    Parse an ISO date or datetime into a naive UTC datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _day(value: DateLike, field: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise BadParametersError.single(field, f"Invalid date: {value}")
    return parsed.date()


def year_bounds(year: int) -> Tuple[datetime, datetime]:
    """Inclusive UTC bounds of a calendar year."""
    return datetime(year, 1, 1), datetime.combine(date(year, 12, 31), time.max.replace(microsecond=999000))


def build_date_filter(
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    year: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, datetime]:
    """
    Build a ``{"$gte", "$lte"}`` createdAt range.

    An explicit start/end pair wins, then ``year``, then the current
    calendar year. Bounds are inclusive UTC day boundaries.

    Raises:
        BadParametersError: Unparseable dates or start after end
    """
    if start_date and end_date:
        start = _day(start_date, "startDate")
        end = _day(end_date, "endDate")
        if start > end:
            raise BadParametersError.single("startDate", "startDate must not be after endDate")
        return {
            "$gte": datetime.combine(start, time.min),
            "$lte": datetime.combine(end, time.max.replace(microsecond=999000)),
        }

    target_year = year or (now or datetime.utcnow()).year
    lower, upper = year_bounds(target_year)
    return {"$gte": lower, "$lte": upper}


def merge_filters(base: Dict[str, Any], permission_filter: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Shallow-merge a permission filter into a base query.

    Permission keys win on collision; an empty permission filter returns
    ``base`` itself.
    """
    if not permission_filter:
        return base
    return {**base, **permission_filter}


def format_date(value: Optional[DateLike]) -> Optional[str]:
    """ISO calendar date (YYYY-MM-DD) or None."""
    parsed = parse_date(value)
    return parsed.date().isoformat() if parsed else None


def days_between(start: Optional[DateLike], end: Optional[DateLike]) -> Optional[int]:
    """Absolute whole days between two dates, or None if either is unparseable."""
    start_dt = parse_date(start)
    end_dt = parse_date(end)
    if start_dt is None or end_dt is None:
        return None
    return int(abs(round_half_up((end_dt - start_dt).total_seconds() / 86400)))


def maturity_level(value: Any) -> int:
    """Maturity as an int in 0..5 (0 when missing or out of range)."""
    try:
        level = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return level if 0 <= level <= 5 else 0
