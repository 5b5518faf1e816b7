from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings


class Granularity(str, Enum):
    day = "day"
    month = "month"
    year = "year"


_KEY_LENGTHS = {Granularity.day: 10, Granularity.month: 7, Granularity.year: 4}


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    return date(year, month, days_in_month(year, month))


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + count
    return total // 12, total % 12 + 1


def period_key(value: Union[date, str], granularity: Granularity) -> str:
    """Bucket key for a date: ``YYYY-MM-DD``, ``YYYY-MM`` or ``YYYY``.

    Keys are prefixes of the ISO date string, so bucketing never goes through
    timezone-aware datetime arithmetic.
    """
    text = value.isoformat() if isinstance(value, date) else str(value).strip()
    return text[: _KEY_LENGTHS[Granularity(granularity)]]


def granularity_of(key: str) -> Granularity:
    for granularity, length in _KEY_LENGTHS.items():
        if len(key) == length:
            return granularity
    raise ValueError(f"Not a period key: {key!r}")


def period_bounds(key: str) -> Period:
    granularity = granularity_of(key)
    if granularity == Granularity.day:
        day = date.fromisoformat(key)
        return Period(key, day, day)
    if granularity == Granularity.month:
        year, month = (int(part) for part in key.split("-"))
        return Period(key, month_start(year, month), month_end(year, month))
    year = int(key)
    return Period(key, date(year, 1, 1), date(year, 12, 31))


def available_period_keys(
    dates: Iterable[Union[date, str]],
    granularity: Granularity,
    *,
    today: Optional[date] = None,
) -> list[str]:
    today = today or local_today()
    keys = {period_key(value, granularity) for value in dates if value}
    keys.add(period_key(today, granularity))
    return sorted(keys)


def resolve_selection(keys: list[str], selection: Optional[str]) -> str:
    if selection in keys:
        return selection
    if not keys:
        raise ValueError("Period index is empty")
    return keys[-1]


def step_period(keys: list[str], selection: Optional[str], step: int) -> str:
    current = resolve_selection(keys, selection)
    index = keys.index(current) + step
    index = max(0, min(index, len(keys) - 1))
    return keys[index]
