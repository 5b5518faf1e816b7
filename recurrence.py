from datetime import date, timedelta
from typing import Iterable, Optional

from models import Frequency
from periods import add_months, days_in_month
from schemas import Transaction


_DAY_STEPS = {
    Frequency.daily: 1,
    Frequency.weekly: 7,
    Frequency.biweekly: 14,
}

_MONTH_STEPS = {
    Frequency.monthly: 1,
    Frequency.bimonthly: 2,
    Frequency.quarterly: 3,
    Frequency.yearly: 12,
}


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    year, month = add_months(base.year, base.month, months)
    return date(year, month, min(desired_day, days_in_month(year, month)))


def _months_between(start: date, target: date) -> int:
    return (target.year - start.year) * 12 + (target.month - start.month)


def occurs_on(txn: Transaction, day: date) -> bool:
    """Whether a recurring transaction is due on ``day``.

    Month-based frequencies keep the start date's day of month and snap to the
    last day when a month is shorter.
    """
    if day < txn.date:
        return False
    if txn.end_date is not None and day > txn.end_date:
        return False
    if not txn.is_recurring or txn.frequency == Frequency.one_time:
        return day == txn.date
    if txn.frequency in _DAY_STEPS:
        return (day - txn.date).days % _DAY_STEPS[txn.frequency] == 0
    step = _MONTH_STEPS[txn.frequency]
    months = _months_between(txn.date, day)
    if months % step:
        return False
    return _add_months(txn.date, months, desired_day=txn.date.day) == day


def next_occurrence(txn: Transaction, after: date) -> Optional[date]:
    if not txn.is_recurring or txn.frequency == Frequency.one_time:
        return txn.date if txn.date > after else None

    if txn.frequency in _DAY_STEPS:
        step = _DAY_STEPS[txn.frequency]
        if after < txn.date:
            candidate = txn.date
        else:
            elapsed = (after - txn.date).days
            candidate = txn.date + timedelta(days=(elapsed // step + 1) * step)
    else:
        step = _MONTH_STEPS[txn.frequency]
        months = max(0, _months_between(txn.date, after))
        months -= months % step
        candidate = _add_months(txn.date, months, desired_day=txn.date.day)
        while candidate <= after:
            months += step
            candidate = _add_months(txn.date, months, desired_day=txn.date.day)

    if txn.end_date is not None and candidate > txn.end_date:
        return None
    return candidate


def recurring_calendar(
    transactions: Iterable[Transaction], year: int, month: int
) -> dict[int, list[Transaction]]:
    recurring = [t for t in transactions if t.is_recurring]
    calendar: dict[int, list[Transaction]] = {}
    for day_number in range(1, days_in_month(year, month) + 1):
        day = date(year, month, day_number)
        due = [t for t in recurring if occurs_on(t, day)]
        if due:
            calendar[day_number] = due
    return calendar
