from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from config import get_settings
from models import Category, Collection, Frequency, SavingsNormalization
from periods import (
    Granularity,
    add_months,
    available_period_keys,
    days_in_month,
    granularity_of,
    local_today,
    period_key,
    step_period,
)
from schemas import (
    CategorySlice,
    CumulativePoint,
    DashboardSummary,
    MonthlyBudget,
    PeriodWindowEntry,
    SavingsProject,
    SpendingView,
    Transaction,
)


ZERO = Decimal("0")

# (periods before the selection, periods after it)
WINDOW_SIZES = {
    Granularity.day: (5, 5),
    Granularity.month: (5, 0),
    Granularity.year: (2, 0),
}

# Contributions per month for each savings frequency.
MONTHLY_FACTORS = {
    Frequency.one_time: Decimal("1"),
    Frequency.daily: Decimal("30.44"),
    Frequency.weekly: Decimal("4.35"),
    Frequency.biweekly: Decimal("2.175"),
    Frequency.monthly: Decimal("1"),
    Frequency.bimonthly: Decimal("0.5"),
    Frequency.quarterly: Decimal("1") / Decimal("3"),
    Frequency.yearly: Decimal("1") / Decimal("12"),
}


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def spending_for_key(transactions: Iterable[Transaction], key: str) -> Decimal:
    granularity = granularity_of(key)
    return _sum(t.amount for t in transactions if period_key(t.date, granularity) == key)


def spending_for_month(transactions: Iterable[Transaction], year: int, month: int) -> Decimal:
    return spending_for_key(transactions, f"{year:04d}-{month:02d}")


def prior_month_spending(
    transactions: Iterable[Transaction], today: Optional[date] = None
) -> Decimal:
    today = today or local_today()
    year, month = add_months(today.year, today.month, -1)
    return spending_for_month(transactions, year, month)


def month_budget_total(budgets: Iterable[MonthlyBudget], month_key: str) -> Decimal:
    for budget in budgets:
        if budget.month == month_key:
            return budget.total
    return ZERO


def year_budget_total(budgets: Iterable[MonthlyBudget], year_key: str) -> Decimal:
    return _sum(b.total for b in budgets if b.month.startswith(f"{year_key}-"))


def cumulative_month_to_date(
    transactions: Iterable[Transaction], today: Optional[date] = None
) -> list[CumulativePoint]:
    """Running spend for every day of the month containing ``today``."""
    today = today or local_today()
    month_key = period_key(today, Granularity.month)
    daily: dict[int, Decimal] = {}
    for txn in transactions:
        if period_key(txn.date, Granularity.month) != month_key:
            continue
        daily[txn.date.day] = daily.get(txn.date.day, ZERO) + txn.amount

    points: list[CumulativePoint] = []
    running = ZERO
    for day in range(1, days_in_month(today.year, today.month) + 1):
        running += daily.get(day, ZERO)
        points.append(CumulativePoint(day=day, amount=running))
    return points


def available_periods(
    transactions: Iterable[Transaction],
    granularity: Granularity,
    today: Optional[date] = None,
) -> list[str]:
    return available_period_keys(
        (t.date for t in transactions), granularity, today=today
    )


def _shift_key(key: str, granularity: Granularity, offset: int) -> date:
    if granularity == Granularity.day:
        return date.fromisoformat(key) + timedelta(days=offset)
    if granularity == Granularity.month:
        year, month = (int(part) for part in key.split("-"))
        year, month = add_months(year, month, offset)
        return date(year, month, 1)
    return date(int(key) + offset, 1, 1)


def budget_vs_actual(
    transactions: Sequence[Transaction],
    budgets: Sequence[MonthlyBudget],
    selection: str,
    granularity: Granularity,
) -> list[PeriodWindowEntry]:
    granularity = Granularity(granularity)
    before, after = WINDOW_SIZES[granularity]
    actuals: dict[str, Decimal] = {}
    for txn in transactions:
        key = period_key(txn.date, granularity)
        actuals[key] = actuals.get(key, ZERO) + txn.amount

    window: list[PeriodWindowEntry] = []
    for offset in range(-before, after + 1):
        day = _shift_key(selection, granularity, offset)
        key = period_key(day, granularity)
        if granularity == Granularity.day:
            label = str(day.day)
            tooltip = f"{day.strftime('%a')} {day.day}"
            month_total = month_budget_total(budgets, key[:7])
            budget = month_total / days_in_month(day.year, day.month)
        elif granularity == Granularity.month:
            label = tooltip = day.strftime("%b")
            budget = month_budget_total(budgets, key)
        else:
            label = tooltip = key
            budget = year_budget_total(budgets, key)
        window.append(
            PeriodWindowEntry(
                key=key,
                label=label,
                tooltip_label=tooltip,
                budget=budget,
                actual=actuals.get(key, ZERO),
                is_current=key == selection,
            )
        )
    return window


def category_breakdown(
    transactions: Iterable[Transaction], selection: str
) -> list[CategorySlice]:
    granularity = granularity_of(selection)
    totals: dict[Category, Decimal] = {}
    for txn in transactions:
        if period_key(txn.date, granularity) != selection:
            continue
        totals[txn.category] = totals.get(txn.category, ZERO) + txn.amount

    total = _sum(totals.values())
    breakdown = [
        CategorySlice(
            category=category,
            amount=amount,
            percent=float(amount / total * 100) if total else 0.0,
        )
        for category, amount in totals.items()
        if amount > 0
    ]
    breakdown.sort(key=lambda item: item.amount, reverse=True)
    return breakdown


def savings_deduction(
    savings: Iterable[SavingsProject],
    strategy: Optional[SavingsNormalization] = None,
) -> Decimal:
    strategy = SavingsNormalization(strategy or get_settings().savings_normalization)
    deducting = [p for p in savings if p.deduct_from_budget]
    if strategy == SavingsNormalization.face_value:
        return _sum(p.amount for p in deducting)
    return _sum(p.amount * MONTHLY_FACTORS[p.frequency] for p in deducting)


def effective_budget(
    budgets: Iterable[MonthlyBudget],
    savings: Iterable[SavingsProject],
    today: Optional[date] = None,
    strategy: Optional[SavingsNormalization] = None,
) -> Decimal:
    today = today or local_today()
    gross = month_budget_total(budgets, period_key(today, Granularity.month))
    return gross - savings_deduction(savings, strategy)


def _occurred_sort_key(txn: Transaction) -> tuple[date, str]:
    return txn.date, txn.time or "00:00"


def recent_transactions(
    transactions: Iterable[Transaction], limit: int = 5
) -> list[Transaction]:
    return sorted(transactions, key=_occurred_sort_key, reverse=True)[:limit]


def filter_transactions(
    transactions: Iterable[Transaction],
    query: Optional[str] = None,
    category: Optional[Category] = None,
) -> list[Transaction]:
    needle = (query or "").strip().lower()
    result = []
    for txn in transactions:
        if category is not None and txn.category != category:
            continue
        if needle and needle not in txn.description.lower() and needle not in (
            txn.vendor or ""
        ).lower():
            continue
        result.append(txn)
    return sorted(result, key=_occurred_sort_key, reverse=True)


def dashboard_summary(
    transactions: Sequence[Transaction],
    budgets: Sequence[MonthlyBudget],
    savings: Sequence[SavingsProject],
    today: Optional[date] = None,
    strategy: Optional[SavingsNormalization] = None,
) -> DashboardSummary:
    today = today or local_today()
    month_key = period_key(today, Granularity.month)
    month_to_date = spending_for_key(transactions, month_key)
    gross = month_budget_total(budgets, month_key)
    deduction = savings_deduction(savings, strategy)
    effective = gross - deduction
    return DashboardSummary(
        month=month_key,
        month_to_date=month_to_date,
        prior_month=prior_month_spending(transactions, today),
        gross_budget=gross,
        savings_deduction=deduction,
        effective_budget=effective,
        remaining=effective - month_to_date,
        recent=recent_transactions(transactions),
        cumulative=cumulative_month_to_date(transactions, today),
    )


def spending_view(
    transactions: Sequence[Transaction],
    budgets: Sequence[MonthlyBudget],
    granularity: Granularity,
    selection: Optional[str] = None,
    step: int = 0,
    today: Optional[date] = None,
) -> SpendingView:
    granularity = Granularity(granularity)
    keys = available_periods(transactions, granularity, today)
    current = step_period(keys, selection, step)
    idx = keys.index(current)
    return SpendingView(
        granularity=granularity.value,
        selection=current,
        available=keys,
        is_first=idx == 0,
        is_last=idx == len(keys) - 1,
        window=budget_vs_actual(transactions, budgets, current, granularity),
        breakdown=category_breakdown(transactions, current),
        transactions=[
            t for t in transactions if period_key(t.date, granularity) == current
        ],
    )


class LiveSnapshots:
    """Keeps the latest broadcast snapshot of each collection for derived views."""

    def __init__(self, data_service) -> None:
        self.transactions: tuple[Transaction, ...] = ()
        self.budgets: tuple[MonthlyBudget, ...] = ()
        self.savings: tuple[SavingsProject, ...] = ()
        self.subscriptions = [
            data_service.subscribe(Collection.transactions, self._set_transactions),
            data_service.subscribe(Collection.budgets, self._set_budgets),
            data_service.subscribe(Collection.savings, self._set_savings),
        ]

    def _set_transactions(self, snapshot) -> None:
        self.transactions = tuple(snapshot)

    def _set_budgets(self, snapshot) -> None:
        self.budgets = tuple(snapshot)

    def _set_savings(self, snapshot) -> None:
        self.savings = tuple(snapshot)

    def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        return dashboard_summary(self.transactions, self.budgets, self.savings, today)

    def spending(
        self,
        granularity: Granularity,
        selection: Optional[str] = None,
        step: int = 0,
        today: Optional[date] = None,
    ) -> SpendingView:
        return spending_view(
            self.transactions, self.budgets, granularity, selection, step, today
        )

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions = []
