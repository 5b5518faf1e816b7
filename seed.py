"""Starter dataset written on first access when seeding is enabled."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from models import Category, Frequency, ThemeColor
from schemas import MonthlyBudget, SavingsProject, Transaction, UserProfile


INITIAL_BUDGETS: dict[Category, Decimal] = {
    Category.housing: Decimal("2200"),
    Category.groceries: Decimal("600"),
    Category.food: Decimal("400"),
    Category.entertainment: Decimal("200"),
    Category.transport: Decimal("300"),
}


def initial_transactions(today: date) -> list[Transaction]:
    return [
        Transaction(
            id="1",
            date=today,
            time="14:30",
            description="Weekly Groceries",
            amount=Decimal("156.42"),
            category=Category.groceries,
            frequency=Frequency.weekly,
            vendor="Whole Foods",
            is_recurring=True,
        ),
        Transaction(
            id="2",
            date=today - timedelta(days=2),
            time="18:45",
            description="Uber Ride",
            amount=Decimal("24.50"),
            category=Category.transport,
            frequency=Frequency.one_time,
            vendor="Uber",
        ),
        Transaction(
            id="3",
            date=date(2024, 5, 1),
            time="09:00",
            description="Rent Payment",
            amount=Decimal("2200"),
            category=Category.housing,
            frequency=Frequency.monthly,
            vendor="Apartment Corp",
            is_recurring=True,
        ),
        Transaction(
            id="4",
            date=date(2024, 5, 15),
            time="10:00",
            description="Netflix Subscription",
            amount=Decimal("15.99"),
            category=Category.entertainment,
            frequency=Frequency.monthly,
            vendor="Netflix",
            is_recurring=True,
        ),
        Transaction(
            id="5",
            date=date(2024, 5, 20),
            time="06:30",
            description="Gym Membership",
            amount=Decimal("45.00"),
            category=Category.health,
            frequency=Frequency.monthly,
            vendor="Gold's Gym",
            is_recurring=True,
        ),
    ]


def initial_budgets(today: date) -> list[MonthlyBudget]:
    return [MonthlyBudget(month=today.isoformat()[:7], categories=dict(INITIAL_BUDGETS))]


def initial_savings() -> list[SavingsProject]:
    return [
        SavingsProject(
            id="s1",
            name="Summer Vacation",
            amount=Decimal("200"),
            frequency=Frequency.monthly,
            deduct_from_budget=True,
            memo="Trip to Italy in July",
        ),
        SavingsProject(
            id="s2",
            name="New Car Fund",
            amount=Decimal("50"),
            frequency=Frequency.weekly,
            deduct_from_budget=False,
            memo="Saving for a Tesla",
        ),
    ]


def new_profile() -> UserProfile:
    return UserProfile(id=uuid4().hex, theme=ThemeColor.indigo, viewers=[])
