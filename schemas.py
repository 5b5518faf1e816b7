import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import Category, Frequency, ThemeColor


class TransactionIn(BaseModel):
    date: date
    time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    description: str = Field(..., max_length=200)
    vendor: Optional[str] = Field(default=None, max_length=120)
    amount: Decimal = Field(..., ge=0)
    category: Category = Category.other
    is_recurring: bool = False
    frequency: Frequency = Frequency.one_time
    end_date: Optional[dt.date] = None
    parent_id: Optional[str] = None
    notes: Optional[str] = None


class Transaction(TransactionIn):
    id: str = Field(..., min_length=1)


class MonthlyBudget(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    categories: dict[Category, Decimal] = Field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum(self.categories.values(), Decimal("0"))


class SavingsProjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    frequency: Frequency = Frequency.monthly
    deduct_from_budget: bool = True
    memo: Optional[str] = None


class SavingsProject(SavingsProjectIn):
    id: str = Field(..., min_length=1)


class UserProfile(BaseModel):
    id: str
    theme: ThemeColor = ThemeColor.indigo
    viewers: list[str] = Field(default_factory=list)

    @field_validator("viewers")
    @classmethod
    def _dedupe_viewers(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for viewer in value:
            if viewer not in seen:
                seen.append(viewer)
        return seen


class CumulativePoint(BaseModel):
    day: int
    amount: Decimal


class PeriodWindowEntry(BaseModel):
    key: str
    label: str
    tooltip_label: str
    budget: Decimal
    actual: Decimal
    is_current: bool


class CategorySlice(BaseModel):
    category: Category
    amount: Decimal
    percent: float


class CategoryExample(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    category: Category


class DashboardSummary(BaseModel):
    month: str
    month_to_date: Decimal
    prior_month: Decimal
    gross_budget: Decimal
    savings_deduction: Decimal
    effective_budget: Decimal
    remaining: Decimal
    recent: list[Transaction]
    cumulative: list[CumulativePoint]


class SpendingView(BaseModel):
    granularity: str
    selection: str
    available: list[str]
    is_first: bool
    is_last: bool
    window: list[PeriodWindowEntry]
    breakdown: list[CategorySlice]
    transactions: list[Transaction]


class BudgetIn(BaseModel):
    amount: Decimal


class ThemeIn(BaseModel):
    theme: ThemeColor


class ViewerIn(BaseModel):
    viewer_id: str = Field(..., min_length=1, max_length=120)


class SuggestionIn(BaseModel):
    description: str = ""
    vendor: str = ""
