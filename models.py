from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Category(str, Enum):
    housing = "Housing"
    food = "Food & Dining"
    groceries = "Groceries"
    transport = "Transportation"
    utilities = "Utilities"
    entertainment = "Entertainment"
    health = "Health & Fitness"
    shopping = "Shopping"
    travel = "Travel"
    other = "Other"


class Frequency(str, Enum):
    one_time = "One-time"
    daily = "Daily"
    weekly = "Weekly"
    biweekly = "Biweekly"
    monthly = "Monthly"
    bimonthly = "Bimonthly"
    quarterly = "Quarterly"
    yearly = "Yearly"


class ThemeColor(str, Enum):
    indigo = "indigo"
    emerald = "emerald"
    rose = "rose"
    amber = "amber"
    sky = "sky"
    violet = "violet"


class Collection(str, Enum):
    transactions = "transactions"
    budgets = "budgets"
    savings = "savings"
    profile = "profile"


class SavingsNormalization(str, Enum):
    face_value = "face_value"
    monthly_equivalent = "monthly_equivalent"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class StoredCollection(Base, TimestampMixin):
    """One JSON document per collection, versioned independently."""

    __tablename__ = "stored_collections"

    name: Mapped[str] = mapped_column(String(40), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
