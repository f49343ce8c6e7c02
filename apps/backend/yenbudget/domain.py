from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .utils.normalization import CATEGORY_NAME_MAX_LENGTH, normalize_category_name
from .utils.months import month_key


STATE_VERSION = 2

# largest amount a signed 64-bit INTEGER column holds
MAX_AMOUNT = 2**63 - 1

DEFAULT_CATEGORIES: tuple[str, ...] = ("Food", "Transport", "Entertainment", "Shopping", "Bills", "Other")


class TxnType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Recurrence(str, Enum):
    """Stored with the transaction only; nothing materializes future entries."""

    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _check_category(value: str) -> str:
    name = normalize_category_name(value)
    if not name:
        raise ValueError("category must not be empty")
    if len(name) > CATEGORY_NAME_MAX_LENGTH:
        raise ValueError(f"category must be at most {CATEGORY_NAME_MAX_LENGTH} characters")
    return name


def _check_whole_amount(value: Any) -> Any:
    # bool is an int subclass; True must not become an amount of 1
    if isinstance(value, bool):
        raise ValueError("amount must be an integer")
    return value


class Transaction(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex, min_length=1, max_length=64)
    type: TxnType
    category: str
    amount: int = Field(gt=0, le=MAX_AMOUNT)
    date: dt.date
    note: str = ""
    recurring: Recurrence = Recurrence.NONE
    next_occurrence: dt.date | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("category", mode="before")
    @classmethod
    def category_name(cls, v: Any) -> Any:
        return _check_category(v) if isinstance(v, str) else v

    @field_validator("amount", mode="before")
    @classmethod
    def amount_whole(cls, v: Any) -> Any:
        return _check_whole_amount(v)

    @field_validator("note", mode="before")
    @classmethod
    def note_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def month(self) -> str:
        return month_key(self.date)


class Budget(BaseModel):
    category: str
    limit_amount: int = Field(ge=0, le=MAX_AMOUNT)
    # None: no manual override, spend is derived from the ledger
    manual_spent: int | None = Field(default=None, ge=0, le=MAX_AMOUNT)

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("category", mode="before")
    @classmethod
    def category_name(cls, v: Any) -> Any:
        return _check_category(v) if isinstance(v, str) else v

    @field_validator("limit_amount", "manual_spent", mode="before")
    @classmethod
    def amount_whole(cls, v: Any) -> Any:
        return _check_whole_amount(v)


class Goal(BaseModel):
    target_income: int = Field(default=0, ge=0, le=MAX_AMOUNT)
    target_savings_rate_percent: int = Field(default=20, ge=0, le=100)

    model_config = ConfigDict(frozen=True, extra="ignore")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def target_savings(self) -> int:
        return self.target_income * self.target_savings_rate_percent // 100


class PersistedState(BaseModel):
    """Everything one namespace persists, in storage-neutral form."""

    version: int = STATE_VERSION
    categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goal: Goal = Field(default_factory=Goal)
    settings: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "PersistedState":
        return cls()


class ExportSnapshot(PersistedState):
    namespace: str
    generated_at: dt.datetime


# ---- Derived views --------------------------------------------------------


class MonthlyTotals(BaseModel):
    month: str
    income: int
    expense: int
    savings: int


class YearTotals(BaseModel):
    year: int
    income: int
    expense: int
    savings: int


class CategoryAmount(BaseModel):
    category: str
    amount: int


class BudgetStatus(BaseModel):
    category: str
    month: str
    limit: int
    spent: int
    auto_spent: int
    manual_spent: int | None
    remaining: int
    percentage: float
    is_over_budget: bool
    source: Literal["manual", "auto"]


class YearOverYear(BaseModel):
    year: int
    previous_year: int
    current: YearTotals
    previous: YearTotals
    income_change_percent: float
    expense_change_percent: float
    savings_change_percent: float


class MonthOverMonth(BaseModel):
    month: str
    previous_month: str
    current: MonthlyTotals
    previous: MonthlyTotals
    income_change_percent: float
    expense_change_percent: float
    savings_change_percent: float
    savings_rate_percent: float
    previous_savings_rate_percent: float


class GoalProgress(BaseModel):
    month: str
    target_income: int
    target_savings_rate_percent: int
    target_savings: int
    current_savings: int
    progress_percent: float
    achieved: bool
