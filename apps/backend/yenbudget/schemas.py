from __future__ import annotations

import datetime as dt
from typing import Optional, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from .domain import Recurrence, TxnType


class CategoryCreate(BaseModel):
    name: str


class CategoryOut(BaseModel):
    name: str
    transaction_count: int = 0
    has_budget: bool = False


class TransactionCreate(BaseModel):
    id: Optional[str] = None
    type: TxnType
    category: str
    amount: int
    date: dt.date
    note: Optional[str] = ""
    recurring: Recurrence = Recurrence.NONE
    next_occurrence: Optional[dt.date] = Field(
        default=None,
        validation_alias=AliasChoices("next_occurrence", "next_date", "next"),
    )

    @field_validator("type", "recurring", mode="before")
    def lower_enum(cls, v: Any):
        # browser forms send "Income" / "Monthly"
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("recurring", mode="before")
    def recurring_flag(cls, v: Any):
        # the SQL-backed client sent a boolean checkbox
        if isinstance(v, bool):
            return Recurrence.MONTHLY if v else Recurrence.NONE
        return v

    @field_validator("next_occurrence", mode="before")
    def empty_date(cls, v: Any):
        return None if v == "" else v


class TransactionUpdate(BaseModel):
    type: Optional[TxnType] = None
    category: Optional[str] = None
    amount: Optional[int] = None
    date: Optional[dt.date] = None
    note: Optional[str] = None
    recurring: Optional[Recurrence] = None
    next_occurrence: Optional[dt.date] = Field(
        default=None,
        validation_alias=AliasChoices("next_occurrence", "next_date", "next"),
    )

    @field_validator("type", "recurring", mode="before")
    def lower_enum(cls, v: Any):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("next_occurrence", mode="before")
    def empty_date(cls, v: Any):
        return None if v == "" else v


class TransactionOut(BaseModel):
    id: str
    type: TxnType
    category: str
    amount: int
    date: dt.date
    month: str
    note: str
    recurring: Recurrence
    next_occurrence: Optional[dt.date]

    model_config = ConfigDict(from_attributes=True)


class BudgetUpsert(BaseModel):
    category: str
    limit_amount: int = Field(validation_alias=AliasChoices("limit_amount", "limitAmount", "amount"))


class BudgetOut(BaseModel):
    category: str
    limit_amount: int
    manual_spent: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class ManualSpentIn(BaseModel):
    amount: int


class GoalIn(BaseModel):
    target_income: int = Field(validation_alias=AliasChoices("target_income", "income"))
    target_savings_rate_percent: int = Field(
        validation_alias=AliasChoices("target_savings_rate_percent", "rate")
    )


class GoalOut(BaseModel):
    target_income: int
    target_savings_rate_percent: int
    target_savings: int

    model_config = ConfigDict(from_attributes=True)


class SettingIn(BaseModel):
    key: str
    value: Any = None


class SettingOut(BaseModel):
    key: str
    value: Any = None


class ImportResult(BaseModel):
    namespace: str
    categories: int
    transactions: int
    budgets: int
    settings: int


class HealthOut(BaseModel):
    status: str
    timestamp: dt.datetime
