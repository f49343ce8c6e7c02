from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import Mapped, mapped_column

from .core.database import Base
from .domain import Recurrence, TxnType
from .utils.months import now_local_naive


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class StateNamespace(Base, TimestampMixin):
    """One persisted budget book. The goal singleton lives on this row."""

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    goal_target_income: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_savings_rate: Mapped[int] = mapped_column(Integer, default=20, nullable=False)

    __table_args__ = (
        CheckConstraint("goal_savings_rate BETWEEN 0 AND 100", name="ck_goal_rate_range"),
    )


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    namespace: Mapped[str] = mapped_column(ForeignKey("statenamespace.name", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("namespace", "name", name="uq_category_name"),
    )


class Transaction(Base, TimestampMixin):
    namespace: Mapped[str] = mapped_column(ForeignKey("statenamespace.name", ondelete="CASCADE"), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type", values_callable=lambda e: [m.value for m in e]), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    recurring: Mapped[Recurrence] = mapped_column(
        SAEnum(Recurrence, name="txn_recurrence", values_callable=lambda e: [m.value for m in e]),
        default=Recurrence.NONE,
        nullable=False,
    )
    next_occurrence: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
        Index("ix_txn_namespace_date", "namespace", "occurred_on"),
        Index("ix_txn_namespace_category", "namespace", "category"),
    )


class Budget(Base, TimestampMixin):
    namespace: Mapped[str] = mapped_column(ForeignKey("statenamespace.name", ondelete="CASCADE"), primary_key=True)
    category: Mapped[str] = mapped_column(String(30), primary_key=True)
    limit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    manual_spent: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("limit_amount >= 0", name="ck_budget_limit"),
        CheckConstraint("manual_spent IS NULL OR manual_spent >= 0", name="ck_budget_manual_spent"),
    )


class Setting(Base, TimestampMixin):
    namespace: Mapped[str] = mapped_column(ForeignKey("statenamespace.name", ondelete="CASCADE"), primary_key=True)
    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
