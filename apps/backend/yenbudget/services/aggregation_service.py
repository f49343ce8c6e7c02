from __future__ import annotations

from collections import defaultdict

from ..domain import (
    BudgetStatus,
    CategoryAmount,
    Goal,
    GoalProgress,
    MonthlyTotals,
    MonthOverMonth,
    TxnType,
    YearOverYear,
    YearTotals,
)
from ..errors import ValidationError
from ..utils.months import months_of_year, parse_month_key, previous_month, shift_month
from .budget_registry_service import BudgetRegistry
from .ledger_service import TransactionLedger


TOP_CATEGORY_LIMIT = 8


def percent_change(current: int, previous: int) -> float:
    """Relative change against ``previous``; 0.0 when there is no base.

    The base is taken as an absolute value so that going from a deficit of
    -100 to a surplus of 50 reads as +150% rather than a negative change.
    """
    if previous == 0:
        return 0.0
    return (current - previous) / abs(previous) * 100


def savings_rate(totals: MonthlyTotals) -> float:
    if totals.income <= 0:
        return 0.0
    return totals.savings / totals.income * 100


class AggregationService:
    """Derived financial views over a ledger and budget registry.

    Nothing here mutates or caches: every figure is recomputed from the
    current transactions and budgets on each call.
    """

    def __init__(self, ledger: TransactionLedger, registry: BudgetRegistry) -> None:
        self.ledger = ledger
        self.registry = registry

    # ---- Monthly ---------------------------------------------------------
    def totals_for_month(self, month: str) -> MonthlyTotals:
        key = parse_month_key(month)
        income = 0
        expense = 0
        for txn in self.ledger.for_month(key):
            if txn.type == TxnType.INCOME:
                income += txn.amount
            else:
                expense += txn.amount
        return MonthlyTotals(month=key, income=income, expense=expense, savings=income - expense)

    def category_spend(self, month: str) -> dict[str, int]:
        totals: defaultdict[str, int] = defaultdict(int)
        for txn in self.ledger.for_month(month):
            if txn.type == TxnType.EXPENSE:
                totals[txn.category] += txn.amount
        return {name: totals[name] for name in sorted(totals)}

    def top_categories(self, month: str, limit: int = TOP_CATEGORY_LIMIT) -> list[CategoryAmount]:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        spend = self.category_spend(month)
        ranked = sorted(spend.items(), key=lambda item: (-item[1], item[0]))
        return [CategoryAmount(category=name, amount=amount) for name, amount in ranked[:limit]]

    def savings_rate(self, month: str) -> float:
        return savings_rate(self.totals_for_month(month))

    def monthly_trend(self, end_month: str, months: int = 6) -> list[MonthlyTotals]:
        """Totals for ``months`` consecutive months ending at ``end_month``."""
        if not 1 <= months <= 120:
            raise ValidationError("months must be between 1 and 120")
        end = parse_month_key(end_month)
        return [self.totals_for_month(shift_month(end, -offset)) for offset in range(months - 1, -1, -1)]

    def month_over_month(self, month: str) -> MonthOverMonth:
        key = parse_month_key(month)
        prev_key = previous_month(key)
        current = self.totals_for_month(key)
        previous = self.totals_for_month(prev_key)
        return MonthOverMonth(
            month=key,
            previous_month=prev_key,
            current=current,
            previous=previous,
            income_change_percent=percent_change(current.income, previous.income),
            expense_change_percent=percent_change(current.expense, previous.expense),
            savings_change_percent=percent_change(current.savings, previous.savings),
            savings_rate_percent=savings_rate(current),
            previous_savings_rate_percent=savings_rate(previous),
        )

    # ---- Budgets ---------------------------------------------------------
    def budget_status(self, category: str, month: str) -> BudgetStatus:
        """Spent/remaining for one budget in one month.

        A manual spend, when set, replaces the ledger-derived figure; the two
        are never added together.
        """
        key = parse_month_key(month)
        budget = self.registry.get(category)
        auto_spent = self.category_spend(key).get(budget.category, 0)
        if budget.manual_spent is not None:
            spent, source = budget.manual_spent, "manual"
        else:
            spent, source = auto_spent, "auto"
        limit = budget.limit_amount
        remaining = limit - spent
        percentage = spent / limit * 100 if limit > 0 else 0.0
        return BudgetStatus(
            category=budget.category,
            month=key,
            limit=limit,
            spent=spent,
            auto_spent=auto_spent,
            manual_spent=budget.manual_spent,
            remaining=remaining,
            percentage=percentage,
            is_over_budget=spent > limit,
            source=source,
        )

    def budget_statuses(self, month: str) -> list[BudgetStatus]:
        return [self.budget_status(b.category, month) for b in self.registry.all()]

    # ---- Yearly ----------------------------------------------------------
    def totals_for_year(self, year: int) -> YearTotals:
        income = 0
        expense = 0
        for key in months_of_year(year):
            totals = self.totals_for_month(key)
            income += totals.income
            expense += totals.expense
        return YearTotals(year=year, income=income, expense=expense, savings=income - expense)

    def year_over_year(self, year: int) -> YearOverYear:
        if year < 2:
            raise ValidationError(f"Invalid year {year!r}")
        current = self.totals_for_year(year)
        previous = self.totals_for_year(year - 1)
        return YearOverYear(
            year=year,
            previous_year=year - 1,
            current=current,
            previous=previous,
            income_change_percent=percent_change(current.income, previous.income),
            expense_change_percent=percent_change(current.expense, previous.expense),
            savings_change_percent=percent_change(current.savings, previous.savings),
        )

    # ---- Goal ------------------------------------------------------------
    def goal_progress(self, goal: Goal, month: str) -> GoalProgress:
        totals = self.totals_for_month(month)
        target = goal.target_savings
        progress = totals.savings / target * 100 if target > 0 else 0.0
        return GoalProgress(
            month=totals.month,
            target_income=goal.target_income,
            target_savings_rate_percent=goal.target_savings_rate_percent,
            target_savings=target,
            current_savings=totals.savings,
            progress_percent=progress,
            achieved=target > 0 and totals.savings >= target,
        )

    def category_usage(self) -> dict[str, int]:
        """Number of transactions per registered category (0 when unused)."""
        counts = {name: 0 for name in self.registry.categories()}
        for txn in self.ledger:
            counts[txn.category] = counts.get(txn.category, 0) + 1
        return counts
