from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from .core.deps import get_book
from .domain import (
    BudgetStatus,
    CategoryAmount,
    GoalProgress,
    MonthlyTotals,
    MonthOverMonth,
    TxnType,
    YearOverYear,
)
from .schemas import (
    BudgetOut,
    BudgetUpsert,
    CategoryCreate,
    CategoryOut,
    GoalIn,
    GoalOut,
    HealthOut,
    ImportResult,
    ManualSpentIn,
    SettingIn,
    SettingOut,
    TransactionCreate,
    TransactionOut,
    TransactionUpdate,
)
from .services.book_service import BudgetBook
from .services.export_service import export_filename, transactions_to_csv
from .utils.months import current_month_key, now_local_naive, today_local


router = APIRouter()


def _month_or_current(month: str | None) -> str:
    return month or current_month_key()


@router.get("/health", response_model=HealthOut)
def api_health():
    return HealthOut(status="ok", timestamp=now_local_naive())


# ---- Categories -------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(book: BudgetBook = Depends(get_book)):
    usage = book.category_usage()
    budgeted = {b.category for b in book.budgets()}
    return [
        CategoryOut(name=name, transaction_count=usage.get(name, 0), has_budget=name in budgeted)
        for name in book.categories()
    ]


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryCreate, book: BudgetBook = Depends(get_book)):
    name = book.add_category(payload.name)
    return CategoryOut(name=name)


@router.delete("/categories/{name}", status_code=204)
def delete_category(name: str, book: BudgetBook = Depends(get_book)):
    book.delete_category(name)
    return None


# ---- Transactions -----------------------------------------------------------


@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    response: Response,
    month: str | None = Query(None),
    category: str | None = Query(None),
    type: TxnType | None = Query(None),
    book: BudgetBook = Depends(get_book),
):
    rows = book.transactions(month=month, category=category, type=type)
    response.headers["X-Total-Count"] = str(len(rows))
    return rows


@router.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(payload: TransactionCreate, book: BudgetBook = Depends(get_book)):
    return book.add_transaction(payload.model_dump())


@router.get("/transactions/{txn_id}", response_model=TransactionOut)
def get_transaction(txn_id: str, book: BudgetBook = Depends(get_book)):
    return book.get_transaction(txn_id)


@router.put("/transactions/{txn_id}", response_model=TransactionOut)
def replace_transaction(txn_id: str, payload: TransactionCreate, book: BudgetBook = Depends(get_book)):
    if payload.id is not None and payload.id != txn_id:
        raise HTTPException(status_code=400, detail="Transaction id cannot be changed")
    return book.update_transaction(txn_id, payload.model_dump(exclude={"id"}))


@router.patch("/transactions/{txn_id}", response_model=TransactionOut)
def update_transaction(txn_id: str, payload: TransactionUpdate, book: BudgetBook = Depends(get_book)):
    return book.update_transaction(txn_id, payload.model_dump(exclude_unset=True))


@router.delete("/transactions/{txn_id}", status_code=204)
def delete_transaction(txn_id: str, book: BudgetBook = Depends(get_book)):
    book.delete_transaction(txn_id)
    return None


@router.get("/months", response_model=list[str])
def list_months(book: BudgetBook = Depends(get_book)):
    return book.months()


# ---- Budgets ----------------------------------------------------------------


@router.get("/budgets", response_model=list[BudgetStatus])
def list_budgets(month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.budget_statuses(_month_or_current(month))


@router.post("/budgets", response_model=BudgetOut, status_code=201)
def upsert_budget(payload: BudgetUpsert, response: Response, book: BudgetBook = Depends(get_book)):
    budget, created = book.upsert_budget(payload.category, payload.limit_amount)
    if not created:
        response.status_code = 200
    return budget


@router.get("/budgets/{category}/status", response_model=BudgetStatus)
def budget_status(category: str, month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.budget_status(category, _month_or_current(month))


@router.put("/budgets/{category}/manual-spent", response_model=BudgetOut)
def set_manual_spent(category: str, payload: ManualSpentIn, book: BudgetBook = Depends(get_book)):
    return book.set_manual_spent(category, payload.amount)


@router.delete("/budgets/{category}/manual-spent", response_model=BudgetOut)
def clear_manual_spent(category: str, book: BudgetBook = Depends(get_book)):
    return book.clear_manual_spent(category)


@router.delete("/budgets/{category}", status_code=204)
def delete_budget(category: str, book: BudgetBook = Depends(get_book)):
    book.delete_budget(category)
    return None


# ---- Reports ----------------------------------------------------------------


@router.get("/reports/monthly", response_model=MonthlyTotals)
def report_monthly(month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.totals_for_month(_month_or_current(month))


@router.get("/reports/category-spend", response_model=dict[str, int])
def report_category_spend(month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.category_spend(_month_or_current(month))


@router.get("/reports/top-categories", response_model=list[CategoryAmount])
def report_top_categories(
    month: str | None = Query(None),
    limit: int = Query(8, ge=1, le=100),
    book: BudgetBook = Depends(get_book),
):
    return book.top_categories(_month_or_current(month), limit)


@router.get("/reports/year-over-year", response_model=YearOverYear)
def report_year_over_year(year: int | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.year_over_year(year if year is not None else today_local().year)


@router.get("/reports/month-over-month", response_model=MonthOverMonth)
def report_month_over_month(month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.month_over_month(_month_or_current(month))


@router.get("/reports/trend", response_model=list[MonthlyTotals])
def report_trend(
    end: str | None = Query(None),
    months: int = Query(6, ge=1, le=120),
    book: BudgetBook = Depends(get_book),
):
    return book.monthly_trend(_month_or_current(end), months)


# ---- Goal & settings --------------------------------------------------------


@router.get("/goal", response_model=GoalOut)
def get_goal(book: BudgetBook = Depends(get_book)):
    return book.goal


@router.put("/goal", response_model=GoalOut)
def set_goal(payload: GoalIn, book: BudgetBook = Depends(get_book)):
    return book.set_goal(payload.target_income, payload.target_savings_rate_percent)


@router.get("/goal/progress", response_model=GoalProgress)
def goal_progress(month: str | None = Query(None), book: BudgetBook = Depends(get_book)):
    return book.goal_progress(_month_or_current(month))


@router.get("/settings", response_model=dict[str, Any])
def list_settings(book: BudgetBook = Depends(get_book)):
    return book.settings()


@router.post("/settings", response_model=SettingOut)
def upsert_setting(payload: SettingIn, book: BudgetBook = Depends(get_book)):
    value = book.set_setting(payload.key, payload.value)
    return SettingOut(key=payload.key.strip(), value=value)


# ---- Export / import --------------------------------------------------------


@router.get("/export/json")
def export_json(book: BudgetBook = Depends(get_book)):
    snapshot = book.export_snapshot()
    filename = export_filename("budget-backup", today_local().isoformat(), "json")
    return JSONResponse(
        content=snapshot.model_dump(mode="json"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/csv")
def export_csv(book: BudgetBook = Depends(get_book)):
    rows = book.transactions()
    if not rows:
        raise HTTPException(status_code=404, detail="No transactions to export")
    filename = export_filename("budget-transactions", today_local().isoformat(), "csv")
    return Response(
        content=transactions_to_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import/json", response_model=ImportResult)
def import_json(payload: dict[str, Any] = Body(...), book: BudgetBook = Depends(get_book)):
    state = book.import_payload(payload)
    return ImportResult(
        namespace=book.namespace,
        categories=len(state.categories),
        transactions=len(state.transactions),
        budgets=len(state.budgets),
        settings=len(state.settings),
    )
