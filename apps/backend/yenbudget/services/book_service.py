from __future__ import annotations

import weakref
from contextlib import contextmanager
from functools import wraps
from threading import Lock, RLock
from typing import Any, Callable, Iterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings
from ..core.database import SessionLocal
from ..core.logger import get_logger
from ..domain import (
    Budget,
    BudgetStatus,
    CategoryAmount,
    ExportSnapshot,
    Goal,
    GoalProgress,
    MonthlyTotals,
    MonthOverMonth,
    PersistedState,
    Transaction,
    YearOverYear,
)
from ..errors import StorageError, ValidationError
from ..utils.months import now_local_naive
from ..utils.normalization import is_valid_namespace, normalize_setting_key
from .aggregation_service import TOP_CATEGORY_LIMIT, AggregationService
from .budget_registry_service import BudgetRegistry
from .ledger_service import TransactionLedger
from .storage_service import JsonFileStateStore, SqlStateStore, StateStore, migrate_state


logger = get_logger("book")

SETTING_KEY_MAX_LENGTH = 100


def _locked(method):
    @wraps(method)
    def wrapper(self: "BudgetBook", *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class BudgetBook:
    """Application state for one namespace.

    Owns the ledger, budget registry, savings goal and settings, and is the
    only place they are mutated. Every public call runs under one re-entrant
    lock. A write is persisted before it returns; if persisting fails the
    in-memory state is put back exactly as it was and the StorageError is
    re-raised.
    """

    def __init__(self, namespace: str, store: StateStore, state: PersistedState | None = None) -> None:
        if not is_valid_namespace(namespace):
            raise ValidationError(f"Invalid namespace {namespace!r}")
        self.namespace = namespace
        self.store = store
        self._lock = RLock()
        # called after each committed write, outside the lock
        self.on_commit: Callable[[BudgetBook], None] | None = None
        self._apply_state(state if state is not None else store.load(namespace))

    @classmethod
    def load(cls, store: StateStore, namespace: str) -> "BudgetBook":
        return cls(namespace, store, store.load(namespace))

    # ---- State plumbing --------------------------------------------------
    def _apply_state(self, state: PersistedState) -> None:
        ledger = TransactionLedger(state.transactions)
        registry = BudgetRegistry(ledger, state.categories, state.budgets)
        for txn in ledger:
            registry.ensure_category(txn.category)
        self.ledger = ledger
        self.registry = registry
        self.aggregates = AggregationService(ledger, registry)
        self.goal = state.goal
        self._settings: dict[str, Any] = dict(state.settings)

    @_locked
    def to_state(self) -> PersistedState:
        return PersistedState(
            categories=self.registry.categories(),
            transactions=list(self.ledger),
            budgets=self.registry.all(),
            goal=self.goal,
            settings=dict(self._settings),
        )

    @contextmanager
    def _writing(self, action: str) -> Iterator[None]:
        with self._lock:
            before = self.to_state()
            try:
                yield
                self.store.save(self.namespace, self.to_state())
            except StorageError:
                self._apply_state(before)
                logger.error("%s failed to persist for %s; state rolled back", action, self.namespace)
                raise
            except Exception:
                self._apply_state(before)
                raise
        logger.info("%s committed for %s", action, self.namespace)
        if self.on_commit is not None:
            self.on_commit(self)

    # ---- Transactions ----------------------------------------------------
    def add_transaction(self, data: Mapping[str, Any]) -> Transaction:
        with self._writing("add transaction"):
            txn = self.ledger.add(data)
            self.registry.ensure_category(txn.category)
        return txn

    def update_transaction(self, txn_id: str, patch: Mapping[str, Any]) -> Transaction:
        with self._writing(f"update transaction {txn_id}"):
            txn = self.ledger.update(txn_id, patch)
            self.registry.ensure_category(txn.category)
        return txn

    def delete_transaction(self, txn_id: str) -> None:
        with self._writing(f"delete transaction {txn_id}"):
            self.ledger.delete(txn_id)

    @_locked
    def get_transaction(self, txn_id: str) -> Transaction:
        return self.ledger.get(txn_id)

    @_locked
    def transactions(
        self,
        *,
        month: str | None = None,
        category: str | None = None,
        type: str | None = None,
    ) -> list[Transaction]:
        return self.ledger.filter(month=month, category=category, type=type)

    @_locked
    def months(self) -> list[str]:
        return self.ledger.months()

    # ---- Categories ------------------------------------------------------
    @_locked
    def categories(self) -> list[str]:
        return self.registry.categories()

    @_locked
    def category_usage(self) -> dict[str, int]:
        return self.aggregates.category_usage()

    def add_category(self, name: str) -> str:
        with self._writing("add category"):
            created = self.registry.add_category(name)
        return created

    def delete_category(self, name: str) -> None:
        with self._writing(f"delete category {name}"):
            self.registry.delete_category(name)

    # ---- Budgets ---------------------------------------------------------
    @_locked
    def budgets(self) -> list[Budget]:
        return self.registry.all()

    def upsert_budget(self, category: str, limit_amount: int) -> tuple[Budget, bool]:
        """Returns the budget and whether it did not exist before."""
        with self._writing(f"upsert budget {category}"):
            created = category not in self.registry
            budget = self.registry.upsert(category, limit_amount)
        return budget, created

    def set_manual_spent(self, category: str, amount: int) -> Budget:
        with self._writing(f"set manual spend {category}"):
            budget = self.registry.set_manual_spent(category, amount)
        return budget

    def clear_manual_spent(self, category: str) -> Budget:
        with self._writing(f"clear manual spend {category}"):
            budget = self.registry.clear_manual_spent(category)
        return budget

    def delete_budget(self, category: str) -> None:
        with self._writing(f"delete budget {category}"):
            self.registry.delete(category)

    # ---- Reports ---------------------------------------------------------
    @_locked
    def budget_status(self, category: str, month: str) -> BudgetStatus:
        return self.aggregates.budget_status(category, month)

    @_locked
    def budget_statuses(self, month: str) -> list[BudgetStatus]:
        return self.aggregates.budget_statuses(month)

    @_locked
    def totals_for_month(self, month: str) -> MonthlyTotals:
        return self.aggregates.totals_for_month(month)

    @_locked
    def category_spend(self, month: str) -> dict[str, int]:
        return self.aggregates.category_spend(month)

    @_locked
    def top_categories(self, month: str, limit: int = TOP_CATEGORY_LIMIT) -> list[CategoryAmount]:
        return self.aggregates.top_categories(month, limit)

    @_locked
    def year_over_year(self, year: int) -> YearOverYear:
        return self.aggregates.year_over_year(year)

    @_locked
    def month_over_month(self, month: str) -> MonthOverMonth:
        return self.aggregates.month_over_month(month)

    @_locked
    def monthly_trend(self, end_month: str, months: int = 6) -> list[MonthlyTotals]:
        return self.aggregates.monthly_trend(end_month, months)

    # ---- Goal & settings -------------------------------------------------
    def set_goal(self, target_income: int, target_savings_rate_percent: int) -> Goal:
        try:
            goal = Goal(target_income=target_income, target_savings_rate_percent=target_savings_rate_percent)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid goal") from None
        with self._writing("set goal"):
            self.goal = goal
        return goal

    @_locked
    def goal_progress(self, month: str) -> GoalProgress:
        return self.aggregates.goal_progress(self.goal, month)

    @_locked
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    def set_setting(self, key: str, value: Any) -> Any:
        name = normalize_setting_key(key)
        if not name:
            raise ValidationError("Setting key is required")
        if len(name) > SETTING_KEY_MAX_LENGTH:
            raise ValidationError(f"Setting key must be at most {SETTING_KEY_MAX_LENGTH} characters")
        with self._writing(f"set setting {name}"):
            self._settings[name] = value
        return value

    # ---- Export / import -------------------------------------------------
    @_locked
    def export_snapshot(self) -> ExportSnapshot:
        state = self.to_state()
        return ExportSnapshot(
            **{field: getattr(state, field) for field in PersistedState.model_fields},
            namespace=self.namespace,
            generated_at=now_local_naive(),
        )

    def import_payload(self, payload: Mapping[str, Any]) -> PersistedState:
        """Replace the whole state with an exported or legacy browser blob."""
        try:
            state = PersistedState.model_validate(migrate_state(payload))
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid import payload") from None
        return self.replace_state(state)

    def replace_state(self, state: PersistedState) -> PersistedState:
        with self._writing("replace state"):
            self._apply_state(state)
        return self.to_state()


class BookRegistry:
    """Hands out one BudgetBook per namespace, hydrating on first use.

    Only namespaces that exist in the store, or that receive their first
    write, are kept for the life of the process. A namespace that is merely
    read is shared while some caller still holds it and then dropped, so
    arbitrary ``?namespace=`` values do not accumulate.
    """

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self._books: dict[str, BudgetBook] = {}
        self._transient: weakref.WeakValueDictionary[str, BudgetBook] = weakref.WeakValueDictionary()
        self._lock = Lock()

    def get(self, namespace: str) -> BudgetBook:
        if not is_valid_namespace(namespace):
            raise ValidationError(f"Invalid namespace {namespace!r}")
        with self._lock:
            book = self._books.get(namespace) or self._transient.get(namespace)
            if book is not None:
                return book
            exists = self.store.exists(namespace)
            book = BudgetBook.load(self.store, namespace)
            if exists:
                self._books[namespace] = book
            else:
                book.on_commit = self._adopt
                self._transient[namespace] = book
            logger.debug("Hydrated namespace %s from %s store", namespace, self.store.backend)
            return book

    def _adopt(self, book: BudgetBook) -> None:
        with self._lock:
            self._books.setdefault(book.namespace, book)
            self._transient.pop(book.namespace, None)
        book.on_commit = None

    def __contains__(self, namespace: object) -> bool:
        with self._lock:
            return namespace in self._books

    def evict(self, namespace: str) -> None:
        with self._lock:
            self._books.pop(namespace, None)
            self._transient.pop(namespace, None)


def build_store(config: Settings) -> StateStore:
    if config.STORAGE_BACKEND == "json":
        return JsonFileStateStore(config.JSON_STORAGE_DIR)
    return SqlStateStore(SessionLocal)
