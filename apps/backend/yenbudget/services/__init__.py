"""
Services package

Ledger, budget registry, aggregation, storage and the per-namespace
BudgetBook controller that ties them together.
"""

from .ledger_service import TransactionLedger
from .budget_registry_service import BudgetRegistry
from .aggregation_service import AggregationService
from .storage_service import StateStore, SqlStateStore, JsonFileStateStore, migrate_state
from .book_service import BudgetBook, BookRegistry, build_store

__all__ = [
    "TransactionLedger",
    "BudgetRegistry",
    "AggregationService",
    "StateStore",
    "SqlStateStore",
    "JsonFileStateStore",
    "migrate_state",
    "BudgetBook",
    "BookRegistry",
    "build_store",
]
