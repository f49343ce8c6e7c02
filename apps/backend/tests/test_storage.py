"""
State store, legacy migration and BudgetBook persistence tests
"""

import gc
import json
import weakref
import pytest
from datetime import date

from yenbudget.domain import DEFAULT_CATEGORIES, STATE_VERSION, Budget, Goal, PersistedState, Recurrence, Transaction, TxnType
from yenbudget.errors import InUseError, NotFoundError, StorageError, ValidationError
from yenbudget.services import BudgetBook, BookRegistry, JsonFileStateStore, StateStore, migrate_state


def _state() -> PersistedState:
    return PersistedState(
        categories=["Food", "Salary", "Travel"],
        transactions=[
            Transaction(id="t1", type="income", category="Salary", amount=300000, date=date(2025, 1, 25)),
            Transaction(
                id="t2",
                type="expense",
                category="Food",
                amount=1200,
                date=date(2025, 1, 3),
                note="ramen",
                recurring=Recurrence.MONTHLY,
                next_occurrence=date(2025, 2, 3),
            ),
        ],
        budgets=[Budget(category="Food", limit_amount=30000, manual_spent=5000), Budget(category="Salary", limit_amount=0)],
        goal=Goal(target_income=300000, target_savings_rate_percent=25),
        settings={"theme": "dark", "widgets": ["summary", "trend"]},
    )


class FailingStore(StateStore):
    """Loads the default seed and refuses every save."""

    backend = "failing"

    def __init__(self):
        self.saves = 0

    def load(self, namespace):
        return PersistedState.default()

    def save(self, namespace, state):
        self.saves += 1
        raise StorageError("disk full")

    def exists(self, namespace):
        return False


class TestSqlStateStore:
    def test_missing_namespace_is_default_seed(self, sql_store):
        assert not sql_store.exists("fresh")
        assert sql_store.load("fresh") == PersistedState.default()

    def test_round_trip(self, sql_store):
        state = _state()
        sql_store.save("home", state)
        assert sql_store.exists("home")
        loaded = sql_store.load("home")
        assert loaded == state
        sql_store.save("home", loaded)
        assert sql_store.load("home") == state

    def test_namespaces_are_isolated(self, sql_store):
        sql_store.save("a", _state())
        sql_store.save("b", PersistedState(categories=["Food"]))
        assert len(sql_store.load("a").transactions) == 2
        assert sql_store.load("b").transactions == []

    def test_save_replaces_rows(self, sql_store):
        sql_store.save("home", _state())
        sql_store.save("home", PersistedState())
        assert sql_store.load("home") == PersistedState()

    def test_rejects_bad_namespace(self, sql_store):
        with pytest.raises(ValidationError):
            sql_store.load("../x")

    def test_out_of_range_amount_is_storage_error(self, sql_store):
        huge = Transaction.model_construct(
            id="huge", type=TxnType.EXPENSE, category="Food", amount=2**64, date=date(2025, 1, 1),
            note="", recurring=Recurrence.NONE, next_occurrence=None,
        )
        with pytest.raises(StorageError):
            sql_store.save("home", PersistedState(transactions=[huge]))
        assert not sql_store.exists("home")


class TestJsonFileStateStore:
    def test_round_trip(self, tmp_path):
        store = JsonFileStateStore(tmp_path)
        state = _state()
        store.save("home", state)
        assert store.path_for("home").exists()
        first = store.path_for("home").read_bytes()

        loaded = store.load("home")
        assert loaded == state
        store.save("home", loaded)
        assert store.path_for("home").read_bytes() == first

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileStateStore(tmp_path)
        store.save("home", _state())
        assert [p.name for p in tmp_path.iterdir()] == ["home.json"]

    def test_missing_file_is_default(self, tmp_path):
        assert JsonFileStateStore(tmp_path).load("nobody") == PersistedState.default()

    def test_corrupt_file(self, tmp_path):
        (tmp_path / "home.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileStateStore(tmp_path).load("home")

    def test_reads_legacy_blob(self, tmp_path):
        blob = {"tx": {"2024-05": [{"id": 1, "type": "expense", "category": "Food", "amount": 300, "date": "2024-05-01"}]}}
        (tmp_path / "home.json").write_text(json.dumps(blob), encoding="utf-8")
        state = JsonFileStateStore(tmp_path).load("home")
        assert [t.id for t in state.transactions] == ["1"]


class TestMigrateState:
    def test_browser_blob(self):
        blob = {
            "categories": ["Food", "Transport"],
            "tx": {
                "2024-05": [
                    {"id": "a", "type": "Expense", "category": "Food", "amount": 1200.0, "date": "2024-05-02T00:00:00Z", "recurring": True, "next": "2024-06-02"},
                    {"id": "b", "type": "income", "category": "Salary", "amount": 250000, "date": "2024-05-25"},
                ],
                "2024-06": [
                    {"id": "a", "type": "expense", "category": "Food", "amount": 1200, "date": "2024-05-02"},
                ],
            },
            "budgets": {"Food": {"amount": 40000, "manualSpent": 0, "autoSpent": 1200}, "Transport": 8000},
            "goals": {"income": 250000, "rate": 30},
            "theme": "dark",
        }

        out = migrate_state(blob)
        state = PersistedState.model_validate(out)

        assert out["version"] == STATE_VERSION
        assert [t.id for t in state.transactions] == ["a", "b"]
        first = state.transactions[0]
        assert first.date == date(2024, 5, 2)
        assert first.recurring == Recurrence.MONTHLY
        assert first.next_occurrence == date(2024, 6, 2)
        assert {b.category: (b.limit_amount, b.manual_spent) for b in state.budgets} == {
            "Food": (40000, None),
            "Transport": (8000, None),
        }
        assert state.goal.target_income == 250000
        assert state.goal.target_savings_rate_percent == 30
        assert state.settings == {"theme": "dark"}

    def test_server_export_rows(self):
        blob = {
            "version": 1,
            "transactions": [
                {"id": 7, "type": "expense", "category": "Bills", "amount": 5000, "date": "2024-01-31", "recurring": 0, "next_date": None},
            ],
            "budgets": [{"category": "Bills", "amount": 9000, "month": "2024-01"}],
            "settings": [{"key": "currency", "value": "\"JPY\""}],
        }
        state = PersistedState.model_validate(migrate_state(blob))
        assert state.transactions[0].id == "7"
        assert state.transactions[0].recurring == Recurrence.NONE
        assert state.budgets == [Budget(category="Bills", limit_amount=9000)]
        assert state.settings == {"currency": "JPY"}

    def test_missing_categories_get_default_seed(self):
        payload = migrate_state({"tx": {}, "budgets": {"Food": 5000}})
        assert payload["categories"] == list(DEFAULT_CATEGORIES)
        assert migrate_state({"categories": []})["categories"] == []

    def test_server_rows_latest_month_wins(self):
        rows = [
            {"category": "Food", "amount": 50000, "month": "2025-02"},
            {"category": "Food", "amount": 1000, "month": "2025-01"},
            {"category": "Bills", "amount": 300, "month": "2024-12"},
            {"category": "Bills", "amount": 700, "month": "2025-01"},
        ]
        state = PersistedState.model_validate(migrate_state({"version": 1, "budgets": rows}))
        limits = {b.category: b.limit_amount for b in state.budgets}
        assert limits == {"Food": 50000, "Bills": 700}

    def test_current_version_passes_through(self):
        payload = {"version": STATE_VERSION, "categories": ["Food"]}
        assert migrate_state(payload) == payload

    def test_future_version(self):
        with pytest.raises(ValidationError):
            migrate_state({"version": STATE_VERSION + 1})

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            migrate_state(["nope"])


class TestBudgetBook:
    def test_writes_persist(self, sql_store):
        book = BudgetBook("home", sql_store)
        txn = book.add_transaction({"type": "expense", "category": "Pets", "amount": 800, "date": "2025-01-04"})
        book.upsert_budget("Pets", 5000)
        book.set_goal(400000, 10)
        book.set_setting("theme", "light")

        reloaded = BudgetBook.load(sql_store, "home")

        assert reloaded.get_transaction(txn.id) == txn
        assert "Pets" in reloaded.categories()
        assert reloaded.budgets()[0].limit_amount == 5000
        assert reloaded.goal.target_savings == 40000
        assert reloaded.settings() == {"theme": "light"}

    def test_failed_save_rolls_back(self):
        store = FailingStore()
        book = BudgetBook("home", store)
        before = book.to_state()

        with pytest.raises(StorageError):
            book.add_transaction({"type": "income", "category": "Salary", "amount": 1, "date": "2025-01-01"})
        with pytest.raises(StorageError):
            book.upsert_budget("Food", 100)
        with pytest.raises(StorageError):
            book.add_category("Pets")

        assert store.saves == 3
        assert book.to_state() == before
        assert book.months() == []

    def test_failed_validation_does_not_save(self):
        store = FailingStore()
        book = BudgetBook("home", store)
        with pytest.raises(ValidationError):
            book.add_transaction({"type": "income", "category": "Salary", "amount": 0, "date": "2025-01-01"})
        assert store.saves == 0

    def test_blocked_category_delete_leaves_everything(self, sql_store):
        book = BudgetBook("home", sql_store)
        txn = book.add_transaction({"type": "expense", "category": "Food", "amount": 800, "date": "2025-01-04"})
        book.upsert_budget("Food", 5000)

        with pytest.raises(InUseError):
            book.delete_category("Food")

        assert "Food" in book.categories()
        assert book.budgets()[0].category == "Food"
        assert book.get_transaction(txn.id) == txn
        assert "Food" in sql_store.load("home").categories

    def test_delete_twice(self, sql_store):
        book = BudgetBook("home", sql_store)
        txn = book.add_transaction({"type": "expense", "category": "Food", "amount": 800, "date": "2025-01-04"})
        book.delete_transaction(txn.id)
        assert book.transactions() == []
        with pytest.raises(NotFoundError):
            book.delete_transaction(txn.id)

    def test_export_and_import(self, sql_store):
        source = BudgetBook("a", sql_store)
        source.replace_state(_state())
        snapshot = source.export_snapshot()
        assert snapshot.namespace == "a"

        target = BudgetBook("b", sql_store)
        target.import_payload(snapshot.model_dump(mode="json"))

        assert target.to_state() == source.to_state()
        assert sql_store.load("b") == sql_store.load("a")

    def test_registry_hydrates_once(self, sql_store):
        books = BookRegistry(sql_store)
        assert books.get("home") is books.get("home")
        with pytest.raises(ValidationError):
            books.get("bad/name")

    def test_registry_keeps_only_stored_namespaces(self, sql_store):
        books = BookRegistry(sql_store)
        ghost = books.get("ghost")
        assert "ghost" not in books
        assert books.get("ghost") is ghost
        assert not sql_store.exists("ghost")

        ghost.add_category("Pets")
        assert "ghost" in books
        assert books.get("ghost") is ghost

        BudgetBook("home", sql_store).add_category("Travel")
        fresh = BookRegistry(sql_store)
        fresh.get("home")
        assert "home" in fresh

    def test_unwritten_namespace_is_dropped_when_released(self, sql_store):
        books = BookRegistry(sql_store)
        ref = weakref.ref(books.get("ghost"))
        gc.collect()
        assert ref() is None
        assert "ghost" not in books
        assert books.get("ghost").categories() == list(DEFAULT_CATEGORIES)
