"""
TransactionLedger tests
"""

import pytest
from datetime import date

from yenbudget.domain import Recurrence, Transaction, TxnType
from yenbudget.errors import DuplicateError, NotFoundError, ValidationError
from yenbudget.services import TransactionLedger


def _txn(**overrides):
    data = {"type": "expense", "category": "Food", "amount": 1200, "date": "2024-03-05"}
    data.update(overrides)
    return data


class TestAdd:
    def test_generates_id_and_month(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn())
        assert txn.id
        assert txn.month == "2024-03"
        assert txn.type == TxnType.EXPENSE
        assert txn.recurring == Recurrence.NONE
        assert len(ledger) == 1

    def test_keeps_given_id(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn(id="abc"))
        assert txn.id == "abc"
        assert "abc" in ledger

    def test_duplicate_id(self):
        ledger = TransactionLedger()
        ledger.add(_txn(id="abc"))
        with pytest.raises(DuplicateError):
            ledger.add(_txn(id="abc"))

    @pytest.mark.parametrize("amount", [0, -5, True, "lots"])
    def test_rejects_bad_amount(self, amount):
        ledger = TransactionLedger()
        with pytest.raises(ValidationError):
            ledger.add(_txn(amount=amount))
        assert len(ledger) == 0

    def test_rejects_bad_type(self):
        with pytest.raises(ValidationError):
            TransactionLedger().add(_txn(type="transfer"))

    def test_rejects_blank_category(self):
        with pytest.raises(ValidationError):
            TransactionLedger().add(_txn(category="   "))

    def test_normalizes_category_and_note(self):
        txn = TransactionLedger().add(_txn(category=" Ｆｏｏｄ ", note="  lunch "))
        assert txn.category == "Food"
        assert txn.note == "lunch"

    def test_constructor_rejects_duplicate_ids(self):
        t = Transaction(id="x", type="income", category="Salary", amount=1, date=date(2024, 1, 1))
        with pytest.raises(DuplicateError):
            TransactionLedger([t, t])


class TestUpdate:
    def test_date_change_moves_month(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn(date="2024-03-31"))
        assert [t.id for t in ledger.for_month("2024-03")] == [txn.id]

        updated = ledger.update(txn.id, {"date": "2024-04-01"})

        assert updated.month == "2024-04"
        assert ledger.for_month("2024-03") == []
        assert [t.id for t in ledger.for_month("2024-04")] == [txn.id]
        assert len(ledger) == 1

    def test_failed_update_leaves_entry(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn())
        with pytest.raises(ValidationError):
            ledger.update(txn.id, {"amount": -1})
        assert ledger.get(txn.id) == txn

    def test_id_is_immutable(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn())
        with pytest.raises(ValidationError):
            ledger.update(txn.id, {"id": "other"})

    def test_missing(self):
        with pytest.raises(NotFoundError):
            TransactionLedger().update("nope", {"amount": 1})

    def test_empty_patch_is_noop(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn())
        assert ledger.update(txn.id, {}) is txn


class TestQueries:
    @pytest.fixture
    def ledger(self):
        ledger = TransactionLedger()
        ledger.add(_txn(id="a", date="2024-03-01", amount=100))
        ledger.add(_txn(id="b", date="2024-03-20", amount=200, category="Transport"))
        ledger.add(_txn(id="c", date="2024-04-02", type="income", category="Salary", amount=300000))
        return ledger

    def test_all_newest_first(self, ledger):
        assert [t.id for t in ledger.all()] == ["c", "b", "a"]

    def test_months(self, ledger):
        assert ledger.months() == ["2024-03", "2024-04"]

    def test_filter_combinations(self, ledger):
        assert [t.id for t in ledger.filter(month="2024-03")] == ["b", "a"]
        assert [t.id for t in ledger.filter(category="Transport")] == ["b"]
        assert [t.id for t in ledger.filter(type="income")] == ["c"]
        assert ledger.filter(month="2024-04", type="expense") == []

    def test_filter_bad_type(self, ledger):
        with pytest.raises(ValidationError):
            ledger.filter(type="gift")

    def test_for_month_rejects_bad_key(self, ledger):
        with pytest.raises(ValidationError):
            ledger.for_month("2024-3")

    def test_delete(self, ledger):
        ledger.delete("b")
        assert "b" not in ledger
        assert [t.id for t in ledger.for_month("2024-03")] == ["a"]
        with pytest.raises(NotFoundError):
            ledger.delete("b")
        with pytest.raises(NotFoundError):
            ledger.get("b")

    def test_year_below_1000_keeps_padded_month(self):
        ledger = TransactionLedger()
        txn = ledger.add(_txn(date="0999-01-10"))
        assert txn.month == "0999-01"
        assert [t.id for t in ledger.for_month("0999-01")] == [txn.id]
        assert ledger.months() == ["0999-01"]

    def test_each_transaction_in_exactly_one_month(self, ledger):
        ledger.update("a", {"date": "2024-04-15"})
        ledger.update("c", {"date": "2023-12-31"})
        seen = [t.id for m in ledger.months() for t in ledger.for_month(m)]
        assert sorted(seen) == sorted(t.id for t in ledger)
        assert len(seen) == len(set(seen))
