from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..domain import Transaction, TxnType
from ..errors import DuplicateError, NotFoundError, ValidationError
from ..utils.months import parse_month_key
from ..utils.normalization import normalize_category_name


class TransactionLedger:
    """Authoritative collection of transactions for one namespace.

    Transactions live in a single id-indexed dict (insertion ordered). The
    month grouping is an index derived from it on demand and dropped on
    every write, so a transaction can never sit in two buckets or none.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._entries: dict[str, Transaction] = {}
        self._month_index: dict[str, list[str]] | None = None
        for txn in transactions:
            if txn.id in self._entries:
                raise DuplicateError(f"Duplicate transaction id {txn.id!r}")
            self._entries[txn.id] = txn

    # ---- Mutations -------------------------------------------------------
    def add(self, data: Transaction | Mapping[str, Any]) -> Transaction:
        """Validate and append a transaction; an id is generated when absent."""
        txn = data if isinstance(data, Transaction) else self._validate(data)
        if txn.id in self._entries:
            raise DuplicateError(f"Transaction {txn.id!r} already exists")
        self._entries[txn.id] = txn
        self._month_index = None
        return txn

    def update(self, txn_id: str, patch: Mapping[str, Any]) -> Transaction:
        """Apply a partial update.

        The replacement is fully validated before it is swapped in with one
        assignment, so a failed update leaves the ledger untouched and a date
        change moves the transaction between months in a single step.
        """
        current = self.get(txn_id)
        changes = dict(patch)
        if "id" in changes and changes["id"] != current.id:
            raise ValidationError("Transaction id cannot be changed")
        if not changes:
            return current
        merged = {**current.model_dump(exclude={"month"}), **changes, "id": current.id}
        updated = self._validate(merged)
        self._entries[txn_id] = updated
        self._month_index = None
        return updated

    def delete(self, txn_id: str) -> None:
        if txn_id not in self._entries:
            raise NotFoundError(f"Transaction {txn_id!r} not found")
        del self._entries[txn_id]
        self._month_index = None

    # ---- Queries ---------------------------------------------------------
    def get(self, txn_id: str) -> Transaction:
        try:
            return self._entries[txn_id]
        except KeyError:
            raise NotFoundError(f"Transaction {txn_id!r} not found") from None

    def all(self) -> list[Transaction]:
        """Every transaction, newest date first (ties keep insertion order)."""
        return sorted(self._entries.values(), key=lambda t: t.date, reverse=True)

    def for_month(self, month: str) -> list[Transaction]:
        key = parse_month_key(month)
        ids = self._index().get(key, [])
        return [self._entries[i] for i in ids]

    def for_category(self, category: str) -> list[Transaction]:
        name = normalize_category_name(category)
        return [t for t in self._entries.values() if t.category == name]

    def months(self) -> list[str]:
        """Month keys that currently hold at least one transaction."""
        return sorted(self._index().keys())

    def filter(
        self,
        *,
        month: str | None = None,
        category: str | None = None,
        type: TxnType | str | None = None,
    ) -> list[Transaction]:
        rows = self.for_month(month) if month else list(self._entries.values())
        if category:
            name = normalize_category_name(category)
            rows = [t for t in rows if t.category == name]
        if type:
            try:
                wanted = TxnType(type)
            except ValueError:
                raise ValidationError(f"Invalid transaction type {type!r}") from None
            rows = [t for t in rows if t.type == wanted]
        return sorted(rows, key=lambda t: t.date, reverse=True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, txn_id: object) -> bool:
        return txn_id in self._entries

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._entries.values()))

    # ---- Helpers ---------------------------------------------------------
    def _index(self) -> dict[str, list[str]]:
        if self._month_index is None:
            index: dict[str, list[str]] = {}
            for txn in self._entries.values():
                index.setdefault(txn.month, []).append(txn.id)
            self._month_index = index
        return self._month_index

    @staticmethod
    def _validate(data: Mapping[str, Any]) -> Transaction:
        payload = dict(data)
        if payload.get("id") is None:
            payload.pop("id", None)
        try:
            return Transaction.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid transaction") from None
