from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.logger import get_logger
from ..domain import DEFAULT_CATEGORIES, STATE_VERSION, Budget, Goal, PersistedState, Transaction
from ..errors import StorageError, ValidationError
from ..utils.normalization import is_valid_namespace


logger = get_logger("storage")

# Top-level keys of a legacy browser blob that are structure, not preferences
_STRUCTURAL_KEYS = {
    "version",
    "categories",
    "tx",
    "transactions",
    "budgets",
    "goal",
    "goals",
    "settings",
    "budgetTracking",
    "exportDate",
    "generated_at",
    "namespace",
}

# Computed fields that are derived on load and never written
_DUMP_EXCLUDE: dict[str, Any] = {
    "transactions": {"__all__": {"month"}},
    "goal": {"target_savings"},
}


def _check_namespace(namespace: str) -> str:
    if not is_valid_namespace(namespace):
        raise ValidationError(f"Invalid namespace {namespace!r}")
    return namespace


class StateStore:
    """Persists one namespace's full state at a time."""

    backend = "abstract"

    def load(self, namespace: str) -> PersistedState:
        """Return the saved state, or the default seed when nothing is saved."""
        raise NotImplementedError

    def save(self, namespace: str, state: PersistedState) -> None:
        """Persist ``state`` all-or-nothing; raise StorageError on failure."""
        raise NotImplementedError

    def exists(self, namespace: str) -> bool:
        raise NotImplementedError


class SqlStateStore(StateStore):
    """State kept in SQL tables, one row set per namespace.

    A save rewrites the namespace's rows inside a single database
    transaction, so readers see either the old state or the new one.
    """

    backend = "sql"

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def exists(self, namespace: str) -> bool:
        _check_namespace(namespace)
        try:
            with self.session_factory() as db:
                return db.get(models.StateNamespace, namespace) is not None
        except SQLAlchemyError as exc:
            logger.exception("Failed to look up namespace %s", namespace)
            raise StorageError(f"Failed to read namespace {namespace!r}") from exc

    def load(self, namespace: str) -> PersistedState:
        _check_namespace(namespace)
        try:
            with self.session_factory() as db:
                ns = db.get(models.StateNamespace, namespace)
                if ns is None:
                    logger.debug("Namespace %s not found, using default seed", namespace)
                    return PersistedState.default()
                categories = (
                    db.query(models.Category)
                    .filter(models.Category.namespace == namespace)
                    .order_by(models.Category.position)
                    .all()
                )
                txns = (
                    db.query(models.Transaction)
                    .filter(models.Transaction.namespace == namespace)
                    .order_by(models.Transaction.position)
                    .all()
                )
                budgets = (
                    db.query(models.Budget)
                    .filter(models.Budget.namespace == namespace)
                    .order_by(models.Budget.category)
                    .all()
                )
                settings_rows = (
                    db.query(models.Setting)
                    .filter(models.Setting.namespace == namespace)
                    .order_by(models.Setting.key)
                    .all()
                )
                return PersistedState(
                    version=ns.version,
                    categories=[c.name for c in categories],
                    transactions=[
                        Transaction(
                            id=t.id,
                            type=t.type,
                            category=t.category,
                            amount=t.amount,
                            date=t.occurred_on,
                            note=t.note or "",
                            recurring=t.recurring,
                            next_occurrence=t.next_occurrence,
                        )
                        for t in txns
                    ],
                    budgets=[
                        Budget(category=b.category, limit_amount=b.limit_amount, manual_spent=b.manual_spent)
                        for b in budgets
                    ],
                    goal=Goal(
                        target_income=ns.goal_target_income,
                        target_savings_rate_percent=ns.goal_savings_rate,
                    ),
                    settings={s.key: s.value for s in settings_rows},
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load namespace %s", namespace)
            raise StorageError(f"Failed to load namespace {namespace!r}") from exc
        except PydanticValidationError as exc:
            logger.error("Stored rows for namespace %s are invalid: %s", namespace, exc)
            raise StorageError(f"Stored state for {namespace!r} is corrupt") from exc

    def save(self, namespace: str, state: PersistedState) -> None:
        _check_namespace(namespace)
        try:
            with self.session_factory() as db, db.begin():
                ns = db.get(models.StateNamespace, namespace)
                if ns is None:
                    ns = models.StateNamespace(name=namespace, version=state.version)
                    db.add(ns)
                ns.version = state.version
                ns.goal_target_income = state.goal.target_income
                ns.goal_savings_rate = state.goal.target_savings_rate_percent
                db.flush()

                for model in (models.Category, models.Transaction, models.Budget, models.Setting):
                    db.query(model).filter(model.namespace == namespace).delete(synchronize_session=False)

                db.add_all(self._rows(namespace, state))
        except (SQLAlchemyError, OverflowError) as exc:
            logger.exception("Failed to save namespace %s", namespace)
            raise StorageError(f"Failed to save namespace {namespace!r}") from exc
        logger.debug(
            "Saved namespace %s (%d transactions, %d budgets)",
            namespace,
            len(state.transactions),
            len(state.budgets),
        )

    @staticmethod
    def _rows(namespace: str, state: PersistedState) -> Iterable[Any]:
        for position, name in enumerate(state.categories):
            yield models.Category(namespace=namespace, name=name, position=position)
        for position, t in enumerate(state.transactions):
            yield models.Transaction(
                namespace=namespace,
                id=t.id,
                position=position,
                occurred_on=t.date,
                type=t.type,
                category=t.category,
                amount=t.amount,
                note=t.note,
                recurring=t.recurring,
                next_occurrence=t.next_occurrence,
            )
        for b in state.budgets:
            yield models.Budget(
                namespace=namespace,
                category=b.category,
                limit_amount=b.limit_amount,
                manual_spent=b.manual_spent,
            )
        for key, value in state.settings.items():
            yield models.Setting(namespace=namespace, key=key, value=value)


class JsonFileStateStore(StateStore):
    """State kept as one JSON document per namespace.

    This is the server-side stand-in for the browser's local storage blob.
    Writes go to a temporary file that replaces the target in one rename.
    """

    backend = "json"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, namespace: str) -> Path:
        return self.directory / f"{_check_namespace(namespace)}.json"

    def exists(self, namespace: str) -> bool:
        return self.path_for(namespace).exists()

    def load(self, namespace: str) -> PersistedState:
        path = self.path_for(namespace)
        if not path.exists():
            logger.debug("No state file for %s, using default seed", namespace)
            return PersistedState.default()
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
            return PersistedState.model_validate(migrate_state(payload))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Failed to read %s", path)
            raise StorageError(f"Failed to load namespace {namespace!r}") from exc
        except (PydanticValidationError, ValidationError) as exc:
            logger.error("State file %s is invalid: %s", path, exc)
            raise StorageError(f"Stored state for {namespace!r} is corrupt") from exc

    def save(self, namespace: str, state: PersistedState) -> None:
        path = self.path_for(namespace)
        body = dump_state(state)
        tmp_name: str | None = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, prefix=f".{namespace}.", suffix=".tmp", delete=False
            ) as handle:
                tmp_name = handle.name
                handle.write(body)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            logger.exception("Failed to write %s", path)
            raise StorageError(f"Failed to save namespace {namespace!r}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_name)
        logger.debug("Saved namespace %s to %s", namespace, path)


def dump_state(state: PersistedState) -> str:
    return json.dumps(
        state.model_dump(mode="json", exclude=_DUMP_EXCLUDE),
        ensure_ascii=False,
        indent=2,
        sort_keys=True,
    )


# ---- Legacy blob migration -------------------------------------------------


def migrate_state(payload: Any) -> dict[str, Any]:
    """Bring a stored or imported blob up to the current state layout.

    Version 1 is the browser local-storage shape: transactions bucketed by
    month under ``tx``, budgets as either a bare number or
    ``{amount, manualSpent, autoSpent}``, ``goal``/``goals`` as
    ``{income, rate}`` and display preferences at the top level. Server
    export rows (integer ids, ``next_date``, ``{category, amount, month}``
    budgets, ``{key, value}`` settings) are accepted as well.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("State payload must be a JSON object")
    version = payload.get("version") or 1
    if not isinstance(version, int) or version < 1:
        raise ValidationError(f"Unsupported state version {version!r}")
    if version > STATE_VERSION:
        raise ValidationError(f"State version {version} is newer than supported version {STATE_VERSION}")
    if version == STATE_VERSION:
        return dict(payload)

    out: dict[str, Any] = {"version": STATE_VERSION}

    if "categories" in payload:
        categories = payload.get("categories") or []
        out["categories"] = [_category_name(c) for c in categories if _category_name(c)]
    else:
        out["categories"] = list(DEFAULT_CATEGORIES)

    raw_tx = payload.get("tx", payload.get("transactions")) or []
    if isinstance(raw_tx, Mapping):
        flat: list[Any] = []
        for month in sorted(raw_tx):
            bucket = raw_tx[month]
            if isinstance(bucket, list):
                flat.extend(bucket)
        raw_tx = flat
    seen: set[str] = set()
    transactions = []
    for item in raw_tx:
        if not isinstance(item, Mapping):
            continue
        txn = _migrate_transaction(item)
        # the bucketed blob could hold the same entry twice after a bad move
        if txn.get("id") is not None:
            if txn["id"] in seen:
                continue
            seen.add(txn["id"])
        transactions.append(txn)
    out["transactions"] = transactions

    out["budgets"] = _migrate_budgets(payload.get("budgets") or {})

    goal = payload.get("goal") or payload.get("goals") or {}
    if isinstance(goal, Mapping):
        out["goal"] = {
            "target_income": _whole(goal.get("target_income", goal.get("income", 0))) or 0,
            "target_savings_rate_percent": _whole(
                goal.get("target_savings_rate_percent", goal.get("rate", goal.get("savingsRate", 20)))
            ) or 0,
        }

    out["settings"] = _migrate_settings(payload)
    return out


def _category_name(value: Any) -> str:
    if isinstance(value, Mapping):
        value = value.get("name")
    return value.strip() if isinstance(value, str) else ""


def _whole(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(round(float(value)))
        except ValueError:
            return value
    return value


def _migrate_transaction(item: Mapping[str, Any]) -> dict[str, Any]:
    txn: dict[str, Any] = {
        "type": str(item.get("type", "")).strip().lower(),
        "category": item.get("category"),
        "amount": _whole(item.get("amount")),
        "date": item.get("date"),
        "note": item.get("note") or "",
    }
    if item.get("id") is not None:
        txn["id"] = str(item["id"])
    if isinstance(txn["date"], str) and len(txn["date"]) > 10:
        txn["date"] = txn["date"][:10]

    recurring = item.get("recurring")
    if recurring is True or recurring == 1:
        txn["recurring"] = "monthly"
    elif not recurring:
        txn["recurring"] = "none"
    else:
        txn["recurring"] = str(recurring).strip().lower()

    nxt = item.get("next_occurrence", item.get("next", item.get("next_date")))
    txn["next_occurrence"] = nxt or None
    return txn


def _migrate_budgets(raw: Any) -> list[dict[str, Any]]:
    """Collapse legacy budgets into one global budget per category.

    Server rows are stored per month; the row for the latest month wins
    whatever the list order. Rows without a month keep last-one-wins.
    """
    budgets: dict[str, dict[str, Any]] = {}
    latest: dict[str, str] = {}
    if isinstance(raw, Mapping):
        entries = list(raw.items())
    elif isinstance(raw, list):
        entries = [(row.get("category"), row) for row in raw if isinstance(row, Mapping)]
    else:
        entries = []
    for category, value in entries:
        name = _category_name(category)
        if not name:
            continue
        month = value.get("month") if isinstance(value, Mapping) else None
        if isinstance(month, str) and month < latest.get(name, ""):
            continue
        if isinstance(value, Mapping):
            limit = value.get("limit_amount", value.get("limitAmount", value.get("amount", 0)))
            manual = value.get("manual_spent", value.get("manualSpent"))
        else:
            limit, manual = value, None
        manual = _whole(manual)
        budgets[name] = {
            "category": name,
            "limit_amount": _whole(limit) or 0,
            # the browser stored 0 for "never entered"
            "manual_spent": manual if manual else None,
        }
        if isinstance(month, str):
            latest[name] = month
    return list(budgets.values())


def _migrate_settings(payload: Mapping[str, Any]) -> dict[str, Any]:
    settings: dict[str, Any] = {}
    raw = payload.get("settings")
    if isinstance(raw, Mapping):
        settings.update(raw)
    elif isinstance(raw, list):
        for row in raw:
            if not isinstance(row, Mapping) or not row.get("key"):
                continue
            value = row.get("value")
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    pass
            settings[str(row["key"])] = value
    for key, value in payload.items():
        if key not in _STRUCTURAL_KEYS and key not in settings:
            settings[key] = value
    return settings
