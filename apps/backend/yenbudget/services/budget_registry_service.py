from __future__ import annotations

from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from ..domain import DEFAULT_CATEGORIES, Budget
from ..errors import DuplicateError, InUseError, NotFoundError, ValidationError
from ..utils.normalization import CATEGORY_NAME_MAX_LENGTH, normalize_category_name
from .ledger_service import TransactionLedger


class BudgetRegistry:
    """Category list plus the category -> budget mapping.

    Categories are soft references by name. Deleting one that a transaction
    still uses is refused (``InUseError``); nothing is reassigned. A budget
    for an unknown category registers the category, so budgets never point
    at a deleted one.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        categories: Iterable[str] = DEFAULT_CATEGORIES,
        budgets: Iterable[Budget] = (),
    ) -> None:
        self.ledger = ledger
        self._categories: list[str] = []
        self._budgets: dict[str, Budget] = {}
        for name in categories:
            self.ensure_category(name)
        for budget in budgets:
            self.ensure_category(budget.category)
            self._budgets[budget.category] = budget

    # ---- Categories ------------------------------------------------------
    def categories(self) -> list[str]:
        return list(self._categories)

    def has_category(self, name: str) -> bool:
        return normalize_category_name(name) in self._categories

    def add_category(self, name: str) -> str:
        clean = self._check_name(name)
        if clean in self._categories:
            raise DuplicateError(f"Category {clean!r} already exists")
        self._categories.append(clean)
        return clean

    def ensure_category(self, name: str) -> str:
        clean = self._check_name(name)
        if clean not in self._categories:
            self._categories.append(clean)
        return clean

    def delete_category(self, name: str) -> None:
        clean = normalize_category_name(name)
        if clean not in self._categories:
            raise NotFoundError(f"Category {name!r} not found")
        refs = len(self.ledger.for_category(clean))
        if refs:
            raise InUseError(
                f"Category {clean!r} is used by {refs} transaction(s)",
                references=refs,
            )
        self._categories.remove(clean)
        self._budgets.pop(clean, None)

    # ---- Budgets ---------------------------------------------------------
    def get(self, category: str) -> Budget:
        clean = normalize_category_name(category)
        try:
            return self._budgets[clean]
        except KeyError:
            raise NotFoundError(f"No budget for category {category!r}") from None

    def all(self) -> list[Budget]:
        return [self._budgets[name] for name in sorted(self._budgets)]

    def __contains__(self, category: object) -> bool:
        return isinstance(category, str) and normalize_category_name(category) in self._budgets

    def upsert(self, category: str, limit_amount: int) -> Budget:
        """Create or overwrite a limit; the manual override survives."""
        clean = self._check_name(category)
        existing = self._budgets.get(clean)
        budget = self._build(
            category=clean,
            limit_amount=limit_amount,
            manual_spent=existing.manual_spent if existing else None,
        )
        self.ensure_category(clean)
        self._budgets[clean] = budget
        return budget

    def set_manual_spent(self, category: str, amount: int) -> Budget:
        current = self.get(category)
        if amount is None:
            raise ValidationError("Manual spent amount is required")
        budget = self._build(**{**current.model_dump(), "manual_spent": amount})
        self._budgets[budget.category] = budget
        return budget

    def clear_manual_spent(self, category: str) -> Budget:
        current = self.get(category)
        budget = current.model_copy(update={"manual_spent": None})
        self._budgets[budget.category] = budget
        return budget

    def delete(self, category: str) -> None:
        clean = normalize_category_name(category)
        if clean not in self._budgets:
            raise NotFoundError(f"No budget for category {category!r}")
        del self._budgets[clean]

    # ---- Helpers ---------------------------------------------------------
    @staticmethod
    def _check_name(name: str) -> str:
        clean = normalize_category_name(name)
        if not clean:
            raise ValidationError("Category name is required")
        if len(clean) > CATEGORY_NAME_MAX_LENGTH:
            raise ValidationError(f"Category name must be at most {CATEGORY_NAME_MAX_LENGTH} characters")
        return clean

    @staticmethod
    def _build(**fields: Any) -> Budget:
        try:
            return Budget.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid budget") from None
