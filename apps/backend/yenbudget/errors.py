"""Typed failures raised by the ledger, registry, aggregation and storage layers.

Each error carries the HTTP status the API boundary answers with, so the
services stay free of FastAPI imports.
"""

from __future__ import annotations

from typing import Any


class BudgetError(Exception):
    status_code = 500

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(BudgetError):
    """Bad input shape or range. Never fatal."""

    status_code = 400

    @classmethod
    def from_pydantic(cls, exc: Any, message: str = "Invalid input") -> "ValidationError":
        details = [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        summary = "; ".join(
            f"{'.'.join(d['loc']) or 'value'}: {d['msg']}" for d in details
        )
        return cls(f"{message}: {summary}" if summary else message, errors=details)


class NotFoundError(BudgetError):
    status_code = 404


class DuplicateError(BudgetError):
    status_code = 409


class InUseError(BudgetError):
    """Category deletion blocked by transactions that still reference it."""

    status_code = 409

    def __init__(self, message: str, *, references: int = 0) -> None:
        super().__init__(message)
        self.references = references


class StorageError(BudgetError):
    status_code = 500
