from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Query

from .config import settings
from ..services.book_service import BookRegistry, BudgetBook, build_store


@lru_cache(maxsize=1)
def get_books() -> BookRegistry:
    """Process-wide registry of hydrated namespaces.

    Tests override this dependency to point at a throwaway store.
    """
    return BookRegistry(build_store(settings))


def get_book(
    namespace: str = Query(settings.DEFAULT_NAMESPACE, max_length=64),
    books: BookRegistry = Depends(get_books),
) -> BudgetBook:
    return books.get(namespace)
