"""
Normalization helpers

Category names, namespaces and setting keys arrive from forms and legacy
blobs with stray whitespace and full-width characters; these helpers bring
them into one canonical form before they are compared or stored.
"""

import re
import unicodedata


CATEGORY_NAME_MAX_LENGTH = 30
NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")


def normalize_category_name(value: str | None) -> str:
    """
    Category name normalization

    - NFKC normalization (full-width letters and digits become ASCII)
    - leading/trailing whitespace removed
    - internal whitespace runs collapsed to a single space

    Case is preserved: "Food" and "food" are different categories.

    Args:
        value: raw category name

    Returns:
        normalized name, or "" when nothing is left

    Example:
        >>> normalize_category_name("  Ｆｏｏｄ ")
        "Food"
        >>> normalize_category_name("Eating   out")
        "Eating out"
    """
    if not value:
        return ""

    normalized = unicodedata.normalize("NFKC", value)
    normalized = re.sub(r"\s+", " ", normalized, flags=re.UNICODE)
    return normalized.strip()


def normalize_setting_key(value: str | None) -> str:
    """Trim a settings key; keys are otherwise stored verbatim."""
    if not value:
        return ""
    return value.strip()


def is_valid_namespace(value: str | None) -> bool:
    """
    Namespace check

    A namespace doubles as a JSON file name, so it is limited to ASCII
    letters, digits, "_", "-" and "." and may not start with a separator.

    Example:
        >>> is_valid_namespace("default")
        True
        >>> is_valid_namespace("../etc")
        False
    """
    if not value:
        return False
    return bool(NAMESPACE_PATTERN.match(value))
