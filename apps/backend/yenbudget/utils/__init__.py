"""
Utils package
"""

from .normalization import normalize_category_name, normalize_setting_key, is_valid_namespace

__all__ = [
    "normalize_category_name",
    "normalize_setting_key",
    "is_valid_namespace",
]
