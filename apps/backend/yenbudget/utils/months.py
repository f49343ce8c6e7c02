from __future__ import annotations

import re
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.config import settings
from ..errors import ValidationError


MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Tokyo"))
except ZoneInfoNotFoundError:
    LOCAL_ZONE = ZoneInfo("Asia/Tokyo")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


def month_key(value: date) -> str:
    # strftime does not pad years below 1000 on every platform
    return f"{value.year:04d}-{value.month:02d}"


def current_month_key() -> str:
    return month_key(today_local())


def parse_month_key(value: str | None) -> str:
    """Validate a "YYYY-MM" key and return it in canonical form.

    Raises ValidationError instead of letting a typo silently select an
    empty month.
    """
    raw = (value or "").strip()
    match = MONTH_KEY_PATTERN.match(raw)
    if not match:
        raise ValidationError(f"Invalid month key {value!r}; expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise ValidationError(f"Invalid month key {value!r}; month must be 01-12")
    return f"{year:04d}-{month:02d}"


def shift_month(key: str, delta: int) -> str:
    key = parse_month_key(key)
    year, month = int(key[:4]), int(key[5:])
    year += (month - 1 + delta) // 12
    month = (month - 1 + delta) % 12 + 1
    return f"{year:04d}-{month:02d}"


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def months_of_year(year: int) -> list[str]:
    if not 1 <= year <= 9999:
        raise ValidationError(f"Invalid year {year!r}")
    return [f"{year:04d}-{m:02d}" for m in range(1, 13)]
