from __future__ import annotations

import csv
import io
from typing import Iterable

from ..domain import Recurrence, Transaction


CSV_HEADERS = ["Date", "Type", "Category", "Amount", "Note", "Recurring", "Next Date"]


def transactions_to_csv(transactions: Iterable[Transaction]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                txn.type.value,
                txn.category,
                txn.amount,
                txn.note,
                "Yes" if txn.recurring != Recurrence.NONE else "No",
                txn.next_occurrence.isoformat() if txn.next_occurrence else "",
            ]
        )
    return buffer.getvalue()


def export_filename(prefix: str, stamp: str, extension: str) -> str:
    return f"{prefix}-{stamp}.{extension}"
