"""Human-readable document numbers: PREFIX-YYYY-NNNNNN, sequence restarting each year."""

from datetime import date
from typing import Iterable, Optional

PURCHASE_REQUEST_PREFIX = "PR"
PURCHASE_ORDER_PREFIX = "PO"


def format_document_number(prefix: str, sequence: int, on: Optional[date] = None) -> str:
    year = (on or date.today()).year
    return f"{prefix}-{year}-{sequence:06d}"


def next_document_number(
    prefix: str, existing_numbers: Iterable[str], on: Optional[date] = None
) -> str:
    """Highest sequence already issued for the same prefix and year, plus one."""
    year = (on or date.today()).year
    stem = f"{prefix}-{year}-"
    issued = [
        int(number[len(stem):])
        for number in existing_numbers
        if number and number.startswith(stem) and number[len(stem):].isdigit()
    ]
    return format_document_number(prefix, max(issued, default=0) + 1, on)
