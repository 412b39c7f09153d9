"""
Two-column (date, local amount) CSV import.

Parsing is all-or-nothing: any bad line rejects the whole upload before a
single row is written. Valid rows go through the reconciliation engine with
one exchange rate for the entire batch.
"""
import logging
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.services.order_import import ReconcileResult, reconcile_orders
from app.services.order_sources import CsvOrderRow, parse_datetime

logger = logging.getLogger(__name__)

_AMOUNT_JUNK = re.compile(r"[^\d.\-]")
_LINE_BREAK = re.compile(r"\r?\n")


class CsvParseError(Exception):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _parse_amount(raw: str) -> Optional[float]:
    sanitized = _AMOUNT_JUNK.sub("", raw)
    if not sanitized:
        return None
    try:
        return float(sanitized)
    except ValueError:
        return None


def _is_header(line: str) -> bool:
    """A first line whose date does not parse or whose amount has no digits is a header."""
    parts = [value.strip() for value in line.split(",")]
    if len(parts) < 2 or not any(ch.isdigit() for ch in parts[1]):
        return True
    try:
        parse_datetime(parts[0])
    except ValueError:
        return True
    return False


def parse_csv_text(text: str) -> List[CsvOrderRow]:
    """Parse `date,amount` lines. Raises CsvParseError listing every bad line."""
    lines = [line.strip() for line in _LINE_BREAK.split(text or "")]
    lines = [line for line in lines if line]
    if not lines:
        raise CsvParseError(["The uploaded file is empty."])

    if _is_header(lines[0]):
        lines = lines[1:]

    rows: List[CsvOrderRow] = []
    errors: List[str] = []
    for index, line in enumerate(lines, start=1):
        parts = [value.strip() for value in line.split(",")]
        raw_date = parts[0] if parts else ""
        raw_amount = parts[1] if len(parts) > 1 else ""
        if not raw_date or not raw_amount:
            errors.append(f"Line {index}: Missing date or amount value.")
            continue
        try:
            processed_at = parse_datetime(raw_date)
        except ValueError:
            errors.append(f'Line {index}: Invalid date "{raw_date}".')
            continue
        amount = _parse_amount(raw_amount)
        if amount is None:
            errors.append(f'Line {index}: Invalid amount value "{raw_amount}".')
            continue
        rows.append(CsvOrderRow(line=index, processed_at=processed_at, original_amount=amount))

    if errors:
        raise CsvParseError(errors)
    return rows


def import_csv_rows(
    db: Session,
    rows: List[CsvOrderRow],
    exchange_rate: Optional[float] = None,
    venue_name: Optional[str] = None,
    customer_name: Optional[str] = None,
    created_by_id: Optional[int] = None,
    venue_id: Optional[int] = None,
) -> ReconcileResult:
    """Rows go to `venue_id` when given, otherwise to the venue named `venue_name` (created if missing)."""
    rate = exchange_rate if exchange_rate and exchange_rate > 0 else settings.DEFAULT_EXCHANGE_RATE
    if venue_id is None:
        venue_name = (venue_name or "").strip() or settings.DEFAULT_VENUE_NAME
    else:
        venue_name = None
    customer_name = (customer_name or "").strip() or "CSV Import"
    drafts = [
        row.to_order_draft(rate, venue_name=venue_name, customer_name=customer_name, venue_id=venue_id)
        for row in rows
    ]
    logger.info("Importing %s CSV rows into %s at rate %s", len(drafts), venue_id or venue_name, rate)
    return reconcile_orders(db, drafts, created_by_id=created_by_id)


def import_csv_orders(
    db: Session,
    text: str,
    exchange_rate: Optional[float] = None,
    venue_name: Optional[str] = None,
    customer_name: Optional[str] = None,
    created_by_id: Optional[int] = None,
    venue_id: Optional[int] = None,
) -> ReconcileResult:
    rows = parse_csv_text(text)
    return import_csv_rows(db, rows, exchange_rate, venue_name, customer_name, created_by_id, venue_id)
