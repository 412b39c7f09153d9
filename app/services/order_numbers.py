"""
Human-facing order number allocation (`#1001`, `#1002`, ...).

The next number is derived from the most recently created order (highest id).
Allocation plus the inserts it numbers must run inside `order_number_lock` so
concurrent imports cannot hand out the same number; `orders.order_number` is
unique as a last line of defence.
"""
import logging
import re
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.models import Order

logger = logging.getLogger(__name__)

ORDER_NUMBER_FLOOR = 1000
# Arbitrary constant key for pg_advisory_lock, shared by every allocator.
ADVISORY_LOCK_KEY = 742_001

_DIGITS = re.compile(r"\d+")
_process_lock = threading.RLock()


def extract_order_number(order_number: Optional[str]) -> Optional[int]:
    """Return the last run of digits in `order_number` as an int, or None."""
    if not order_number:
        return None
    digits = _DIGITS.findall(order_number)
    if not digits:
        return None
    return int(digits[-1])


def format_order_number(value: int) -> str:
    return f"#{value}"


def normalize_order_number(raw: Optional[str]) -> Optional[str]:
    """User-supplied numbers are stored as `#<value>` with any leading hashes collapsed."""
    if raw is None:
        return None
    trimmed = raw.strip().lstrip("#").strip()
    if not trimmed:
        return None
    return f"#{trimmed}"


def _current_max(db: Session) -> int:
    last = db.query(Order.order_number).order_by(Order.id.desc()).first()
    value = extract_order_number(last[0]) if last else None
    return value if value is not None else ORDER_NUMBER_FLOOR


def allocate_order_numbers(db: Session, count: int) -> List[str]:
    """Allocate `count` consecutive numbers following the latest order's number."""
    if count <= 0:
        return []
    current = _current_max(db)
    numbers = [format_order_number(current + offset) for offset in range(1, count + 1)]
    logger.debug("Allocated order numbers %s..%s", numbers[0], numbers[-1])
    return numbers


def generate_next_order_number(db: Session) -> str:
    return allocate_order_numbers(db, 1)[0]


@contextmanager
def order_number_lock(db: Session) -> Iterator[None]:
    """
    Serialize order-number allocation. Holds a process-wide lock and, on
    PostgreSQL, a session-level advisory lock taken on a dedicated connection
    so it survives the per-item commits made while it is held.
    """
    with _process_lock:
        bind = db.get_bind()
        if bind.dialect.name != "postgresql":
            yield
            return
        with bind.connect() as conn:
            conn.execute(text("SELECT pg_advisory_lock(:key)"), {"key": ADVISORY_LOCK_KEY})
            try:
                yield
            finally:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": ADVISORY_LOCK_KEY})
                conn.commit()
