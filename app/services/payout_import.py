"""
Bank transaction -> Payout import with dedup on mercury_transaction_id, and
pushing manually entered payouts to Mercury as debits.
"""
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Payout, utcnow
from app.services.http_client import UpstreamError
from app.services.mercury_service import MercuryClient
from app.services.order_import import CREATED, FAILED, SKIPPED, ItemOutcome
from app.services.order_sources import parse_datetime

logger = logging.getLogger(__name__)


def existing_transaction_ids(db: Session, transaction_ids: Sequence[str]) -> set:
    if not transaction_ids:
        return set()
    rows = db.query(Payout.mercury_transaction_id).filter(Payout.mercury_transaction_id.in_(list(transaction_ids))).all()
    return {row[0] for row in rows if row[0]}


def filter_new_transactions(db: Session, transactions: List[dict], direction: Optional[str] = None) -> Dict[str, object]:
    """Transactions in the payout direction that have not been imported yet."""
    direction = direction or settings.MERCURY_PAYOUT_DIRECTION
    candidates = [t for t in transactions if t.get("direction") == direction]
    imported = existing_transaction_ids(db, [str(t.get("id")) for t in candidates])
    new = [t for t in candidates if str(t.get("id")) not in imported]
    return {
        "transactions": new,
        "count": len(new),
        "totalFetched": len(candidates),
        "alreadyImported": len(candidates) - len(new),
    }


def _description(transaction: dict) -> str:
    counterparty = (transaction.get("counterparty") or {}).get("name") or transaction.get("counterpartyName")
    return transaction.get("memo") or transaction.get("bankDescription") or f"Mercury: {counterparty or 'Unknown'}"


def import_mercury_transactions(
    db: Session,
    transactions: List[dict],
    venue_id: int,
    created_by_id: Optional[int] = None,
    direction: Optional[str] = None,
) -> List[ItemOutcome]:
    """Create one payout per new transaction in `direction`; everything else is skipped."""
    direction = direction or settings.MERCURY_PAYOUT_DIRECTION
    already = existing_transaction_ids(db, [str(t.get("id")) for t in transactions])
    seen: set = set()
    outcomes: List[ItemOutcome] = []

    for transaction in transactions:
        tx_id = str(transaction.get("id"))
        if tx_id in already or tx_id in seen:
            outcomes.append(ItemOutcome(key=tx_id, status=SKIPPED, reason="Already imported"))
            continue
        seen.add(tx_id)
        if transaction.get("direction") != direction:
            outcomes.append(ItemOutcome(key=tx_id, status=SKIPPED, reason=f"Not a {direction} transaction"))
            continue
        try:
            posted = transaction.get("postedAt") or transaction.get("createdAt")
            payout = Payout(
                amount=abs(float(transaction.get("amount") or 0)),
                currency="USD",
                status="Posted",
                description=_description(transaction),
                account="Mercury",
                processed_at=parse_datetime(posted) if posted else utcnow(),
                notes=transaction.get("memo") or None,
                venue_id=venue_id,
                created_by_id=created_by_id,
                mercury_transaction_id=tx_id,
                synced_to_mercury=True,
                synced_at=utcnow(),
            )
            db.add(payout)
            db.commit()
            outcomes.append(ItemOutcome(key=tx_id, status=CREATED))
        except (SQLAlchemyError, TypeError, ValueError) as e:
            db.rollback()
            logger.warning("Failed to import Mercury transaction %s: %s", tx_id, e)
            outcomes.append(ItemOutcome(key=tx_id, status=FAILED, reason=str(e)))

    return outcomes


def summarize(outcomes: List[ItemOutcome]) -> dict:
    return {
        "imported": sum(1 for o in outcomes if o.status == CREATED),
        "skipped": sum(1 for o in outcomes if o.status in (SKIPPED, FAILED)),
        "failed": sum(1 for o in outcomes if o.status == FAILED),
        "total": len(outcomes),
        "outcomes": [o.to_dict() for o in outcomes],
    }


async def sync_payouts_to_mercury(
    db: Session,
    client: MercuryClient,
    account_id: str,
    payout_ids: Optional[Sequence[int]] = None,
) -> dict:
    """Create a Mercury debit for every payout not yet synced, newest first.

    Each payout is committed on its own; a rejected payout stays unsynced and
    is reported in `errors`.
    """
    query = db.query(Payout).filter(Payout.synced_to_mercury.is_(False))
    if payout_ids:
        query = query.filter(Payout.id.in_(list(payout_ids)))
    payouts = query.order_by(Payout.processed_at.desc(), Payout.id.desc()).all()

    synced = failed = 0
    errors: List[str] = []
    for payout in payouts:
        memo = payout.description + (f" - {payout.notes}" if payout.notes else "")
        try:
            transaction = await client.create_transaction(
                account_id,
                amount=payout.amount,
                counterparty_name=payout.venue.name if payout.venue else "Unknown Venue",
                memo=memo,
                posted_at=payout.processed_at.isoformat() + "Z",
                external_id=f"payout-{payout.id}",
            )
            payout.mercury_transaction_id = str(transaction["id"]) if transaction.get("id") else None
            payout.synced_to_mercury = True
            payout.synced_at = utcnow()
            db.commit()
            synced += 1
        except (UpstreamError, SQLAlchemyError) as e:
            db.rollback()
            failed += 1
            logger.warning("Failed to sync payout %s to Mercury: %s", payout.id, e)
            errors.append(f"Payout #{payout.id}: {e}")

    if not payouts:
        message = "No payouts to sync"
    else:
        message = f"Synced {synced} payout(s), {failed} failed"
    return {"message": message, "synced": synced, "failed": failed, "errors": errors}
