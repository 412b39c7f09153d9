"""
Mercury bank integration routes (admin only)
"""
import logging

from cryptography.fernet import InvalidToken
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, require_admin
from app.database import get_db
from app.http.requests import (
    MercuryFetchRequest,
    MercuryImportRequest,
    MercurySettingsRequest,
    MercurySyncRequest,
    MercuryTestRequest,
)
from app.models import MercurySettings, Venue
from app.services.credentials import decrypt_token, encrypt_token, get_mercury_api_key, get_mercury_settings, mask_secret
from app.services.http_client import UpstreamError
from app.services.mercury_service import MercuryClient
from app.services.order_import import FAILED, SKIPPED, ItemOutcome
from app.services.payout_import import (
    existing_transaction_ids,
    filter_new_transactions,
    import_mercury_transactions,
    summarize,
    sync_payouts_to_mercury,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def build_mercury_client(db: Session) -> MercuryClient:
    api_key = get_mercury_api_key(db)
    if not api_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mercury API key is not configured")
    return MercuryClient(api_key)


def build_test_client(api_key: str) -> MercuryClient:
    return MercuryClient(api_key)


def _masked_key(row: MercurySettings):
    try:
        return mask_secret(decrypt_token(row.api_key_encrypted))
    except InvalidToken:
        return None


def _serialize_settings(row: MercurySettings) -> dict:
    if not row:
        return {"configured": False, "enabled": False, "accountId": None, "apiKey": None}
    return {
        "configured": True,
        "enabled": row.enabled,
        "accountId": row.account_id,
        "apiKey": _masked_key(row) if row.api_key_encrypted else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/settings")
async def get_settings(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Mercury configuration with the API key masked"""
    return _serialize_settings(get_mercury_settings(db))


@router.put("/settings")
async def update_settings(
    payload: MercurySettingsRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    row = get_mercury_settings(db)
    api_key = (payload.apiKey or "").strip()
    if row is None:
        if not api_key:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="API key is required")
        row = MercurySettings(api_key_encrypted=encrypt_token(api_key))
        db.add(row)
    elif api_key:
        row.api_key_encrypted = encrypt_token(api_key)
    if payload.accountId is not None:
        row.account_id = payload.accountId or None
    row.enabled = payload.enabled
    db.commit()
    db.refresh(row)
    logger.info("Mercury settings updated (enabled=%s)", row.enabled)
    return _serialize_settings(row)


@router.get("/accounts")
async def list_accounts(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    client = build_mercury_client(db)
    try:
        accounts = await client.get_accounts()
    except UpstreamError as e:
        logger.error("Mercury accounts request failed: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return {
        "accounts": [
            {
                "id": a.get("id"),
                "name": a.get("name") or a.get("nickname"),
                "status": a.get("status"),
                "availableBalance": a.get("availableBalance"),
            }
            for a in accounts
        ]
    }


@router.post("/fetch")
async def fetch_transactions(
    payload: MercuryFetchRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Payout transactions in the range that have not been imported yet"""
    client = build_mercury_client(db)
    try:
        transactions = await client.get_transactions(payload.accountId, payload.startDate, payload.endDate)
    except UpstreamError as e:
        logger.error("Mercury transactions request failed: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return filter_new_transactions(db, transactions)


@router.post("/import")
async def import_transactions(
    payload: MercuryImportRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Create payouts from the selected Mercury transactions"""
    if not db.query(Venue.id).filter(Venue.id == payload.venueId).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    client = build_mercury_client(db)

    already = existing_transaction_ids(db, payload.transactionIds)
    pending = []
    skipped = []
    for tx_id in payload.transactionIds:
        if tx_id in already or tx_id in pending:
            skipped.append(ItemOutcome(key=tx_id, status=SKIPPED, reason="Already imported"))
        else:
            pending.append(tx_id)

    transactions = []
    lookup_failures = []
    for tx_id in pending:
        try:
            transaction = await client.get_transaction(payload.accountId, tx_id)
        except UpstreamError as e:
            logger.warning("Mercury transaction %s could not be fetched: %s", tx_id, e)
            lookup_failures.append(ItemOutcome(key=tx_id, status=FAILED, reason=e.message))
            continue
        transaction.setdefault("id", tx_id)
        transactions.append(transaction)

    outcomes = import_mercury_transactions(db, transactions, payload.venueId, created_by_id=current_user.user_id)
    return summarize(skipped + outcomes + lookup_failures)


@router.post("/test")
async def test_connection(
    payload: MercuryTestRequest,
    current_user: SessionUser = Depends(require_admin)
):
    """Check a Mercury API key before saving it"""
    client = build_test_client(payload.apiKey.strip())
    try:
        accounts = await client.test_connection()
    except UpstreamError as e:
        logger.warning("Mercury connection test failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return {"success": True, "message": "Connection successful", "accountsCount": len(accounts)}


@router.post("/sync")
async def sync_payouts(
    payload: MercurySyncRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Push unsynced payouts to Mercury as debits"""
    row = get_mercury_settings(db)
    if not row or not row.account_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mercury account ID is not configured")
    client = build_mercury_client(db)
    payout_ids = None if payload.syncAll else payload.payoutIds
    return await sync_payouts_to_mercury(db, client, row.account_id, payout_ids)
