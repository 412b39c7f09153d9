"""
Payout routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.auth import SessionUser, ensure_venue_access, get_current_user, require_admin, scope_to_venues
from app.database import get_db
from app.http.requests import PayoutCreateRequest, PayoutUpdateRequest
from app.models import Payout, Venue, utcnow
from app.services.order_sources import to_naive_utc

router = APIRouter()


def serialize_payout(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "amount": payout.amount,
        "currency": payout.currency,
        "status": payout.status,
        "description": payout.description,
        "account": payout.account,
        "processedAt": payout.processed_at.isoformat() if payout.processed_at else None,
        "notes": payout.notes,
        "venueId": payout.venue_id,
        "venue": {"id": payout.venue.id, "name": payout.venue.name} if payout.venue else None,
        "mercuryTransactionId": payout.mercury_transaction_id,
        "syncedToMercury": payout.synced_to_mercury,
        "syncedAt": payout.synced_at.isoformat() if payout.synced_at else None,
        "createdAt": payout.created_at.isoformat() if payout.created_at else None,
    }


def _get_payout_or_404(db: Session, payout_id: int) -> Payout:
    payout = db.query(Payout).filter(Payout.id == payout_id).first()
    if not payout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")
    return payout


def _require_venue(db: Session, venue_id: int) -> None:
    if not db.query(Venue.id).filter(Venue.id == venue_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")


@router.get("")
async def list_payouts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    venue_id: Optional[int] = Query(None, alias="venueId"),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Payouts of the user's venues, newest first"""
    query = scope_to_venues(db.query(Payout), Payout.venue_id, current_user)
    if venue_id is not None:
        ensure_venue_access(current_user, venue_id)
        query = query.filter(Payout.venue_id == venue_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Payout.description.ilike(pattern),
            Payout.notes.ilike(pattern),
            Payout.account.ilike(pattern),
        ))

    total = query.count()
    payouts = (
        query.order_by(Payout.processed_at.desc(), Payout.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "payouts": [serialize_payout(p) for p in payouts],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payout(
    payload: PayoutCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    _require_venue(db, payload.venueId)
    payout = Payout(
        amount=payload.amount,
        currency=payload.currency,
        status=payload.status,
        description=payload.description,
        account=payload.account,
        processed_at=to_naive_utc(payload.processedAt) if payload.processedAt else utcnow(),
        notes=payload.notes,
        venue_id=payload.venueId,
        created_by_id=current_user.user_id,
    )
    db.add(payout)
    db.commit()
    db.refresh(payout)
    return serialize_payout(payout)


@router.get("/{payout_id}")
async def get_payout(
    payout_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    payout = _get_payout_or_404(db, payout_id)
    ensure_venue_access(current_user, payout.venue_id)
    return serialize_payout(payout)


@router.patch("/{payout_id}")
async def update_payout(
    payout_id: int,
    payload: PayoutUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    payout = _get_payout_or_404(db, payout_id)
    if payload.venueId is not None:
        _require_venue(db, payload.venueId)
        payout.venue_id = payload.venueId
    if payload.processedAt is not None:
        payout.processed_at = to_naive_utc(payload.processedAt)
    for field, column in (
        ("amount", "amount"),
        ("currency", "currency"),
        ("status", "status"),
        ("description", "description"),
        ("account", "account"),
    ):
        value = getattr(payload, field)
        if value is not None:
            setattr(payout, column, value)
    if "notes" in payload.model_fields_set:
        payout.notes = payload.notes
    db.commit()
    db.refresh(payout)
    return serialize_payout(payout)


@router.delete("/{payout_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payout(
    payout_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    payout = _get_payout_or_404(db, payout_id)
    db.delete(payout)
    db.commit()
    return None
