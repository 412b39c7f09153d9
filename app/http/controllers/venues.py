"""
Venue routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth import SessionUser, get_current_user, require_admin, scope_to_venues
from app.database import get_db
from app.http.requests import VenueCreateRequest, VenueUpdateRequest
from app.models import Order, Payout, ShopifyStore, Venue
from app.services.venues import merge_duplicate_venues, slugify

logger = logging.getLogger(__name__)
router = APIRouter()


def serialize_venue(venue: Venue) -> dict:
    return {
        "id": venue.id,
        "name": venue.name,
        "slug": venue.slug,
        "createdAt": venue.created_at.isoformat() if venue.created_at else None,
    }


@router.get("")
async def list_venues(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Venues visible to the current user"""
    venues = scope_to_venues(db.query(Venue), Venue.id, current_user).order_by(Venue.name).all()
    return {"venues": [serialize_venue(v) for v in venues]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_venue(
    payload: VenueCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    name = payload.name.strip()
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Venue name is required")
    if db.query(Venue.id).filter(Venue.slug == slug).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Venue already exists")

    venue = Venue(name=name, slug=slug)
    db.add(venue)
    db.commit()
    db.refresh(venue)
    return serialize_venue(venue)


@router.post("/merge-duplicates")
async def merge_duplicates(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Merge venues whose names differ only in case, spacing or punctuation"""
    merged = merge_duplicate_venues(db)
    if not merged:
        return {"message": "No duplicate venues found", "merged": []}
    logger.info("Merged %s duplicate venue(s)", len(merged))
    return {"message": f"Successfully merged {len(merged)} duplicate venue(s)", "merged": merged}


@router.patch("/{venue_id}")
async def rename_venue(
    venue_id: int,
    payload: VenueUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Rename a venue; the slug follows the new name"""
    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    name = payload.name.strip()
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Venue name is required")
    clash = db.query(Venue.id).filter(
        Venue.id != venue.id,
        (Venue.slug == slug) | (func.lower(Venue.name) == name.lower()),
    ).first()
    if clash:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Another venue already uses this name")

    venue.name = name
    venue.slug = slug
    db.commit()
    db.refresh(venue)
    return serialize_venue(venue)


@router.delete("/{venue_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_venue(
    venue_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Delete an empty venue; venues with orders, payouts or stores are kept"""
    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    for model in (Order, Payout, ShopifyStore):
        if db.query(model.id).filter(model.venue_id == venue.id).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Venue is still in use")
    db.delete(venue)
    db.commit()
    return None
