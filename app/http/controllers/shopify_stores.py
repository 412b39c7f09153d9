"""
Shopify store connection routes (admin only)
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, require_admin
from app.database import get_db
from app.http.requests import ShopifyStoreCreateRequest, ShopifyStoreUpdateRequest
from app.models import Order, ShopifyStore, Venue
from app.services.credentials import encrypt_token
from app.services.shopify import normalize_store_domain

router = APIRouter()


def serialize_store(store: ShopifyStore) -> dict:
    # The access token never leaves the server.
    return {
        "id": store.id,
        "storeDomain": store.store_domain,
        "nickname": store.nickname,
        "venueId": store.venue_id,
        "venue": {"id": store.venue.id, "name": store.venue.name} if store.venue else None,
        "createdAt": store.created_at.isoformat() if store.created_at else None,
    }


def _get_store_or_404(db: Session, store_id: int) -> ShopifyStore:
    store = db.query(ShopifyStore).filter(ShopifyStore.id == store_id).first()
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return store


def _require_venue(db: Session, venue_id: int) -> None:
    if not db.query(Venue.id).filter(Venue.id == venue_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")


def _domain_taken(db: Session, domain: str, exclude_id: int = None) -> bool:
    query = db.query(ShopifyStore.id).filter(ShopifyStore.store_domain == domain)
    if exclude_id is not None:
        query = query.filter(ShopifyStore.id != exclude_id)
    return query.first() is not None


@router.get("")
async def list_stores(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    stores = db.query(ShopifyStore).order_by(ShopifyStore.store_domain).all()
    return {"stores": [serialize_store(s) for s in stores]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: ShopifyStoreCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Connect a store; the access token is stored encrypted"""
    domain = normalize_store_domain(payload.storeDomain)
    if not domain:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Store domain is required")
    _require_venue(db, payload.venueId)
    if _domain_taken(db, domain):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Store already connected")

    store = ShopifyStore(
        store_domain=domain,
        access_token=encrypt_token(payload.accessToken.strip()),
        nickname=payload.nickname,
        venue_id=payload.venueId,
        owner_id=current_user.user_id,
    )
    db.add(store)
    db.commit()
    db.refresh(store)
    return serialize_store(store)


@router.patch("/{store_id}")
async def update_store(
    store_id: int,
    payload: ShopifyStoreUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    store = _get_store_or_404(db, store_id)

    if payload.storeDomain is not None:
        domain = normalize_store_domain(payload.storeDomain)
        if not domain:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Store domain is required")
        if _domain_taken(db, domain, exclude_id=store.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Store already connected")
        store.store_domain = domain
    if payload.accessToken:
        store.access_token = encrypt_token(payload.accessToken.strip())
    if payload.nickname is not None:
        store.nickname = payload.nickname or None
    if payload.venueId is not None:
        _require_venue(db, payload.venueId)
        store.venue_id = payload.venueId

    db.commit()
    db.refresh(store)
    return serialize_store(store)


@router.delete("/{store_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_store(
    store_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Disconnect a store; its imported orders stay"""
    store = _get_store_or_404(db, store_id)
    db.query(Order).filter(Order.shopify_store_id == store.id).update(
        {Order.shopify_store_id: None}, synchronize_session=False
    )
    db.delete(store)
    db.commit()
    return None
