"""
Product price list routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, ensure_venue_access, get_current_user, require_admin, scope_to_venues
from app.database import get_db
from app.http.requests import ProductCreateRequest, ProductUpdateRequest
from app.models import Product, Venue

router = APIRouter()


def serialize_product(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "sku": product.sku,
        "shopifyProductId": product.shopify_product_id,
        "localPrice": product.local_price,
        "venueId": product.venue_id,
        "active": product.active,
    }


def _get_product_or_404(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


def _ensure_sku_free(db: Session, sku: Optional[str], venue_id: int, exclude_id: Optional[int] = None) -> None:
    if not sku:
        return
    query = db.query(Product.id).filter(Product.sku == sku, Product.venue_id == venue_id)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f'SKU "{sku}" already exists for this venue')


@router.get("")
async def list_products(
    venue_id: Optional[int] = Query(None, alias="venueId"),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """List products of the user's venues"""
    query = scope_to_venues(db.query(Product), Product.venue_id, current_user)
    if venue_id is not None:
        ensure_venue_access(current_user, venue_id)
        query = query.filter(Product.venue_id == venue_id)
    products = query.order_by(Product.name, Product.id).all()
    return {"products": [serialize_product(p) for p in products]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Create product (Admin only)"""
    if not db.query(Venue.id).filter(Venue.id == request.venueId).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    sku = (request.sku or "").strip() or None
    _ensure_sku_free(db, sku, request.venueId)

    product = Product(
        name=request.name.strip(),
        sku=sku,
        shopify_product_id=request.shopifyProductId or None,
        local_price=request.localPrice,
        venue_id=request.venueId,
        active=request.active,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return serialize_product(product)


@router.patch("/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    product = _get_product_or_404(db, product_id)

    if "sku" in request.model_fields_set:
        sku = (request.sku or "").strip() or None
        _ensure_sku_free(db, sku, product.venue_id, exclude_id=product.id)
        product.sku = sku
    if request.name is not None:
        product.name = request.name.strip()
    if "shopifyProductId" in request.model_fields_set:
        product.shopify_product_id = request.shopifyProductId or None
    if request.localPrice is not None:
        product.local_price = request.localPrice
    if request.active is not None:
        product.active = request.active

    db.commit()
    db.refresh(product)
    return serialize_product(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    product = _get_product_or_404(db, product_id)
    db.delete(product)
    db.commit()
    return None
