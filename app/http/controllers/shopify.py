"""
Shopify order and product routes (admin only)
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth import SessionUser, require_admin
from app.database import get_db
from app.http.requests import (
    PendingApproveRequest,
    PendingIgnoreRequest,
    ShopifyFetchRequest,
    ShopifyImportRequest,
    ShopifyProductImportRequest,
    ShopifyStoreRequest,
)
from app.models import Product, ShopifyImportQueue, ShopifyStore, Venue
from app.services.exchange_rate import get_current_exchange_rate
from app.services.http_client import UpstreamError
from app.services.order_import import SKIPPED, ItemOutcome, reconcile_orders
from app.services.order_sources import LineItemDraft, ShopifyOrderInput, to_naive_utc
from app.services.product_pricing import load_price_list
from app.services.shopify import ShopifyService, flatten_products, transform_shopify_order
from app.services.shopify_queue import approve_queued_orders, ignore_queued_orders

logger = logging.getLogger(__name__)
router = APIRouter()


def build_shopify_service(store: ShopifyStore) -> ShopifyService:
    try:
        return ShopifyService.for_store(store)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _get_store_or_404(db: Session, store_id: int) -> ShopifyStore:
    store = db.query(ShopifyStore).filter(ShopifyStore.id == store_id).first()
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return store


def _store_summary(store: ShopifyStore) -> dict:
    return {
        "id": store.id,
        "domain": store.store_domain,
        "nickname": store.nickname,
        "venue": {"id": store.venue.id, "name": store.venue.name} if store.venue else None,
    }


async def _fetch_transformed(db: Session, store: ShopifyStore, payload: ShopifyFetchRequest):
    exchange_rate = await get_current_exchange_rate(db)
    service = build_shopify_service(store)
    try:
        raw_orders = await service.fetch_orders(
            created_at_min=payload.startDate,
            created_at_max=payload.endDate,
            since_id=payload.sinceId,
        )
    except UpstreamError as e:
        logger.error("Shopify fetch failed for %s: %s", store.store_domain, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    price_list = load_price_list(db, store.venue_id)
    orders = []
    rejected: List[ItemOutcome] = []
    for raw in raw_orders:
        try:
            orders.append(transform_shopify_order(raw, exchange_rate, price_list, store.id))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping Shopify order %s from %s: %s", raw.get("id"), store.store_domain, e)
            rejected.append(ItemOutcome(key=str(raw.get("id")), status=SKIPPED, reason=f"Transformation failed: {e}"))
    return orders, exchange_rate, rejected


@router.post("/fetch")
async def fetch_orders(
    payload: ShopifyFetchRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Preview a store's orders for a date range, priced at the current rate"""
    store = _get_store_or_404(db, payload.storeId)
    orders, exchange_rate, rejected = await _fetch_transformed(db, store, payload)
    return {
        "orders": [o.to_dict() for o in orders],
        "skipped": [o.to_dict() for o in rejected],
        "exchangeRate": exchange_rate,
        "store": _store_summary(store),
        "count": len(orders),
    }


@router.post("/import")
async def import_orders(
    payload: ShopifyImportRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Reconcile previewed Shopify orders into the store's venue"""
    store_ids = {o.shopifyStoreId for o in payload.orders if o.shopifyStoreId}
    if payload.storeId:
        store_ids.add(payload.storeId)
    stores: Dict[int, ShopifyStore] = {
        s.id: s for s in db.query(ShopifyStore).filter(ShopifyStore.id.in_(store_ids)).all()
    } if store_ids else {}
    if store_ids and not stores:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store(s) not found")

    drafts = []
    for o in payload.orders:
        store = stores.get(o.shopifyStoreId or payload.storeId)
        order_input = ShopifyOrderInput(
            external_id=o.externalId,
            shopify_order_number=o.orderNumber,
            processed_at=to_naive_utc(o.processedAt),
            customer_name=o.customerName,
            status=o.status,
            financial_status=o.financialStatus,
            fulfillment_status=o.fulfillmentStatus,
            total_amount=o.totalAmount,
            original_amount=o.originalAmount,
            exchange_rate=o.exchangeRate,
            currency=o.currency,
            shipping_city=o.shippingCity,
            shipping_country=o.shippingCountry,
            tags=o.tags,
            notes=o.notes,
            shopify_store_id=store.id if store else None,
            line_items=[
                LineItemDraft(
                    product_name=item.productName,
                    quantity=item.quantity,
                    sku=item.sku,
                    shopify_product_id=item.shopifyProductId,
                    price=item.price,
                    total=item.total,
                )
                for item in o.lineItems
            ],
        )
        # No store means no venue: reconcile reports the order as skipped.
        drafts.append(order_input.to_order_draft(venue_id=store.venue_id if store else None))

    result = reconcile_orders(db, drafts, created_by_id=current_user.user_id)
    return result.to_dict()


@router.post("/sync")
async def sync_orders(
    payload: ShopifyFetchRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Fetch a store's orders and reconcile them in one step"""
    store = _get_store_or_404(db, payload.storeId)
    orders, exchange_rate, rejected = await _fetch_transformed(db, store, payload)
    drafts = [o.to_order_draft(venue_id=store.venue_id) for o in orders]
    result = reconcile_orders(db, drafts, created_by_id=current_user.user_id)
    result.outcomes.extend(rejected)
    result.total_processed += len(rejected)
    return {**result.to_dict(), "exchangeRate": exchange_rate, "store": _store_summary(store)}


@router.post("/test-connection")
async def test_connection(
    payload: ShopifyStoreRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    store = _get_store_or_404(db, payload.storeId)
    service = build_shopify_service(store)
    try:
        shop = await service.test_connection()
    except UpstreamError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return {"ok": True, "shop": {"name": shop.get("name"), "domain": shop.get("myshopify_domain") or store.store_domain}}


@router.get("/pending")
async def list_pending(
    amount: Optional[float] = Query(None),
    currency: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Webhook orders waiting for approval"""
    query = db.query(ShopifyImportQueue)
    if amount is not None:
        query = query.filter(ShopifyImportQueue.total_amount == amount)
    if currency:
        query = query.filter(ShopifyImportQueue.currency == currency.upper())
    entries = query.order_by(ShopifyImportQueue.created_at.desc(), ShopifyImportQueue.id.desc()).all()
    return {
        "orders": [
            {
                "id": e.id,
                "shopifyOrderId": e.shopify_order_id,
                "storeDomain": e.store_domain,
                "orderNumber": e.order_number,
                "totalAmount": e.total_amount,
                "currency": e.currency,
                "financialStatus": e.financial_status,
                "orderData": e.order_data,
                "createdAt": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ]
    }


@router.post("/pending")
async def approve_pending(
    payload: PendingApproveRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Import queued webhook orders into a venue"""
    if not db.query(Venue.id).filter(Venue.id == payload.venueId).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    if not db.query(ShopifyImportQueue.id).filter(ShopifyImportQueue.id.in_(payload.orderIds)).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No orders found to import")

    exchange_rate = await get_current_exchange_rate(db)
    result, errors = approve_queued_orders(
        db, payload.orderIds, payload.venueId, exchange_rate, created_by_id=current_user.user_id
    )
    count = result.imported + result.updated
    return {
        "message": f"Imported {count} orders." + (f" {len(errors)} failed." if errors else ""),
        "count": count,
        **result.to_dict(),
        "errors": errors or None,
    }


@router.delete("/pending")
async def ignore_pending(
    payload: PendingIgnoreRequest = Body(...),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Drop queued webhook orders"""
    deleted = ignore_queued_orders(db, payload.orderIds)
    return {"message": "Orders ignored", "deleted": deleted}


@router.get("/products")
async def list_shopify_products(
    store_id: int = Query(..., alias="storeId"),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Active Shopify products of a store, one entry per variant"""
    store = _get_store_or_404(db, store_id)
    service = build_shopify_service(store)
    try:
        products = flatten_products(await service.fetch_products())
    except UpstreamError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return {"products": products, "store": _store_summary(store), "count": len(products)}


@router.post("/products/import")
async def import_shopify_products(
    payload: ShopifyProductImportRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Upsert Shopify products into the store venue's price list"""
    store = _get_store_or_404(db, payload.storeId)
    created = updated = skipped = 0
    errors = []

    for item in payload.products:
        sku = (item.sku or "").strip() or None
        try:
            existing = db.query(Product).filter(
                Product.shopify_product_id == item.shopifyProductId,
                Product.venue_id == store.venue_id,
            ).first()
            if existing:
                existing.name = item.name
                existing.sku = sku
                existing.local_price = item.localPrice
                db.commit()
                updated += 1
                continue
            if sku and db.query(Product.id).filter(Product.sku == sku, Product.venue_id == store.venue_id).first():
                errors.append(f'Product "{item.name}" has SKU conflict with existing product')
                skipped += 1
                continue
            db.add(Product(
                name=item.name,
                sku=sku,
                shopify_product_id=item.shopifyProductId,
                local_price=item.localPrice,
                venue_id=store.venue_id,
                active=True,
            ))
            db.commit()
            created += 1
        except IntegrityError as e:
            db.rollback()
            logger.warning("Failed to import product %s: %s", item.name, e.orig)
            errors.append(f"{item.name}: {e.orig}")
            skipped += 1

    return {
        "created": created,
        "updated": updated,
        "skipped": skipped,
        "totalProcessed": len(payload.products),
        "errors": errors or None,
    }
