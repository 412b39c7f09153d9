"""
Order routes
"""
import csv
import io
import logging
from calendar import monthrange
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, ensure_venue_access, get_current_user, require_admin, scope_to_venues, target_venue_id
from app.config import settings
from app.database import get_db
from app.http.requests import BulkDeleteRequest, OrderCreateRequest, OrderUpdateRequest
from app.models import Order, OrderLineItem, utcnow
from app.services.order_amounts import calculate_payout_from_order
from app.services.order_import import CREATED, reconcile_orders
from app.services.order_numbers import normalize_order_number
from app.services.order_sources import LineItemDraft, ManualOrderInput, resolve_total, split_tags, to_naive_utc

logger = logging.getLogger(__name__)
router = APIRouter()

MONTH_PATTERN = r"^\d{4}-\d{2}$"


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "externalId": order.external_id,
        "orderNumber": order.order_number,
        "shopifyOrderNumber": order.shopify_order_number,
        "customerName": order.customer_name,
        "venueId": order.venue_id,
        "venue": {"id": order.venue.id, "name": order.venue.name, "slug": order.venue.slug} if order.venue else None,
        "status": order.status,
        "financialStatus": order.financial_status,
        "fulfillmentStatus": order.fulfillment_status,
        "totalAmount": order.total_amount,
        "currency": order.currency,
        "processedAt": order.processed_at.isoformat(),
        "shippingCity": order.shipping_city,
        "shippingCountry": order.shipping_country,
        "tags": split_tags(order.tags),
        "notes": order.notes,
        "source": order.source,
        "exchangeRate": order.exchange_rate,
        "originalAmount": order.original_amount,
        "lineItems": [
            {
                "id": item.id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "sku": item.sku,
                "shopifyProductId": item.shopify_product_id,
                "price": item.price,
                "total": item.total,
            }
            for item in order.line_items
        ],
        "shopifyStoreId": order.shopify_store_id,
    }


def _month_range(month: str):
    year, month_num = (int(part) for part in month.split("-"))
    if not 1 <= month_num <= 12:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid filters")
    start = datetime(year, month_num, 1)
    end = datetime(year, month_num, monthrange(year, month_num)[1], 23, 59, 59, 999999)
    return start, end


def _scoped_orders(db: Session, current_user: SessionUser, month: Optional[str]):
    query = scope_to_venues(db.query(Order), Order.venue_id, current_user)
    if month:
        start, end = _month_range(month)
        query = query.filter(Order.processed_at >= start, Order.processed_at <= end)
    return query.order_by(Order.processed_at.desc(), Order.id.desc())


def _get_order_or_404(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def _order_number_taken(db: Session, order_number: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Order.id).filter(Order.order_number == order_number)
    if exclude_id is not None:
        query = query.filter(Order.id != exclude_id)
    return query.first() is not None


def order_metrics(orders) -> dict:
    count = len(orders)
    total_revenue = sum(o.total_amount or 0 for o in orders)
    return {
        "ordersCount": count,
        "totalRevenue": total_revenue,
        "averageOrderValue": total_revenue / count if count else 0,
        "totalPayout": sum(
            calculate_payout_from_order(o.original_amount, o.exchange_rate, o.total_amount) for o in orders
        ),
        "totalTicketsValue": sum(o.original_amount or 0 for o in orders),
        "pendingFulfillment": sum(
            1 for o in orders if not o.fulfillment_status or o.fulfillment_status.lower() != "fulfilled"
        ),
    }


@router.get("")
async def list_orders(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """List orders of the user's venues with summary metrics"""
    orders = _scoped_orders(db, current_user, month).all()
    return {
        "orders": [serialize_order(o) for o in orders],
        "metrics": order_metrics(orders),
    }


@router.get("/export")
async def export_orders(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Download orders as CSV"""
    orders = _scoped_orders(db, current_user, month).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        "Order Number", "Shopify Order Number", "Customer Name", "Venue", "Date", "Status",
        "Financial Status", "Fulfillment Status", "Total Amount (USD)", "Payout Amount (USD)",
        "Original Amount", "Exchange Rate", "Currency", "Shipping City", "Shipping Country",
        "Tags", "Notes", "Source",
    ])
    for o in orders:
        payout = calculate_payout_from_order(o.original_amount, o.exchange_rate, o.total_amount)
        writer.writerow([
            o.order_number,
            o.shopify_order_number or "",
            o.customer_name,
            o.venue.name if o.venue else "",
            o.processed_at.strftime("%Y-%m-%d"),
            o.status,
            o.financial_status or "",
            o.fulfillment_status or "",
            f"{o.total_amount:.2f}",
            f"{payout:.2f}",
            f"{o.original_amount:.2f}" if o.original_amount is not None else "",
            f"{o.exchange_rate:.2f}" if o.exchange_rate is not None else "",
            o.currency,
            o.shipping_city or "",
            o.shipping_country or "",
            o.tags or "",
            o.notes or "",
            o.source,
        ])

    filename = f"orders-{month}.csv" if month else f"orders-export-{utcnow():%Y-%m-%d}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/bulk-delete")
async def bulk_delete_orders(
    payload: BulkDeleteRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Delete several orders at once"""
    orders = db.query(Order).filter(Order.id.in_(payload.ids)).all()
    for order in orders:
        db.delete(order)
    db.commit()
    logger.info("User %s deleted %s orders", current_user.user_id, len(orders))
    return {"deleted": len(orders)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Create a manual order"""
    order_number = normalize_order_number(payload.orderNumber)
    if order_number and _order_number_taken(db, order_number):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Order number {order_number} already exists")

    venue_id = target_venue_id(db, current_user, payload.venueId, payload.venue)
    manual = ManualOrderInput(
        processed_at=payload.processedAt,
        order_number=payload.orderNumber,
        customer_name=payload.customerName,
        status=payload.status,
        financial_status=payload.financialStatus,
        fulfillment_status=payload.fulfillmentStatus,
        total_amount=payload.totalAmount,
        original_amount=payload.originalAmount,
        exchange_rate=payload.exchangeRate,
        currency=payload.currency,
        shipping_city=payload.shippingCity,
        shipping_country=payload.shippingCountry,
        tags=split_tags(payload.tags),
        notes=payload.notes,
        venue_id=venue_id,
        line_items=[
            LineItemDraft(
                product_name=item.productName,
                quantity=item.quantity,
                sku=item.sku,
                shopify_product_id=item.shopifyProductId,
                price=item.price,
                total=item.total,
            )
            for item in payload.lineItems
        ],
    )
    result = reconcile_orders(db, [manual.to_order_draft(settings.DEFAULT_EXCHANGE_RATE)], created_by_id=current_user.user_id)
    outcome = result.outcomes[0]
    if outcome.status != CREATED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.reason or "Order could not be created")
    return serialize_order(_get_order_or_404(db, outcome.order_id))


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Get order details"""
    order = _get_order_or_404(db, order_id)
    ensure_venue_access(current_user, order.venue_id)
    return serialize_order(order)


@router.patch("/{order_id}")
async def update_order(
    order_id: int,
    payload: OrderUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Update an order; the USD total follows the local amount and rate when both are known"""
    order = _get_order_or_404(db, order_id)
    fields = payload.model_fields_set

    order_number = normalize_order_number(payload.orderNumber)
    if order_number and order_number != order.order_number:
        if _order_number_taken(db, order_number, exclude_id=order.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Order number {order_number} already exists")
        order.order_number = order_number

    if payload.venueId is not None or (payload.venue and payload.venue.strip()):
        order.venue_id = target_venue_id(db, current_user, payload.venueId, payload.venue)

    if payload.customerName and payload.customerName.strip():
        order.customer_name = payload.customerName.strip()
    if payload.status:
        order.status = payload.status
    if payload.financialStatus and payload.financialStatus.strip():
        order.financial_status = payload.financialStatus.strip()
    if "fulfillmentStatus" in fields:
        order.fulfillment_status = payload.fulfillmentStatus
    if payload.currency:
        order.currency = payload.currency
    if payload.processedAt:
        order.processed_at = to_naive_utc(payload.processedAt)
    for field_name, column in (("shippingCity", "shipping_city"), ("shippingCountry", "shipping_country"), ("notes", "notes")):
        if field_name in fields:
            setattr(order, column, getattr(payload, field_name))
    if payload.tags is not None:
        order.tags = ",".join(split_tags(payload.tags))

    exchange_rate = payload.exchangeRate or order.exchange_rate or settings.DEFAULT_EXCHANGE_RATE
    original_amount = payload.originalAmount if "originalAmount" in fields else order.original_amount
    supplied_total = payload.totalAmount if payload.totalAmount is not None else order.total_amount
    order.exchange_rate = exchange_rate
    order.original_amount = original_amount
    order.total_amount = resolve_total(original_amount, exchange_rate, supplied_total)

    if payload.lineItems is not None:
        order.line_items = []
        db.flush()
        order.line_items = [
            OrderLineItem(
                product_name=item.productName,
                quantity=item.quantity,
                sku=item.sku,
                shopify_product_id=item.shopifyProductId,
                price=item.price,
                total=item.total,
            )
            for item in payload.lineItems
            if item.productName.strip()
        ]

    db.commit()
    db.refresh(order)
    return serialize_order(order)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Delete an order"""
    order = _get_order_or_404(db, order_id)
    db.delete(order)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
