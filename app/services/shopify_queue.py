"""
Shopify webhook intake: orders pushed by Shopify wait in `shopify_import_queue`
until an admin approves them into a venue or ignores them.
"""
import base64
import hashlib
import hmac
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models import Order, ShopifyImportQueue, ShopifyStore, utcnow
from app.services.order_import import CREATED, UPDATED, ReconcileResult, reconcile_orders
from app.services.product_pricing import load_price_list
from app.services.shopify import normalize_store_domain, transform_shopify_order

logger = logging.getLogger(__name__)

QUEUED = "queued"
ALREADY_IMPORTED = "already_imported"
UNKNOWN_STORE = "unknown_store"


def verify_webhook_hmac(body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify X-Shopify-Hmac-Sha256: HMAC-SHA256(raw_body, secret) base64 == header.
    """
    if not secret or not hmac_header or not body:
        return False
    computed = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    computed_b64 = base64.b64encode(computed).decode("utf-8")
    return hmac.compare_digest(computed_b64, hmac_header.strip())


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def queue_webhook_order(db: Session, shop_domain: str, payload: dict) -> str:
    """Upsert a webhook order into the import queue unless it is already an order."""
    shop_domain = normalize_store_domain(shop_domain)
    store = db.query(ShopifyStore).filter(ShopifyStore.store_domain == shop_domain).first()
    if not store:
        logger.warning("Received webhook for unknown store: %s", shop_domain)
        return UNKNOWN_STORE

    shopify_order_id = str(payload.get("id"))
    if db.query(Order.id).filter(Order.external_id == shopify_order_id).first():
        return ALREADY_IMPORTED

    entry = db.query(ShopifyImportQueue).filter(ShopifyImportQueue.shopify_order_id == shopify_order_id).first()
    if entry is None:
        entry = ShopifyImportQueue(
            shopify_order_id=shopify_order_id,
            store_domain=shop_domain,
            order_number=str(payload.get("order_number") or payload.get("name") or shopify_order_id),
        )
        db.add(entry)
    entry.order_data = payload
    entry.total_amount = _to_float(payload.get("total_price"))
    entry.currency = payload.get("currency") or "USD"
    entry.financial_status = payload.get("financial_status")
    entry.updated_at = utcnow()
    db.commit()
    logger.info("Queued Shopify order %s from %s", shopify_order_id, shop_domain)
    return QUEUED


def approve_queued_orders(
    db: Session,
    queue_ids: List[int],
    venue_id: int,
    exchange_rate: float,
    created_by_id: Optional[int] = None,
) -> Tuple[ReconcileResult, List[str]]:
    """
    Reconcile queued orders into `venue_id`. Entries that become orders are removed
    from the queue; the rest stay for another attempt.
    """
    entries = db.query(ShopifyImportQueue).filter(ShopifyImportQueue.id.in_(queue_ids)).all()
    domains = {entry.store_domain for entry in entries}
    stores = {
        store.store_domain: store.id
        for store in db.query(ShopifyStore).filter(ShopifyStore.store_domain.in_(domains)).all()
    } if domains else {}

    price_list = load_price_list(db, venue_id)
    errors: List[str] = []
    drafts = []
    queue_by_external_id = {}
    for entry in entries:
        store_id = stores.get(entry.store_domain)
        if store_id is None:
            message = f"Store not found for domain: {entry.store_domain} (queue id {entry.id})"
            logger.warning(message)
            errors.append(message)
            continue
        try:
            order_input = transform_shopify_order(entry.order_data, exchange_rate, price_list, store_id)
        except (TypeError, ValueError) as e:
            errors.append(f"Transformation failed for queue id {entry.id}: {e}")
            continue
        drafts.append(order_input.to_order_draft(venue_id=venue_id))
        queue_by_external_id[order_input.external_id] = entry.id

    result = reconcile_orders(db, drafts, created_by_id=created_by_id)

    done_ids = []
    for outcome in result.outcomes:
        if outcome.status in (CREATED, UPDATED) and outcome.key in queue_by_external_id:
            done_ids.append(queue_by_external_id[outcome.key])
        elif outcome.reason:
            errors.append(f"{outcome.key}: {outcome.reason}")
    if done_ids:
        db.query(ShopifyImportQueue).filter(ShopifyImportQueue.id.in_(done_ids)).delete(synchronize_session=False)
        db.commit()
    return result, errors


def ignore_queued_orders(db: Session, queue_ids: List[int]) -> int:
    deleted = db.query(ShopifyImportQueue).filter(ShopifyImportQueue.id.in_(queue_ids)).delete(synchronize_session=False)
    db.commit()
    return deleted
