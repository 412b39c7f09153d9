"""
Order reconciliation: merge a batch of order drafts into the orders table.

Existing orders are matched by external id with a single batched lookup.
Matches are updated in place (line items replaced wholesale); everything else
is inserted with an order number allocated in processed_at order. Every item
is written in its own transaction and reported as an `ItemOutcome`, so one bad
record never aborts the rest of the batch.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Order, OrderLineItem, Venue
from app.services.order_numbers import allocate_order_numbers, order_number_lock
from app.services.order_sources import OrderDraft
from app.services.venues import ensure_venue

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ItemOutcome:
    key: Optional[str]
    status: str
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "status": self.status,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "reason": self.reason,
        }


@dataclass
class ReconcileResult:
    outcomes: List[ItemOutcome] = field(default_factory=list)
    total_processed: int = 0

    def _count(self, *statuses: str) -> int:
        return sum(1 for o in self.outcomes if o.status in statuses)

    @property
    def imported(self) -> int:
        return self._count(CREATED)

    @property
    def updated(self) -> int:
        return self._count(UPDATED)

    @property
    def skipped(self) -> int:
        # Failures are tallied as skipped in the aggregate; `failed` breaks them out.
        return self._count(SKIPPED, FAILED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    def to_dict(self, include_outcomes: bool = True) -> dict:
        payload = {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "totalProcessed": self.total_processed,
        }
        if include_outcomes:
            payload["outcomes"] = [o.to_dict() for o in self.outcomes]
        return payload


def _item_key(draft: OrderDraft, index: int) -> str:
    return draft.key or f"item-{index + 1}"


def _resolve_venue_id(db: Session, draft: OrderDraft, venue_cache: Dict[str, Optional[int]]) -> Optional[int]:
    if draft.venue_id is not None:
        cache_key = f"id:{draft.venue_id}"
        if cache_key not in venue_cache:
            found = db.query(Venue.id).filter(Venue.id == draft.venue_id).first()
            venue_cache[cache_key] = found[0] if found else None
        return venue_cache[cache_key]
    if not draft.venue_name:
        return None
    cache_key = f"name:{draft.venue_name.strip().lower()}"
    if cache_key not in venue_cache:
        venue = ensure_venue(db, draft.venue_name)
        db.commit()
        venue_cache[cache_key] = venue.id
    return venue_cache[cache_key]


def _line_items(draft: OrderDraft) -> List[OrderLineItem]:
    return [
        OrderLineItem(
            product_name=item.product_name,
            quantity=item.quantity,
            sku=item.sku,
            shopify_product_id=item.shopify_product_id,
            price=item.price,
            total=item.total,
        )
        for item in draft.line_items
    ]


def _apply_fields(order: Order, draft: OrderDraft, venue_id: int) -> None:
    order.shopify_order_number = draft.shopify_order_number
    order.customer_name = draft.customer_name
    order.status = draft.status
    order.financial_status = draft.financial_status
    order.fulfillment_status = draft.fulfillment_status
    order.total_amount = draft.total_amount
    order.original_amount = draft.original_amount
    order.exchange_rate = draft.exchange_rate
    order.currency = draft.currency
    order.processed_at = draft.processed_at
    order.shipping_city = draft.shipping_city
    order.shipping_country = draft.shipping_country
    order.tags = ",".join(draft.tags)
    order.notes = draft.notes
    order.source = draft.source
    order.venue_id = venue_id
    order.shopify_store_id = draft.shopify_store_id


def _update_order(db: Session, order_id: int, draft: OrderDraft, venue_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).one()
    _apply_fields(order, draft, venue_id)
    # Replace, never diff: clear the collection so delete-orphan removes old rows.
    order.line_items = []
    db.flush()
    order.line_items = _line_items(draft)
    db.commit()
    return order


def _insert_order(db: Session, draft: OrderDraft, order_number: str, venue_id: int, created_by_id: Optional[int]) -> Order:
    order = Order(
        external_id=draft.external_id,
        order_number=order_number,
        created_by_id=created_by_id,
    )
    _apply_fields(order, draft, venue_id)
    order.line_items = _line_items(draft)
    db.add(order)
    db.commit()
    return order


def reconcile_orders(
    db: Session,
    drafts: Sequence[OrderDraft],
    created_by_id: Optional[int] = None,
) -> ReconcileResult:
    """Merge `drafts` into the orders table and report one outcome per draft."""
    result = ReconcileResult(total_processed=len(drafts))
    outcomes: List[Optional[ItemOutcome]] = [None] * len(drafts)

    external_ids = {d.external_id for d in drafts if d.external_id}
    existing: Dict[str, int] = {}
    if external_ids:
        rows = db.query(Order.id, Order.external_id).filter(Order.external_id.in_(external_ids)).all()
        existing = {external_id: order_id for order_id, external_id in rows}

    updates: List[int] = []
    inserts: List[int] = []
    seen: set = set()
    for index, draft in enumerate(drafts):
        if draft.external_id:
            if draft.external_id in seen:
                outcomes[index] = ItemOutcome(
                    key=_item_key(draft, index),
                    status=SKIPPED,
                    reason="Duplicate external id in batch",
                )
                continue
            seen.add(draft.external_id)
            if draft.external_id in existing:
                updates.append(index)
                continue
        inserts.append(index)

    venue_cache: Dict[str, Optional[int]] = {}

    for index in updates:
        draft = drafts[index]
        key = _item_key(draft, index)
        try:
            venue_id = _resolve_venue_id(db, draft, venue_cache)
            if venue_id is None:
                logger.warning("Skipping order %s: venue could not be resolved", key)
                outcomes[index] = ItemOutcome(key=key, status=SKIPPED, reason="Venue could not be resolved")
                continue
            order = _update_order(db, existing[draft.external_id], draft, venue_id)
            outcomes[index] = ItemOutcome(key=key, status=UPDATED, order_id=order.id, order_number=order.order_number)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Failed to update order %s: %s", key, e)
            outcomes[index] = ItemOutcome(key=key, status=FAILED, reason=str(getattr(e, "orig", None) or e))

    if inserts:
        # Earliest event gets the lowest new number.
        inserts.sort(key=lambda i: drafts[i].processed_at)
        with order_number_lock(db):
            needs_number = [i for i in inserts if not drafts[i].order_number]
            numbers = dict(zip(needs_number, allocate_order_numbers(db, len(needs_number))))
            for index in inserts:
                draft = drafts[index]
                key = _item_key(draft, index)
                order_number = draft.order_number or numbers[index]
                try:
                    venue_id = _resolve_venue_id(db, draft, venue_cache)
                    if venue_id is None:
                        logger.warning("Skipping order %s: venue could not be resolved", key)
                        outcomes[index] = ItemOutcome(key=key, status=SKIPPED, reason="Venue could not be resolved")
                        continue
                    order = _insert_order(db, draft, order_number, venue_id, created_by_id)
                    outcomes[index] = ItemOutcome(key=key, status=CREATED, order_id=order.id, order_number=order.order_number)
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.warning("Failed to import order %s (%s): %s", key, order_number, e)
                    outcomes[index] = ItemOutcome(key=key, status=FAILED, order_number=order_number, reason=str(getattr(e, "orig", None) or e))

    result.outcomes = [o for o in outcomes if o is not None]
    logger.info(
        "Reconciled %s orders: %s imported, %s updated, %s skipped",
        result.total_processed, result.imported, result.updated, result.skipped,
    )
    return result
