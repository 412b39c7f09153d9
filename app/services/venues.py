"""
Venue lookup helpers and duplicate-venue merging.
"""
import logging
import re
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, Payout, Product, ShopifyStore, Venue

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _NON_ALNUM.sub("-", value.strip().lower()).strip("-")


def ensure_venue(db: Session, name: Optional[str] = None) -> Venue:
    """Get or create a venue by slug. Flushes but does not commit."""
    name = (name or "").strip() or settings.DEFAULT_VENUE_NAME
    slug = slugify(name) or slugify(settings.DEFAULT_VENUE_NAME)
    venue = db.query(Venue).filter(Venue.slug == slug).first()
    if venue:
        return venue
    venue = Venue(name=name, slug=slug)
    db.add(venue)
    db.flush()
    logger.info("Created venue %s (%s)", name, slug)
    return venue


def duplicate_key(name: str) -> str:
    """Names that differ only in case, spacing or punctuation belong to the same venue."""
    return _NON_ALNUM.sub("", (name or "").lower())


def _move_products(db: Session, source_id: int, target_id: int) -> None:
    taken = {
        sku for (sku,) in db.query(Product.sku).filter(Product.venue_id == target_id, Product.sku.isnot(None)).all()
    }
    for product in db.query(Product).filter(Product.venue_id == source_id).all():
        if product.sku and product.sku in taken:
            # The target's price list wins for a shared SKU.
            db.delete(product)
            continue
        product.venue_id = target_id
        if product.sku:
            taken.add(product.sku)


def merge_venue_into(db: Session, duplicate: Venue, primary: Venue) -> dict:
    """Move everything owned by `duplicate` to `primary` and delete it. Does not commit."""
    orders_moved = db.query(Order).filter(Order.venue_id == duplicate.id).update(
        {Order.venue_id: primary.id}
    )
    payouts_moved = db.query(Payout).filter(Payout.venue_id == duplicate.id).update(
        {Payout.venue_id: primary.id}
    )
    db.query(ShopifyStore).filter(ShopifyStore.venue_id == duplicate.id).update(
        {ShopifyStore.venue_id: primary.id}
    )
    _move_products(db, duplicate.id, primary.id)
    for user in list(duplicate.users):
        if primary not in user.venues:
            user.venues.append(primary)
        user.venues.remove(duplicate)
    db.flush()
    db.expire(duplicate, ["orders", "shopify_stores"])
    db.delete(duplicate)
    db.flush()
    return {
        "duplicateId": duplicate.id,
        "duplicateName": duplicate.name,
        "mergedInto": primary.id,
        "ordersTransferred": orders_moved,
        "payoutsTransferred": payouts_moved,
    }


def merge_duplicate_venues(db: Session) -> List[dict]:
    """Fold venues whose names normalize to the same key into the one with the most orders.

    Ties go to the oldest venue. Runs in a single transaction.
    """
    order_counts = dict(db.query(Order.venue_id, func.count(Order.id)).group_by(Order.venue_id).all())
    groups: Dict[str, List[Venue]] = {}
    for venue in db.query(Venue).order_by(Venue.id).all():
        groups.setdefault(duplicate_key(venue.name), []).append(venue)

    merged: List[dict] = []
    try:
        for key, group in groups.items():
            if len(group) < 2:
                continue
            group.sort(key=lambda v: (-order_counts.get(v.id, 0), v.id))
            primary = group[0]
            for duplicate in group[1:]:
                merged.append(merge_venue_into(db, duplicate, primary))
                logger.info("Merged venue %s (%s) into %s", duplicate.id, duplicate.name, primary.id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return merged
