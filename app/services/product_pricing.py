"""
Local-currency pricing of Shopify line items against a venue's product list.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from app.models import Product
from app.services.order_amounts import calculate_from_original_amount
from app.services.order_sources import LineItemDraft

logger = logging.getLogger(__name__)


@dataclass
class PriceList:
    by_shopify_id: Dict[str, float] = field(default_factory=dict)
    by_sku: Dict[str, float] = field(default_factory=dict)
    by_name: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_products(cls, products: Iterable[Product]) -> "PriceList":
        prices = cls()
        for product in products:
            if product.shopify_product_id:
                prices.by_shopify_id[str(product.shopify_product_id)] = product.local_price
            if product.sku:
                prices.by_sku[product.sku.strip().lower()] = product.local_price
            prices.by_name[product.name.strip().lower()] = product.local_price
        return prices

    def price_for(self, item: LineItemDraft) -> Optional[float]:
        if item.shopify_product_id and item.shopify_product_id in self.by_shopify_id:
            return self.by_shopify_id[item.shopify_product_id]
        if item.sku and item.sku.strip().lower() in self.by_sku:
            return self.by_sku[item.sku.strip().lower()]
        return self.by_name.get((item.product_name or "").strip().lower())


def load_price_list(db: Session, venue_id: Optional[int]) -> PriceList:
    """Active products of a venue. No venue means an empty list."""
    if venue_id is None:
        return PriceList()
    products = db.query(Product).filter(Product.venue_id == venue_id, Product.active.is_(True)).all()
    return PriceList.from_products(products)


def calculate_local_amount(line_items: Iterable[LineItemDraft], price_list: PriceList) -> Optional[float]:
    """Sum of local price * quantity over matched items; None when nothing matches."""
    total = 0.0
    matched = False
    for item in line_items:
        price = price_list.price_for(item)
        if price is None:
            logger.warning("Unknown product: %s", item.product_name)
            continue
        matched = True
        total += price * item.quantity
    return total if matched else None


def calculate_order_amounts(line_items: Iterable[LineItemDraft], exchange_rate: float, price_list: PriceList) -> dict:
    original_amount = calculate_local_amount(line_items, price_list)
    if original_amount is None:
        return {"original_amount": None, "base_amount": None, "total_amount": 0}
    amounts = calculate_from_original_amount(original_amount, exchange_rate)
    if amounts.base_amount is None:
        return {"original_amount": None, "base_amount": None, "total_amount": 0}
    return {
        "original_amount": original_amount,
        "base_amount": amounts.base_amount,
        "total_amount": amounts.total_amount,
    }
