"""
Source-specific order inputs and the canonical draft they normalize into.

Shopify orders, CSV rows and manually entered orders each have their own input
type; `to_order_draft()` maps them into an `OrderDraft`, which is the only shape
the reconciliation engine accepts.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from dateutil import parser as date_parser

from app.models import OrderSource, utcnow
from app.services.order_amounts import calculate_from_original_amount
from app.services.order_numbers import normalize_order_number


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(value: Union[str, datetime, None]) -> datetime:
    """Parse an ISO-8601 (or common human) timestamp into naive UTC. Raises ValueError."""
    if value is None:
        raise ValueError("Missing timestamp")
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value).strip()
    if not text:
        raise ValueError("Missing timestamp")
    try:
        return to_naive_utc(date_parser.parse(text))
    except (ValueError, OverflowError) as e:
        raise ValueError(f'Invalid date "{text}"') from e


def split_tags(tags: Union[str, List[str], None]) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [str(tag).strip() for tag in tags if str(tag).strip()]


def resolve_total(original_amount: Optional[float], exchange_rate: Optional[float], total_amount: Optional[float]) -> float:
    """Derived total when a local amount and a positive rate are known, else the supplied total."""
    if original_amount is not None and exchange_rate and exchange_rate > 0:
        return calculate_from_original_amount(original_amount, exchange_rate).total_amount
    return float(total_amount or 0)


@dataclass
class LineItemDraft:
    product_name: str
    quantity: int = 1
    sku: Optional[str] = None
    shopify_product_id: Optional[str] = None
    price: float = 0.0
    total: float = 0.0


@dataclass
class OrderDraft:
    """Canonical order-creation structure."""
    processed_at: datetime
    source: str
    external_id: Optional[str] = None
    order_number: Optional[str] = None
    shopify_order_number: Optional[str] = None
    customer_name: str = "No Customer"
    status: str = "Open"
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_amount: float = 0.0
    original_amount: Optional[float] = None
    exchange_rate: Optional[float] = None
    currency: str = "USD"
    shipping_city: Optional[str] = None
    shipping_country: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    venue_id: Optional[int] = None
    venue_name: Optional[str] = None
    shopify_store_id: Optional[int] = None
    line_items: List[LineItemDraft] = field(default_factory=list)

    def __post_init__(self):
        self.total_amount = resolve_total(self.original_amount, self.exchange_rate, self.total_amount)

    @property
    def key(self) -> Optional[str]:
        return self.external_id or self.order_number or self.shopify_order_number


@dataclass
class ShopifyOrderInput:
    """A Shopify order after transformation (see `app.services.shopify.transform_shopify_order`)."""
    external_id: str
    shopify_order_number: str
    processed_at: datetime
    customer_name: str = "No Customer"
    status: str = "Open"
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_amount: float = 0.0
    original_amount: Optional[float] = None
    exchange_rate: Optional[float] = None
    currency: str = "USD"
    shipping_city: Optional[str] = None
    shipping_country: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    shopify_store_id: Optional[int] = None
    line_items: List[LineItemDraft] = field(default_factory=list)

    def to_order_draft(self, venue_id: Optional[int] = None) -> OrderDraft:
        return OrderDraft(
            processed_at=to_naive_utc(self.processed_at),
            source=OrderSource.SHOPIFY.value,
            external_id=str(self.external_id),
            shopify_order_number=self.shopify_order_number,
            customer_name=self.customer_name or "No Customer",
            status=self.status,
            financial_status=self.financial_status,
            fulfillment_status=self.fulfillment_status,
            total_amount=self.total_amount,
            original_amount=self.original_amount,
            exchange_rate=self.exchange_rate,
            currency=self.currency or "USD",
            shipping_city=self.shipping_city,
            shipping_country=self.shipping_country,
            tags=list(self.tags),
            notes=self.notes,
            venue_id=venue_id,
            shopify_store_id=self.shopify_store_id,
            line_items=list(self.line_items),
        )

    def to_dict(self) -> dict:
        return {
            "externalId": self.external_id,
            "shopifyStoreId": self.shopify_store_id,
            "orderNumber": self.shopify_order_number,
            "customerName": self.customer_name,
            "status": self.status,
            "financialStatus": self.financial_status,
            "fulfillmentStatus": self.fulfillment_status,
            "totalAmount": self.total_amount,
            "originalAmount": self.original_amount,
            "exchangeRate": self.exchange_rate,
            "currency": self.currency,
            "processedAt": self.processed_at.isoformat(),
            "shippingCity": self.shipping_city,
            "shippingCountry": self.shipping_country,
            "tags": self.tags,
            "notes": self.notes,
            "lineItems": [
                {
                    "productName": item.product_name,
                    "quantity": item.quantity,
                    "sku": item.sku,
                    "shopifyProductId": item.shopify_product_id,
                    "price": item.price,
                    "total": item.total,
                }
                for item in self.line_items
            ],
        }


@dataclass
class CsvOrderRow:
    """One parsed `date,amount` line of a CSV upload."""
    line: int
    processed_at: datetime
    original_amount: float

    def to_order_draft(
        self,
        exchange_rate: float,
        venue_name: Optional[str] = None,
        customer_name: str = "CSV Import",
        venue_id: Optional[int] = None,
    ) -> OrderDraft:
        return OrderDraft(
            processed_at=to_naive_utc(self.processed_at),
            source=OrderSource.CSV.value,
            customer_name=customer_name,
            status="Open",
            financial_status="Paid",
            original_amount=self.original_amount,
            exchange_rate=exchange_rate,
            currency="USD",
            notes="Imported via CSV",
            venue_name=venue_name,
            venue_id=venue_id,
        )


@dataclass
class ManualOrderInput:
    processed_at: Optional[datetime] = None
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    status: str = "Open"
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_amount: Optional[float] = None
    original_amount: Optional[float] = None
    exchange_rate: Optional[float] = None
    currency: str = "USD"
    shipping_city: Optional[str] = None
    shipping_country: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    venue_id: Optional[int] = None
    venue_name: Optional[str] = None
    line_items: List[LineItemDraft] = field(default_factory=list)

    def to_order_draft(self, default_exchange_rate: float) -> OrderDraft:
        customer_name = (self.customer_name or "").strip() or "No Customer"
        financial_status = (self.financial_status or "").strip() or "Paid"
        exchange_rate = self.exchange_rate if self.exchange_rate and self.exchange_rate > 0 else default_exchange_rate
        original_amount = self.original_amount if self.original_amount is not None and self.original_amount >= 0 else None
        return OrderDraft(
            processed_at=to_naive_utc(self.processed_at) if self.processed_at else utcnow(),
            source=OrderSource.MANUAL.value,
            order_number=normalize_order_number(self.order_number),
            customer_name=customer_name,
            status=self.status or "Open",
            financial_status=financial_status,
            fulfillment_status=self.fulfillment_status,
            total_amount=self.total_amount or 0,
            original_amount=original_amount,
            exchange_rate=exchange_rate,
            currency=self.currency or "USD",
            shipping_city=self.shipping_city,
            shipping_country=self.shipping_country,
            tags=split_tags(self.tags),
            notes=self.notes,
            venue_id=self.venue_id,
            venue_name=self.venue_name,
            line_items=[item for item in self.line_items if item.product_name.strip()],
        )
