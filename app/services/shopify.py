"""
Shopify Admin REST API client and order transformation.
"""
import logging
import re
from typing import List, Optional

import httpx

from app.config import settings
from app.models import ShopifyStore, utcnow
from app.services.credentials import get_store_access_token
from app.services.http_client import get_json
from app.services.order_sources import LineItemDraft, ShopifyOrderInput, parse_datetime, split_tags
from app.services.product_pricing import PriceList, calculate_order_amounts

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250
_NEXT_LINK = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?')
_WORD_SPLIT = re.compile(r"[_\s]")


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """URL of the rel="next" entry of a Link header, if any."""
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _NEXT_LINK.search(part)
        if match:
            return match.group(1)
    return None


def normalize_store_domain(domain: str) -> str:
    domain = (domain or "").strip().lower()
    domain = re.sub(r"^https?://", "", domain).rstrip("/")
    if domain and "." not in domain:
        domain = f"{domain}.myshopify.com"
    return domain


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in _WORD_SPLIT.split(value))


class ShopifyService:
    def __init__(
        self,
        store_domain: str,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.shop = normalize_store_domain(store_domain)
        self.token = access_token
        self.transport = transport
        self.base_url = f"https://{self.shop}/admin/api/{settings.SHOPIFY_API_VERSION}"
        self.headers = {
            "X-Shopify-Access-Token": self.token,
            "Content-Type": "application/json",
        }

    @classmethod
    def for_store(cls, store: ShopifyStore, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ShopifyService":
        return cls(store.store_domain, get_store_access_token(store), transport=transport)

    async def _get_paginated(self, path: str, key: str, params: dict) -> List[dict]:
        results: List[dict] = []
        url: Optional[str] = f"{self.base_url}/{path}"
        page_params: Optional[dict] = params
        while url:
            data, resp = await get_json(
                url, service="Shopify", params=page_params, headers=self.headers, transport=self.transport
            )
            results.extend((data or {}).get(key) or [])
            url = parse_next_link(resp.headers.get("Link"))
            # The next link already carries page_info and limit.
            page_params = None
        return results

    async def fetch_orders(
        self,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        since_id: Optional[str] = None,
    ) -> List[dict]:
        """All orders (any status) matching the filters, following pagination."""
        params = {"status": "any", "limit": PAGE_LIMIT}
        if since_id:
            params["since_id"] = since_id
        if created_at_min:
            params["created_at_min"] = created_at_min
        if created_at_max:
            params["created_at_max"] = created_at_max
        orders = await self._get_paginated("orders.json", "orders", params)
        logger.info("Fetched %s orders from %s", len(orders), self.shop)
        return orders

    async def fetch_products(self, status: str = "active") -> List[dict]:
        products = await self._get_paginated("products.json", "products", {"limit": PAGE_LIMIT, "status": status})
        logger.info("Fetched %s products from %s", len(products), self.shop)
        return products

    async def test_connection(self) -> dict:
        """Shop information; raises UpstreamError if the credentials are rejected."""
        data, _ = await get_json(
            f"{self.base_url}/shop.json", service="Shopify", headers=self.headers, max_retries=0, transport=self.transport
        )
        return (data or {}).get("shop", {})


def flatten_products(products: List[dict]) -> List[dict]:
    """One entry per variant, as offered for import into the local price list."""
    return [
        {
            "shopifyProductId": str(product.get("id")),
            "variantId": str(variant.get("id")) if variant.get("id") is not None else None,
            "name": product.get("title") or "",
            "sku": variant.get("sku") or None,
            "price": float(variant.get("price") or 0),
            "status": product.get("status"),
        }
        for product in products
        for variant in product.get("variants") or []
    ]


def _line_items(raw: dict) -> List[LineItemDraft]:
    items = []
    for item in raw.get("line_items") or []:
        price = float(item.get("price") or 0)
        quantity = int(item.get("quantity") or 0)
        # Variant id matches more precisely than product id.
        product_ref = item.get("variant_id") or item.get("product_id")
        items.append(LineItemDraft(
            product_name=item.get("name") or item.get("title") or "",
            quantity=quantity,
            sku=item.get("sku") or None,
            shopify_product_id=str(product_ref) if product_ref else None,
            price=price,
            total=price * quantity,
        ))
    return items


def transform_shopify_order(
    raw: dict,
    exchange_rate: float,
    price_list: Optional[PriceList] = None,
    store_id: Optional[int] = None,
) -> ShopifyOrderInput:
    customer = raw.get("customer") or {}
    shipping = raw.get("shipping_address") or {}
    billing = raw.get("billing_address") or {}

    customer_name = " ".join(p for p in (customer.get("first_name"), customer.get("last_name")) if p) or "No Customer"
    line_items = _line_items(raw)
    amounts = calculate_order_amounts(line_items, exchange_rate, price_list or PriceList())

    financial_status = raw.get("financial_status")
    fulfillment_status = raw.get("fulfillment_status")
    processed_at = raw.get("processed_at") or raw.get("created_at")

    return ShopifyOrderInput(
        external_id=str(raw.get("id")),
        shopify_order_number=raw.get("name") or f"#{raw.get('order_number')}",
        processed_at=parse_datetime(processed_at) if processed_at else utcnow(),
        customer_name=customer_name,
        status="Closed" if financial_status == "refunded" else "Open",
        financial_status=title_case(financial_status) if financial_status else None,
        fulfillment_status=title_case(fulfillment_status) if fulfillment_status else None,
        total_amount=amounts["total_amount"],
        original_amount=amounts["original_amount"],
        exchange_rate=exchange_rate,
        currency=raw.get("currency") or "USD",
        shipping_city=shipping.get("city") or billing.get("city") or customer.get("last_name") or None,
        shipping_country=shipping.get("country") or billing.get("country") or None,
        tags=split_tags(raw.get("tags")),
        notes=raw.get("note") or None,
        shopify_store_id=store_id,
        line_items=line_items,
    )
