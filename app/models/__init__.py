"""
SQLAlchemy models for orders, venues, payouts and the integration caches.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Float, ForeignKey, Table, Enum as SQLEnum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums
class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"

class OrderSource(str, enum.Enum):
    MANUAL = "manual"
    CSV = "csv"
    SHOPIFY = "shopify"


user_venues = Table(
    "user_venues",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("venue_id", Integer, ForeignKey("venues.id", ondelete="CASCADE"), primary_key=True),
)


# Models
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    password_hash = Column("password_hash", String, nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    venues = relationship("Venue", secondary=user_venues, back_populates="users")

class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    users = relationship("User", secondary=user_venues, back_populates="venues")
    orders = relationship("Order", back_populates="venue")
    shopify_stores = relationship("ShopifyStore", back_populates="venue")

class ShopifyStore(Base):
    __tablename__ = "shopify_stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_domain = Column("store_domain", String, unique=True, nullable=False, index=True)
    access_token = Column("access_token", String, nullable=False)  # Encrypted
    nickname = Column(String, nullable=True)
    venue_id = Column("venue_id", Integer, ForeignKey("venues.id", ondelete="RESTRICT"), nullable=False, index=True)
    owner_id = Column("owner_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue", back_populates="shopify_stores")
    orders = relationship("Order", back_populates="shopify_store")

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column("external_id", String, unique=True, nullable=True)
    order_number = Column("order_number", String, unique=True, nullable=False)
    shopify_order_number = Column("shopify_order_number", String, nullable=True)
    customer_name = Column("customer_name", String, nullable=False, default="No Customer")
    status = Column(String, nullable=False, default="Open")
    financial_status = Column("financial_status", String, nullable=True)
    fulfillment_status = Column("fulfillment_status", String, nullable=True)
    total_amount = Column("total_amount", Float, nullable=False, default=0)
    original_amount = Column("original_amount", Float, nullable=True)
    exchange_rate = Column("exchange_rate", Float, nullable=True)
    currency = Column(String, nullable=False, default="USD")
    processed_at = Column("processed_at", DateTime, nullable=False, index=True)
    shipping_city = Column("shipping_city", String, nullable=True)
    shipping_country = Column("shipping_country", String, nullable=True)
    tags = Column(String, nullable=False, default="")
    notes = Column(String, nullable=True)
    source = Column(String, nullable=False, default=OrderSource.MANUAL.value)
    venue_id = Column("venue_id", Integer, ForeignKey("venues.id", ondelete="RESTRICT"), nullable=False, index=True)
    shopify_store_id = Column("shopify_store_id", Integer, ForeignKey("shopify_stores.id", ondelete="SET NULL"), nullable=True)
    created_by_id = Column("created_by_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue", back_populates="orders")
    shopify_store = relationship("ShopifyStore", back_populates="orders")
    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItem.id",
    )

class OrderLineItem(Base):
    __tablename__ = "order_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column("order_id", Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name = Column("product_name", String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    sku = Column(String, nullable=True)
    shopify_product_id = Column("shopify_product_id", String, nullable=True)
    price = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)

    order = relationship("Order", back_populates="line_items")

class ExchangeRate(Base):
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_currency = Column("from_currency", String(3), nullable=False)
    to_currency = Column("to_currency", String(3), nullable=False)
    rate = Column(Float, nullable=False)
    fetched_at = Column("fetched_at", DateTime, nullable=False)
    expires_at = Column("expires_at", DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("from_currency", "to_currency", name="uq_exchange_rates_pair"),
    )

class Payout(Base):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default="USD")
    status = Column(String, nullable=False, default="Posted")
    description = Column(String, nullable=False, default="Payout")
    account = Column(String, nullable=False, default="Payouts")
    processed_at = Column("processed_at", DateTime, nullable=False, index=True)
    notes = Column(String, nullable=True)
    venue_id = Column("venue_id", Integer, ForeignKey("venues.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_id = Column("created_by_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    mercury_transaction_id = Column("mercury_transaction_id", String, unique=True, nullable=True)
    synced_to_mercury = Column("synced_to_mercury", Boolean, default=False, nullable=False)
    synced_at = Column("synced_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue")
    created_by = relationship("User")

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    shopify_product_id = Column("shopify_product_id", String, nullable=True, index=True)
    local_price = Column("local_price", Float, nullable=False)
    venue_id = Column("venue_id", Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue")

    __table_args__ = (
        UniqueConstraint("sku", "venue_id", name="uq_products_sku_venue"),
    )

class MercurySettings(Base):
    __tablename__ = "mercury_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    api_key_encrypted = Column("api_key_encrypted", String, nullable=False)
    account_id = Column("account_id", String, nullable=True)
    enabled = Column(Boolean, default=False, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

class ShopifyImportQueue(Base):
    __tablename__ = "shopify_import_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shopify_order_id = Column("shopify_order_id", String, unique=True, nullable=False)
    store_domain = Column("store_domain", String, nullable=False, index=True)
    order_number = Column("order_number", String, nullable=False)
    total_amount = Column("total_amount", Float, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    financial_status = Column("financial_status", String, nullable=True)
    order_data = Column("order_data", JSON, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())
