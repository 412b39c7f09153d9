"""
Pydantic schemas for request/response validation (Http/Requests).
"""
from pydantic import BaseModel, Field, validator
from typing import Optional, List, Union
from datetime import datetime
from app.models import UserRole

# Auth Schemas
class LoginRequest(BaseModel):
    email: str
    password: str

    @validator('email')
    def validate_email(cls, v):
        if '@' not in v or len(v.split('@')) != 2:
            raise ValueError('Invalid email format')
        return v.lower().strip()

class LoginResponse(BaseModel):
    user: dict
    token: str

class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]
    role: UserRole
    venueIds: List[int]

# Order Schemas
class LineItemRequest(BaseModel):
    productName: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    sku: Optional[str] = None
    shopifyProductId: Optional[str] = None
    price: float = Field(0, ge=0)
    total: float = Field(0, ge=0)

class OrderCreateRequest(BaseModel):
    orderNumber: Optional[str] = None
    customerName: Optional[str] = None
    status: str = "Open"
    financialStatus: Optional[str] = None
    fulfillmentStatus: Optional[str] = None
    totalAmount: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    processedAt: Optional[datetime] = None
    shippingCity: Optional[str] = None
    shippingCountry: Optional[str] = None
    tags: Union[List[str], str, None] = None
    notes: Optional[str] = None
    lineItems: List[LineItemRequest] = []
    originalAmount: Optional[float] = Field(None, ge=0)
    exchangeRate: Optional[float] = Field(None, gt=0)
    venueId: Optional[int] = None
    venue: Optional[str] = None

class OrderUpdateRequest(BaseModel):
    orderNumber: Optional[str] = None
    customerName: Optional[str] = None
    status: Optional[str] = None
    financialStatus: Optional[str] = None
    fulfillmentStatus: Optional[str] = None
    totalAmount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    processedAt: Optional[datetime] = None
    shippingCity: Optional[str] = None
    shippingCountry: Optional[str] = None
    tags: Union[List[str], str, None] = None
    notes: Optional[str] = None
    lineItems: Optional[List[LineItemRequest]] = None
    originalAmount: Optional[float] = Field(None, ge=0)
    exchangeRate: Optional[float] = Field(None, gt=0)
    venueId: Optional[int] = None
    venue: Optional[str] = None

class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)

# CSV import
class CsvOrderItem(BaseModel):
    processedAt: datetime
    originalAmount: float = Field(..., ge=0)

class CsvImportRequest(BaseModel):
    csv: Optional[str] = None
    orders: Optional[List[CsvOrderItem]] = None
    exchangeRate: Optional[float] = Field(None, gt=0)
    venue: Optional[str] = None
    venueId: Optional[int] = None
    customerName: Optional[str] = None

# Shopify Schemas
class ShopifyFetchRequest(BaseModel):
    storeId: int
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    sinceId: Optional[str] = None

class ShopifyImportOrder(BaseModel):
    externalId: str
    shopifyStoreId: Optional[int] = None
    orderNumber: str
    customerName: str = "No Customer"
    status: str = "Open"
    financialStatus: Optional[str] = None
    fulfillmentStatus: Optional[str] = None
    totalAmount: float = 0
    originalAmount: Optional[float] = None
    exchangeRate: Optional[float] = None
    currency: str = "USD"
    processedAt: datetime
    shippingCity: Optional[str] = None
    shippingCountry: Optional[str] = None
    tags: List[str] = []
    notes: Optional[str] = None
    lineItems: List[LineItemRequest] = []

class ShopifyImportRequest(BaseModel):
    storeId: Optional[int] = None
    orders: List[ShopifyImportOrder]

class ShopifyStoreRequest(BaseModel):
    storeId: int

class PendingApproveRequest(BaseModel):
    orderIds: List[int] = Field(..., min_length=1)
    venueId: int

class PendingIgnoreRequest(BaseModel):
    orderIds: List[int] = Field(..., min_length=1)

class ShopifyProductImportItem(BaseModel):
    shopifyProductId: str
    name: str
    sku: Optional[str] = None
    localPrice: float = Field(..., ge=0)

class ShopifyProductImportRequest(BaseModel):
    storeId: int
    products: List[ShopifyProductImportItem]

class ShopifyStoreCreateRequest(BaseModel):
    storeDomain: str = Field(..., min_length=1)
    accessToken: str = Field(..., min_length=1)
    nickname: Optional[str] = None
    venueId: int

class ShopifyStoreUpdateRequest(BaseModel):
    storeDomain: Optional[str] = None
    accessToken: Optional[str] = None
    nickname: Optional[str] = None
    venueId: Optional[int] = None

# Mercury / Payout Schemas
class MercurySettingsRequest(BaseModel):
    apiKey: Optional[str] = None
    accountId: Optional[str] = None
    enabled: bool = True

class MercuryFetchRequest(BaseModel):
    accountId: str
    startDate: Optional[str] = None
    endDate: Optional[str] = None

class MercuryImportRequest(BaseModel):
    accountId: str
    transactionIds: List[str] = Field(..., min_length=1)
    venueId: int

class MercurySyncRequest(BaseModel):
    payoutIds: Optional[List[int]] = None
    syncAll: bool = False

class MercuryTestRequest(BaseModel):
    apiKey: str = Field(..., min_length=1)

class PayoutCreateRequest(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str = "USD"
    status: str = "Posted"
    description: str = "Payout"
    account: str = "Payouts"
    processedAt: Optional[datetime] = None
    notes: Optional[str] = None
    venueId: int

class PayoutUpdateRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    account: Optional[str] = None
    processedAt: Optional[datetime] = None
    notes: Optional[str] = None
    venueId: Optional[int] = None

# Venue / User / Product Schemas
class VenueCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)

class VenueUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

class UserCreateRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    name: Optional[str] = None
    role: UserRole = UserRole.USER
    venueIds: List[int] = []

    @validator('email')
    def validate_email(cls, v):
        if '@' not in v or len(v.split('@')) != 2:
            raise ValueError('Invalid email format')
        return v.lower().strip()

class UserUpdateRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    venueIds: Optional[List[int]] = None

class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    shopifyProductId: Optional[str] = None
    localPrice: float = Field(..., ge=0)
    venueId: int
    active: bool = True

class ProductUpdateRequest(BaseModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    shopifyProductId: Optional[str] = None
    localPrice: Optional[float] = Field(None, ge=0)
    active: Optional[bool] = None
