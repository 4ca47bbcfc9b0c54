from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from schemas.profile import ProfileSummary


class ProductCreate(BaseModel):
    title: str = Field(max_length=200)
    description: str
    price: float = Field(gt=0)  # major units
    currency: str = "USD"
    green_points_price: Optional[int] = Field(default=None, ge=1)
    category: str
    type: str = "physical"
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    images: List[str] = []

    @field_validator("title", "description", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Field is required")
        return value


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = None
    green_points_price: Optional[int] = Field(default=None, ge=1)
    category: Optional[str] = None
    type: Optional[str] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    images: Optional[List[str]] = None
    status: Optional[str] = None

    @field_validator("title", "description", "category")
    @classmethod
    def not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Field cannot be empty")
        return value


class InventoryUpdate(BaseModel):
    """Set ``quantity`` outright or shift stock by ``adjustment``."""

    product_id: int
    quantity: Optional[int] = Field(default=None, ge=0)
    adjustment: Optional[int] = None


class InventoryResponse(BaseModel):
    product_id: int
    stock_quantity: Optional[int] = None
    status: str


class ProductResponse(BaseModel):
    id: int
    seller_id: str
    seller: Optional[ProfileSummary] = None
    title: str
    description: str
    price_cents: int
    price: float
    currency: str
    green_points_price: Optional[int] = None
    category: str
    type: str
    stock_quantity: Optional[int] = None
    images: List[str] = []
    status: str
    created_at: datetime


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    page: int
    limit: int
    total: int


class OrderCreate(BaseModel):
    product_id: int
    quantity: int = 1
    payment_method: str
    unit_price: Optional[float] = None  # major units, checked against the product
    total_price: Optional[float] = None
    green_points_used: Optional[int] = Field(default=None, ge=0)
    shipping_address: Optional[dict] = None
    notes: Optional[str] = None


class OrderUpdate(BaseModel):
    """Direct order edits; ``payment_status`` is only accepted to be refused."""

    order_status: Optional[str] = None
    tracking_number: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None
    payment_status: Optional[str] = None


class OrderResponse(BaseModel):
    id: int
    buyer_id: str
    seller_id: str
    product_id: int
    product_title: Optional[str] = None
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    currency: str
    green_points_used: int
    payment_method: str
    payment_status: str
    order_status: str
    stripe_payment_intent_id: Optional[str] = None
    shipping_address: Optional[dict] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrderCreateResponse(BaseModel):
    order: OrderResponse
    requires_payment: bool
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    page: int
    limit: int
    total: int


class PaymentIntentCreate(BaseModel):
    """The charge comes from the order; ``amount`` and ``currency`` are only checked."""

    order_id: int
    amount: Optional[float] = Field(default=None, gt=0)  # major units
    currency: Optional[str] = None


class PaymentIntentResponse(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
