from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from app.database import Base, utcnow

PRODUCT_TYPES = ("physical", "digital", "service")
PRODUCT_STATUSES = ("active", "inactive", "deleted")
PAYMENT_METHODS = ("stripe", "green_points", "mixed")
PAYMENT_STATUSES = ("pending", "completed", "failed", "canceled")
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "fulfilled", "cancelled")


class Product(Base):
    __tablename__ = "marketplace_products"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    price_cents = Column(Integer, nullable=False)  # minor currency units
    currency = Column(String, nullable=False, default="USD")
    green_points_price = Column(Integer, nullable=True)
    category = Column(String, index=True, nullable=False)
    type = Column(String, nullable=False, default="physical")  # physical|digital|service
    stock_quantity = Column(Integer, nullable=True)  # None = unlimited
    images = Column(Text, default="[]")  # JSON array string
    status = Column(String, nullable=False, default="active")  # active|inactive|deleted
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Order(Base):
    __tablename__ = "marketplace_orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    seller_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("marketplace_products.id"), index=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False, default=0)
    total_price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    green_points_used = Column(Integer, nullable=False, default=0)
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, nullable=False, default="pending")
    order_status = Column(String, nullable=False, default="pending")
    stripe_payment_intent_id = Column(String, index=True, nullable=True)
    shipping_address = Column(Text, nullable=True)  # JSON object string
    tracking_number = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
