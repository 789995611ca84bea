from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from .base import Base


PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_PROCESSING_REFUND = "processing_refund"
PAYMENT_REFUNDED = "refunded"

ORDER_IN_PROGRESS = "in_progress"
ORDER_SHIPPED = "shipped"
ORDER_CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "order"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("user.id"), nullable=False)
    store_id = Column(String(36), ForeignKey("store.id"), nullable=False)
    address_id = Column(String(36), ForeignKey("address.id"), nullable=False)
    # stripe payment intent id
    payment_id = Column(String(128), nullable=True, unique=True)
    subtotal = Column(Integer, nullable=False)
    shipping_total = Column(Integer, nullable=False)
    grand_total = Column(Integer, nullable=False)
    payment_status = Column(String(32), nullable=False, default=PAYMENT_PENDING)
    order_status = Column(String(32), nullable=False, default=ORDER_IN_PROGRESS)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("OrderItem", order_by="OrderItem.created_at", lazy="selectin")


class OrderItem(Base):
    __tablename__ = "order_item"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("order.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("product.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    images = Column(JSON, nullable=True)
    price = Column(Integer, nullable=False)
    shipping_price = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
