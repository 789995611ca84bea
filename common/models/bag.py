"""Pending cart, one per (store, buyer)."""
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base


class Bag(Base):
    __tablename__ = "bag"
    __table_args__ = (UniqueConstraint("store_id", "user_id", name="uq_bag_store_user"),)

    id = Column(String(36), primary_key=True)
    store_id = Column(String(36), ForeignKey("store.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("user.id"), nullable=False)
    subtotal = Column(Integer, nullable=False, default=0)
    shipping_total = Column(Integer, nullable=False, default=0)
    grand_total = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    items = relationship("BagItem", order_by="BagItem.created_at", lazy="selectin")


class BagItem(Base):
    """Snapshot of a product at the time it was added."""
    __tablename__ = "bag_item"
    __table_args__ = (UniqueConstraint("bag_id", "product_id", name="uq_bag_item_product"),)

    id = Column(String(36), primary_key=True)
    bag_id = Column(String(36), ForeignKey("bag.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("product.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    images = Column(JSON, nullable=True)
    price = Column(Integer, nullable=False)
    shipping_price = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
