from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from .base import Base


STRIPE_SETUP_NOT_STARTED = "not_started"
STRIPE_SETUP_IN_PROGRESS = "in_progress"
STRIPE_SETUP_COMPLETE = "complete"


class Store(Base):
    __tablename__ = "store"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("user.id"), nullable=False, unique=True)
    stripe_account_id = Column(String(64), nullable=False, unique=True)
    stripe_setup_status = Column(String(32), nullable=False, default=STRIPE_SETUP_NOT_STARTED)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(255), nullable=False)
    province = Column(String(255), nullable=False)
    zip = Column(String(32), nullable=False)
    country = Column(String(2), nullable=False)
    orders_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
