from sqlalchemy import Column, DateTime, ForeignKey, String, func
from .base import Base


class Address(Base):
    __tablename__ = "address"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("user.id"), nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(255), nullable=False)
    province = Column(String(255), nullable=False)
    zip = Column(String(32), nullable=False)
    country = Column(String(2), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
