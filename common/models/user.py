from sqlalchemy import Boolean, Column, DateTime, String, func
from .base import Base


class User(Base):
    __tablename__ = "user"

    id = Column(String(36), primary_key=True)
    username = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, unique=True)
    image = Column(String(512), nullable=True)
    can_sell = Column(Boolean, nullable=False, default=False)
    has_store = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
