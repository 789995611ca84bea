from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from .base import Base


class Notification(Base):
    __tablename__ = "notification"

    id = Column(String(36), primary_key=True)
    notifier_id = Column(String(36), ForeignKey("user.id"), nullable=False)
    notified_id = Column(String(36), ForeignKey("user.id"), nullable=False)
    # related order id
    model_id = Column(String(36), nullable=False)
    action = Column(String(32), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
