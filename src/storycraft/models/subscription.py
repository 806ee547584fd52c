from sqlalchemy import Column, DateTime, String

from .base import Base


class Subscription(Base):
    """A user's current entitlement window. One row per user."""
    __tablename__ = "subscriptions"

    user_id = Column(String(64), primary_key=True)
    plan_type = Column(String(32), nullable=False)
    cycle = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="active")  # active | cancelled
    start_date = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_order_id = Column(String(64), nullable=True)
    last_order_paid_at = Column(DateTime, nullable=True)
