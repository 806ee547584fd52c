from sqlalchemy import Column, DateTime, Index, Integer, JSON, Numeric, String

from .base import Base


class Order(Base):
    """A single purchase intent and its terminal payment outcome."""
    __tablename__ = "orders"

    order_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    plan_type = Column(String(32), nullable=False)
    cycle = Column(String(16), nullable=False)
    plan_name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    list_price = Column(Numeric(10, 2), nullable=False)
    duration_days = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending")  # pending | paid | failed
    payment_method = Column(String(16), nullable=True)  # gateway | simulated | callback
    payment_data = Column(JSON, nullable=True)
    gateway_session_id = Column(String(255), nullable=True, unique=True)
    # hold window of a pending order, not the entitlement window
    expires_at = Column(DateTime, nullable=False)
    # when the order moved to paid; orders the subscription by purchase
    paid_at = Column(DateTime, nullable=True)
    # set once subscription and projection reflect this order
    activated_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_orders_user_created", "user_id", "created_at"),)
