from sqlalchemy import Column, DateTime, String

from .base import Base


class User(Base):
    """Application user record.

    ``user_plan`` and ``subscription_expires_at`` are a denormalized cache of
    the user's subscription, read by other subsystems for fast plan checks.
    """
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    user_plan = Column(String(32), nullable=False, default="free")
    subscription_expires_at = Column(DateTime, nullable=True)
