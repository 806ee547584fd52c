from .base import Base
from .core import User
from .order import Order
from .subscription import Subscription

__all__ = [
    "Base",
    "User",
    "Order",
    "Subscription",
]
