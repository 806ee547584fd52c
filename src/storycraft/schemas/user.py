from datetime import datetime
from typing import Optional

from .base import BaseSchema
from .enums import SubscriptionStatus


class UserInfo(BaseSchema):
    """User profile with the effective plan resolved from the subscription."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    user_plan: str = "free"
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    subscription_expires_at: Optional[datetime] = None
