from datetime import datetime
from typing import Optional

from .base import BaseSchema
from .enums import BillingCycle, PlanType, SubscriptionStatus


class SubscriptionResponse(BaseSchema):
    """Stored subscription record."""
    user_id: str
    plan_type: PlanType
    cycle: BillingCycle
    status: SubscriptionStatus
    start_date: datetime
    expires_at: datetime
    last_order_id: Optional[str] = None
    last_order_paid_at: Optional[datetime] = None
    updated_at: datetime


class SubscriptionView(BaseSchema):
    """Effective entitlement, derived from the live subscription at read time."""
    user_id: str
    plan_type: str
    subscribed_plan_type: Optional[PlanType] = None
    cycle: Optional[BillingCycle] = None
    status: SubscriptionStatus
    start_date: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    days_left: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is SubscriptionStatus.ACTIVE
