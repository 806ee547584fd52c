from decimal import Decimal

from .base import BaseSchema
from .enums import BillingCycle, PlanType


class PlanEntry(BaseSchema):
    """One purchasable plan/cycle combination."""
    plan_type: PlanType
    cycle: BillingCycle
    price: Decimal
    list_price: Decimal
    duration_days: int
    display_name: str
