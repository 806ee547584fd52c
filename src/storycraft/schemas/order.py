from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .base import BaseSchema
from .enums import BillingCycle, OrderStatus, PaymentMethod, PlanType


# request
class OrderCreate(BaseModel):
    """Purchase intent. Price and duration always come from the plan catalog,
    which also rejects unknown combinations."""
    plan_type: str
    cycle: str


class CheckoutSessionRequest(BaseModel):
    """Request to open a hosted checkout for a pending order."""
    success_url: str
    cancel_url: str


# response
class OrderResponse(BaseSchema):
    """Order as returned to its owner."""
    order_id: str
    user_id: str
    plan_type: PlanType
    cycle: BillingCycle
    plan_name: str
    price: Decimal
    list_price: Decimal
    duration_days: int
    status: OrderStatus
    payment_method: Optional[PaymentMethod] = None
    payment_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    paid_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    is_abandoned: bool = False


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str
