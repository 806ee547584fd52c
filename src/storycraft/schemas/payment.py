from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from .enums import BillingCycle, OrderStatus, PaymentMethod, PlanType


class ConfirmedPayment(BaseModel):
    """A payment confirmation normalized from any confirmation channel."""
    order_id: str
    user_id: str
    plan_type: PlanType
    cycle: BillingCycle
    payment_method: PaymentMethod
    payment_data: Optional[Dict[str, Any]] = None


# request
class GatewayConfirmRequest(BaseModel):
    """Hosted-checkout completion, identified by the gateway session id."""
    session_id: str


class PaymentCallbackRequest(BaseModel):
    """Generic payment callback posted by a payment backend."""
    order_id: str
    payment_status: str
    payment_data: Optional[Dict[str, Any]] = None


class SimulatedPaymentRequest(BaseModel):
    """Full order payload for a simulated success."""
    model_config = ConfigDict(extra="allow")

    order_id: str
    plan_type: PlanType
    cycle: BillingCycle


# response
class PaymentResult(BaseModel):
    order_id: str
    status: OrderStatus
