from .base import BaseSchema
from .enums import (
    FREE_PLAN,
    BillingCycle,
    OrderStatus,
    PaymentMethod,
    PlanType,
    RenewalPolicy,
    SubscriptionStatus,
)
from .order import CheckoutSessionRequest, CheckoutSessionResponse, OrderCreate, OrderResponse
from .payment import (
    ConfirmedPayment,
    GatewayConfirmRequest,
    PaymentCallbackRequest,
    PaymentResult,
    SimulatedPaymentRequest,
)
from .plan import PlanEntry
from .subscription import SubscriptionResponse, SubscriptionView
from .user import UserInfo
