"""Billing error taxonomy.

Every domain failure raised by the stores, the activation transaction and the
payment router derives from :class:`BillingError`. The API layer renders them
through ``billing_exception_handler`` so endpoints never build error bodies
themselves.
"""
from typing import Any, Dict, Optional

from fastapi import status


class BillingError(Exception):
    """Base class for domain errors carrying an HTTP mapping."""

    code: str = "billing_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False
    default_detail: str = "Billing request failed"

    def __init__(self, detail: Optional[str] = None, *, order_id: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.order_id = order_id
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        if self.order_id:
            body["order_id"] = self.order_id
        if self.retryable:
            body["retryable"] = True
        return body


class InvalidPlan(BillingError):
    code = "invalid_plan"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Unknown plan or billing cycle"


class OrderNotFound(BillingError):
    code = "order_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Order not found"


class SubscriptionNotFound(BillingError):
    code = "subscription_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "No subscription found"


class InvalidStateTransition(BillingError):
    code = "invalid_state_transition"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Order cannot move to the requested state"


class PaymentNotCompleted(BillingError):
    code = "payment_not_completed"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Payment has not been completed"


class AuthRequired(BillingError):
    code = "auth_required"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class AuthExpired(BillingError):
    code = "auth_expired"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Token has expired, please sign in again"


class AuthInvalid(BillingError):
    code = "auth_invalid"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid token"


class SimulatedPaymentsDisabled(BillingError):
    code = "simulated_payments_disabled"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Simulated payments are disabled in this environment"


class CallbackForbidden(BillingError):
    code = "callback_forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Invalid callback secret"


class PartialActivationFailure(BillingError):
    """Order is paid but the subscription or projection write did not land.

    The charge succeeded, so this is reported as accepted-and-retryable rather
    than as a failed payment. Re-confirming the same order resumes the
    remaining steps.
    """

    code = "partial_activation"
    status_code = status.HTTP_202_ACCEPTED
    retryable = True
    default_detail = "Payment recorded; subscription activation is pending, retry confirmation"


class GatewayUnavailable(BillingError):
    code = "gateway_unavailable"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    retryable = True
    default_detail = "Payment gateway did not respond; payment state is unknown"


class StoreUnavailable(BillingError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
    default_detail = "Storage is temporarily unavailable, retry later"
