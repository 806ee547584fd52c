"""Hosted-checkout payment gateway (Stripe Checkout).

The gateway is an opaque confirmation oracle: it opens checkout sessions and
reports whether a session was paid. Calls are bounded by a short timeout and
are not retried; a timeout means "unknown", never "not paid".
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import stripe
from pydantic import BaseModel, Field

from storycraft.core.config import Settings
from storycraft.core.errors import GatewayUnavailable, PaymentNotCompleted
from storycraft.schemas.plan import PlanEntry
from storycraft.services.plan_catalog import amount_in_minor_units

logger = logging.getLogger(__name__)


class CheckoutSession(BaseModel):
    """Gateway checkout session, reduced to what confirmation needs."""
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    customer_email: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class PaymentGateway:
    async def create_checkout_session(
        self,
        *,
        order_id: str,
        user_id: str,
        plan: PlanEntry,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        raise NotImplementedError

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        raise NotImplementedError


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return dict(obj)
    return {}


def _to_checkout_session(raw: Any) -> CheckoutSession:
    data = _as_dict(raw)
    payment_intent = data.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    return CheckoutSession(
        id=data["id"],
        url=data.get("url"),
        payment_status=data.get("payment_status"),
        metadata={k: str(v) for k, v in (data.get("metadata") or {}).items()},
        payment_intent=payment_intent,
        amount_total=data.get("amount_total"),
        currency=data.get("currency"),
        customer_email=data.get("customer_email") or (data.get("customer_details") or {}).get("email"),
    )


class StripeGateway(PaymentGateway):
    """Stripe Checkout in one-time ``payment`` mode."""

    def __init__(self, api_key: str, *, currency: str = "cny", timeout: float = 10.0):
        self.currency = currency
        self.timeout = timeout
        self.client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    async def _call(self, action: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe {action} timed out or could not connect: {str(e)}")
            raise GatewayUnavailable()
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe rejected {action}: {str(e)}")
            raise
        except stripe.StripeError as e:
            logger.error(f"Stripe {action} failed: {str(e)}")
            raise GatewayUnavailable(f"Payment gateway error: {e.user_message or 'unavailable'}")

    async def create_checkout_session(
        self,
        *,
        order_id: str,
        user_id: str,
        plan: PlanEntry,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        params = {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": plan.display_name,
                            "description": f"{plan.plan_type.value} - {plan.cycle.value}",
                        },
                        "unit_amount": amount_in_minor_units(plan.price),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            # confirmation reads the order back from this metadata
            "client_reference_id": order_id,
            "metadata": {
                "orderId": order_id,
                "userId": user_id,
                "planType": plan.plan_type.value,
                "cycle": plan.cycle.value,
            },
        }
        try:
            raw = await self._call("checkout create", self.client.checkout.sessions.create, params=params)
        except stripe.InvalidRequestError as e:
            raise GatewayUnavailable(f"Could not create checkout session: {e.user_message or 'invalid request'}")
        session = _to_checkout_session(raw)
        logger.info(f"Created checkout session {session.id} for order {order_id}")
        return session

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        try:
            raw = await self._call("checkout retrieve", self.client.checkout.sessions.retrieve, session_id)
        except stripe.InvalidRequestError:
            raise PaymentNotCompleted("Checkout session not found")
        return _to_checkout_session(raw)


def build_gateway(settings: Settings) -> PaymentGateway:
    """Construct a gateway client for one request."""
    if not settings.STRIPE_SECRET_KEY:
        raise GatewayUnavailable("Payment gateway is not configured")
    return StripeGateway(
        settings.STRIPE_SECRET_KEY,
        currency=settings.STRIPE_CURRENCY,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )
