from enum import Enum


class PlanType(str, Enum):
    """Purchasable plan families."""
    BASIC_LANGUAGE = "basic_language"
    EXTENDED_LANGUAGE = "extended_language"


class BillingCycle(str, Enum):
    """Billing cycles a plan can be bought for."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class OrderStatus(str, Enum):
    """Order lifecycle. ``paid`` and ``failed`` are terminal."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class PaymentMethod(str, Enum):
    """Confirmation channel that terminalized an order."""
    GATEWAY = "gateway"
    SIMULATED = "simulated"
    CALLBACK = "callback"


class SubscriptionStatus(str, Enum):
    """Statuses as reported to callers.

    Only ``active`` and ``cancelled`` are stored; ``expired`` and ``free`` are
    derived when a subscription is read.
    """
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FREE = "free"


class RenewalPolicy(str, Enum):
    """How a purchase applies to an existing unexpired subscription."""
    REPLACE = "replace"
    STACK = "stack"


FREE_PLAN = "free"
