from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storycraft.core.config import Settings
from storycraft.schemas.enums import RenewalPolicy
from storycraft.services.gateway import PaymentGateway
from storycraft.services.plan_catalog import PlanCatalog
from storycraft.utils.clock import Clock, utcnow


@dataclass
class BillingContext:
    """Everything one billing operation needs, built per request.

    Services take the context explicitly instead of reaching for module-level
    clients. The gateway is only constructed when a channel actually calls it.
    """

    db: AsyncSession
    catalog: PlanCatalog
    settings: Settings
    gateway_factory: Optional[Callable[[], PaymentGateway]] = None
    clock: Clock = utcnow
    _gateway: Optional[PaymentGateway] = field(default=None, init=False, repr=False)

    def now(self) -> datetime:
        return self.clock()

    @property
    def gateway(self) -> PaymentGateway:
        if self._gateway is None:
            if self.gateway_factory is None:
                raise RuntimeError("No payment gateway configured for this context")
            self._gateway = self.gateway_factory()
        return self._gateway

    @property
    def renewal_policy(self) -> RenewalPolicy:
        return RenewalPolicy(self.settings.RENEWAL_POLICY)
