"""Request-scoped dependencies for FastAPI endpoints."""
import hmac
import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from fastapi.security import OAuth2PasswordBearer

from storycraft.core.config import Settings
from storycraft.core.errors import AuthRequired, CallbackForbidden
from storycraft.db.session import SessionDep
from storycraft.services.auth_service import AuthService, get_supabase_client
from storycraft.services.context import BillingContext
from storycraft.services.gateway import build_gateway
from storycraft.services.plan_catalog import PlanCatalog

logger = logging.getLogger(__name__)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_plan_catalog(request: Request) -> PlanCatalog:
    return request.app.state.plan_catalog


SettingsDep = Annotated[Settings, Depends(get_settings)]
CatalogDep = Annotated[PlanCatalog, Depends(get_plan_catalog)]


def get_auth_service(settings: SettingsDep) -> AuthService:
    return AuthService(get_supabase_client(settings))


async def get_bearer_token(token: Optional[str] = Depends(oauth2_scheme)) -> str:
    if not token:
        raise AuthRequired()
    return token


async def get_current_user_id(
    # token first: a missing token is rejected before Supabase is contacted
    token: Annotated[str, Depends(get_bearer_token)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> str:
    """Resolve the bearer token to the caller's user id."""
    return auth_service.resolve_user_id(token)


async def get_billing_context(db: SessionDep, catalog: CatalogDep, settings: SettingsDep) -> BillingContext:
    return BillingContext(
        db=db,
        catalog=catalog,
        settings=settings,
        gateway_factory=lambda: build_gateway(settings),
    )


async def verify_callback_secret(
    settings: SettingsDep,
    callback_secret: Optional[str] = Header(default=None, alias="X-Callback-Secret"),
) -> None:
    """Require the shared callback secret when one is configured.

    Production refuses every callback while no secret is configured.
    """
    expected = settings.PAYMENT_CALLBACK_SECRET
    if not expected:
        if settings.is_production:
            logger.error("Payment callback rejected: PAYMENT_CALLBACK_SECRET is not set in production")
            raise CallbackForbidden("Payment callbacks are not configured")
        return
    if not callback_secret or not hmac.compare_digest(callback_secret, expected):
        logger.warning("Payment callback rejected: bad or missing secret")
        raise CallbackForbidden()


# Type aliases for dependencies
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
ContextDep = Annotated[BillingContext, Depends(get_billing_context)]
