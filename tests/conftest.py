from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from storycraft.api.auth_deps import CatalogDep, SettingsDep, get_auth_service, get_billing_context
from storycraft.core.config import Settings
from storycraft.core.errors import PaymentNotCompleted
from storycraft.db.session import Database, SessionDep
from storycraft.main import create_app
from storycraft.schemas.plan import PlanEntry
from storycraft.services.auth_service import AuthService
from storycraft.services.context import BillingContext
from storycraft.services.gateway import CheckoutSession, PaymentGateway
from storycraft.services.plan_catalog import PlanCatalog, amount_in_minor_units

ALICE = "user-alice"
BOB = "user-bob"
TOKENS = {"token-alice": ALICE, "token-bob": BOB}
CALLBACK_SECRET = "cb-secret"


class FrozenClock:
    """Settable clock; ``advance`` moves time forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway(PaymentGateway):
    """In-memory checkout sessions; tests flip them to paid."""

    def __init__(self):
        self.sessions: Dict[str, CheckoutSession] = {}
        self.retrieve_error: Optional[Exception] = None
        self.retrieve_calls = 0

    async def create_checkout_session(self, *, order_id, user_id, plan: PlanEntry, success_url, cancel_url):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.example.com/{session_id}",
            payment_status="unpaid",
            metadata={
                "orderId": order_id,
                "userId": user_id,
                "planType": plan.plan_type.value,
                "cycle": plan.cycle.value,
            },
            amount_total=amount_in_minor_units(plan.price),
            currency="cny",
        )
        self.sessions[session_id] = session
        return session

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        self.retrieve_calls += 1
        if self.retrieve_error is not None:
            raise self.retrieve_error
        if session_id not in self.sessions:
            raise PaymentNotCompleted("Checkout session not found")
        return self.sessions[session_id]

    def add_session(self, session: CheckoutSession) -> None:
        self.sessions[session.id] = session

    def mark_paid(self, session_id: str) -> None:
        self.sessions[session_id] = self.sessions[session_id].model_copy(
            update={
                "payment_status": "paid",
                "payment_intent": f"pi_{session_id}",
                "customer_email": "alice@example.com",
            }
        )


class FakeSupabaseAuth:
    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    def get_user(self, token: str):
        if token == "token-expired":
            raise Exception("invalid JWT: token is expired")
        if token == "token-garbage":
            raise Exception("invalid JWT: unable to parse or verify signature")
        user_id = self.tokens.get(token)
        if user_id is None:
            return SimpleNamespace(user=None)
        return SimpleNamespace(user=SimpleNamespace(id=user_id))


class FakeSupabase:
    def __init__(self, tokens: Dict[str, str]):
        self.auth = FakeSupabaseAuth(tokens)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        PAYMENT_CALLBACK_SECRET=CALLBACK_SECRET,
    )


@pytest.fixture
async def database(settings):
    database = Database.from_settings(settings)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def catalog() -> PlanCatalog:
    return PlanCatalog.from_yaml()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def make_ctx(catalog, settings, clock, gateway):
    """Build a BillingContext over any session, sharing clock and gateway."""

    def _make(db, settings_override: Optional[Settings] = None) -> BillingContext:
        return BillingContext(
            db=db,
            catalog=catalog,
            settings=settings_override or settings,
            gateway_factory=lambda: gateway,
            clock=clock,
        )

    return _make


@pytest.fixture
def ctx(session, make_ctx) -> BillingContext:
    return make_ctx(session)


@pytest.fixture
def app(settings, database, clock, gateway):
    app = create_app(settings=settings, database=database)

    def override_auth_service() -> AuthService:
        return AuthService(FakeSupabase(TOKENS))

    async def override_billing_context(db: SessionDep, catalog: CatalogDep, settings: SettingsDep) -> BillingContext:
        return BillingContext(
            db=db,
            catalog=catalog,
            settings=settings,
            gateway_factory=lambda: gateway,
            clock=clock,
        )

    app.dependency_overrides[get_auth_service] = override_auth_service
    app.dependency_overrides[get_billing_context] = override_billing_context
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth_headers(token: str = "token-alice") -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
