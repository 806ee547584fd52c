from decimal import Decimal

from sqlalchemy.exc import OperationalError

from storycraft.api.auth_deps import get_auth_service
from storycraft.core.errors import GatewayUnavailable
from storycraft.crud import crud_user as crud_user_module

from conftest import ALICE, CALLBACK_SECRET, auth_headers

API = "/api/v1"


async def _create_order(client, plan_type="basic_language", cycle="monthly", token="token-alice"):
    response = await client.post(
        f"{API}/orders",
        json={"plan_type": plan_type, "cycle": cycle},
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_healthz(client):
    response = await client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_list_plans(client):
    response = await client.get(f"{API}/plans")
    assert response.status_code == 200
    plans = response.json()
    assert len(plans) == 6
    basic_monthly = next(p for p in plans if p["plan_type"] == "basic_language" and p["cycle"] == "monthly")
    assert Decimal(basic_monthly["price"]) == Decimal("89")
    assert basic_monthly["duration_days"] == 30


async def test_requests_without_token_are_rejected(client):
    response = await client.get(f"{API}/orders")
    assert response.status_code == 401
    assert response.json()["code"] == "auth_required"


async def test_expired_token(client):
    response = await client.get(f"{API}/subscriptions/me", headers=auth_headers("token-expired"))
    assert response.status_code == 401
    assert response.json()["code"] == "auth_expired"


async def test_create_and_read_order(client):
    order = await _create_order(client)
    assert order["user_id"] == ALICE
    assert order["status"] == "pending"
    assert Decimal(order["price"]) == Decimal("89")
    assert Decimal(order["list_price"]) == Decimal("199")
    assert order["duration_days"] == 30
    assert order["is_abandoned"] is False

    response = await client.get(f"{API}/orders/{order['order_id']}", headers=auth_headers())
    assert response.status_code == 200
    assert response.json()["order_id"] == order["order_id"]


async def test_create_order_with_unknown_plan(client):
    response = await client.post(
        f"{API}/orders",
        json={"plan_type": "platinum", "cycle": "monthly"},
        headers=auth_headers(),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "invalid_plan"


async def test_other_users_order_is_not_found(client):
    order = await _create_order(client)
    response = await client.get(f"{API}/orders/{order['order_id']}", headers=auth_headers("token-bob"))
    assert response.status_code == 404
    assert response.json()["code"] == "order_not_found"


async def test_list_orders_hides_abandoned_on_request(client, clock):
    stale = await _create_order(client)
    clock.advance(hours=1)
    fresh = await _create_order(client, cycle="yearly")

    response = await client.get(f"{API}/orders", headers=auth_headers())
    listed = response.json()
    assert [o["order_id"] for o in listed] == [fresh["order_id"], stale["order_id"]]
    assert listed[1]["is_abandoned"] is True

    response = await client.get(f"{API}/orders", params={"include_abandoned": "false"}, headers=auth_headers())
    assert [o["order_id"] for o in response.json()] == [fresh["order_id"]]


async def test_simulated_payment_flow(client):
    order = await _create_order(client)
    response = await client.post(
        f"{API}/payments/simulate",
        json={"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly", "price": 89},
        headers=auth_headers(),
    )
    assert response.status_code == 200, response.text
    assert response.json() == {"order_id": order["order_id"], "status": "paid"}

    subscription = (await client.get(f"{API}/subscriptions/me", headers=auth_headers())).json()
    assert subscription["status"] == "active"
    assert subscription["plan_type"] == "basic_language"
    assert subscription["days_left"] == 30

    me = (await client.get(f"{API}/users/me", headers=auth_headers())).json()
    assert me["user_plan"] == "basic_language"
    assert me["subscription_expires_at"] == subscription["expires_at"]

    # replay
    response = await client.post(
        f"{API}/payments/simulate",
        json={"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly"},
        headers=auth_headers(),
    )
    assert response.status_code == 200
    again = (await client.get(f"{API}/subscriptions/me", headers=auth_headers())).json()
    assert again["expires_at"] == subscription["expires_at"]


async def test_gateway_flow(client, gateway):
    order = await _create_order(client)
    response = await client.post(
        f"{API}/orders/{order['order_id']}/checkout",
        json={"success_url": "https://app.example.com/ok", "cancel_url": "https://app.example.com/no"},
        headers=auth_headers(),
    )
    assert response.status_code == 200, response.text
    session_id = response.json()["session_id"]

    response = await client.post(
        f"{API}/payments/gateway/confirm", json={"session_id": session_id}, headers=auth_headers()
    )
    assert response.status_code == 402
    assert response.json()["code"] == "payment_not_completed"

    gateway.mark_paid(session_id)
    response = await client.post(
        f"{API}/payments/gateway/confirm", json={"session_id": session_id}, headers=auth_headers()
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    response = await client.post(
        f"{API}/orders/{order['order_id']}/checkout",
        json={"success_url": "https://app.example.com/ok", "cancel_url": "https://app.example.com/no"},
        headers=auth_headers(),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state_transition"


async def test_gateway_timeout_is_retryable(client, gateway):
    gateway.retrieve_error = GatewayUnavailable()
    response = await client.post(
        f"{API}/payments/gateway/confirm", json={"session_id": "cs_whatever"}, headers=auth_headers()
    )
    assert response.status_code == 504
    assert response.json()["code"] == "gateway_unavailable"
    assert response.json()["retryable"] is True
    assert response.headers["retry-after"] == "5"


async def test_callback_requires_secret(client):
    order = await _create_order(client)
    body = {"order_id": order["order_id"], "payment_status": "success"}

    response = await client.post(f"{API}/payments/callback", json=body)
    assert response.status_code == 403
    assert response.json()["code"] == "callback_forbidden"

    response = await client.post(f"{API}/payments/callback", json=body, headers={"X-Callback-Secret": "wrong"})
    assert response.status_code == 403

    response = await client.post(f"{API}/payments/callback", json=body, headers={"X-Callback-Secret": CALLBACK_SECRET})
    assert response.status_code == 200
    assert response.json()["status"] == "paid"


async def test_callback_failure_then_payment_conflicts(client):
    order = await _create_order(client)
    headers = {"X-Callback-Secret": CALLBACK_SECRET}
    response = await client.post(
        f"{API}/payments/callback",
        json={"order_id": order["order_id"], "payment_status": "failed"},
        headers=headers,
    )
    assert response.json()["status"] == "failed"

    response = await client.post(
        f"{API}/payments/simulate",
        json={"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly"},
        headers=auth_headers(),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state_transition"

    subscription = (await client.get(f"{API}/subscriptions/me", headers=auth_headers())).json()
    assert subscription["status"] == "free"


async def test_partial_activation_is_accepted_and_retryable(client, monkeypatch):
    order = await _create_order(client)

    async def failing_refresh(*args, **kwargs):
        raise OperationalError("UPDATE users", {}, Exception("database is locked"))

    monkeypatch.setattr(crud_user_module.user, "refresh_projection", failing_refresh)
    payload = {"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly"}
    response = await client.post(f"{API}/payments/simulate", json=payload, headers=auth_headers())
    assert response.status_code == 202
    assert response.json()["code"] == "partial_activation"
    assert response.json()["order_id"] == order["order_id"]
    assert response.headers["retry-after"] == "5"

    monkeypatch.undo()
    response = await client.post(f"{API}/payments/simulate", json=payload, headers=auth_headers())
    assert response.status_code == 200
    me = (await client.get(f"{API}/users/me", headers=auth_headers())).json()
    assert me["user_plan"] == "basic_language"


async def test_cancel_subscription(client):
    response = await client.post(f"{API}/subscriptions/me/cancel", headers=auth_headers())
    assert response.status_code == 404
    assert response.json()["code"] == "subscription_not_found"

    order = await _create_order(client)
    await client.post(
        f"{API}/payments/simulate",
        json={"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly"},
        headers=auth_headers(),
    )
    response = await client.post(f"{API}/subscriptions/me/cancel", headers=auth_headers())
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    subscription = (await client.get(f"{API}/subscriptions/me", headers=auth_headers())).json()
    assert subscription["status"] == "cancelled"
    assert subscription["plan_type"] == "free"
    me = (await client.get(f"{API}/users/me", headers=auth_headers())).json()
    assert me["user_plan"] == "free"


async def test_expired_subscription_reads_as_expired(client, clock):
    order = await _create_order(client, cycle="monthly")
    await client.post(
        f"{API}/payments/simulate",
        json={"order_id": order["order_id"], "plan_type": "basic_language", "cycle": "monthly"},
        headers=auth_headers(),
    )
    clock.advance(days=30, seconds=1)
    subscription = (await client.get(f"{API}/subscriptions/me", headers=auth_headers())).json()
    assert subscription["status"] == "expired"
    assert subscription["is_expired"] is True
    me = (await client.get(f"{API}/users/me", headers=auth_headers())).json()
    assert me["user_plan"] == "free"


async def test_order_price_ignores_caller_amounts(client):
    response = await client.post(
        f"{API}/orders",
        json={"plan_type": "basic_language", "cycle": "monthly", "price": 1, "list_price": 1, "duration_days": 999},
        headers=auth_headers(),
    )
    assert response.status_code == 201
    order = response.json()
    assert Decimal(order["price"]) == Decimal("89")
    assert Decimal(order["list_price"]) == Decimal("199")
    assert order["duration_days"] == 30


async def test_production_callback_without_secret_is_refused(client, app, settings):
    order = await _create_order(client)
    app.state.settings = settings.model_copy(update={"ENV": "production", "PAYMENT_CALLBACK_SECRET": None})

    response = await client.post(
        f"{API}/payments/callback",
        json={"order_id": order["order_id"], "payment_status": "success"},
    )
    assert response.status_code == 403
    assert response.json()["code"] == "callback_forbidden"

    stored = (await client.get(f"{API}/orders/{order['order_id']}", headers=auth_headers())).json()
    assert stored["status"] == "pending"


async def test_development_callback_without_secret_is_accepted(client, app, settings):
    order = await _create_order(client)
    app.state.settings = settings.model_copy(update={"PAYMENT_CALLBACK_SECRET": None})

    response = await client.post(
        f"{API}/payments/callback",
        json={"order_id": order["order_id"], "payment_status": "success"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paid"


async def test_missing_token_without_supabase_config(client, app, settings):
    app.dependency_overrides.pop(get_auth_service)
    app.state.settings = settings.model_copy(update={"SUPABASE_URL": None, "SUPABASE_KEY": None})

    response = await client.get(f"{API}/subscriptions/me")
    assert response.status_code == 401
    assert response.json()["code"] == "auth_required"
