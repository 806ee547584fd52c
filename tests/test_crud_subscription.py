from datetime import timedelta

import pytest

from storycraft.core.errors import SubscriptionNotFound
from storycraft.crud.crud_subscription import subscription as crud_subscription
from storycraft.schemas.enums import RenewalPolicy, SubscriptionStatus

from conftest import ALICE


async def _apply(ctx, order_id, duration_days=30, cycle="monthly", policy=RenewalPolicy.REPLACE):
    return await crud_subscription.upsert(
        ctx.db,
        user_id=ALICE,
        plan_type="basic_language",
        cycle=cycle,
        duration_days=duration_days,
        order_id=order_id,
        now=ctx.now(),
        policy=policy,
    )


async def test_first_purchase_creates_subscription(ctx):
    sub, written = await _apply(ctx, "ORDER_1")
    assert written
    assert sub.status == SubscriptionStatus.ACTIVE.value
    assert sub.start_date == ctx.now()
    assert sub.expires_at - sub.start_date == timedelta(days=30)
    assert sub.last_order_id == "ORDER_1"


async def test_same_order_is_applied_once(ctx, clock):
    first, _ = await _apply(ctx, "ORDER_1")
    expires_at, updated_at = first.expires_at, first.updated_at
    clock.advance(days=3)
    again, written = await _apply(ctx, "ORDER_1")
    assert not written
    assert again.expires_at == expires_at
    assert again.updated_at == updated_at


async def test_replace_restarts_window(ctx, clock):
    await _apply(ctx, "ORDER_1")
    clock.advance(days=10)
    sub, written = await _apply(ctx, "ORDER_2", duration_days=90, cycle="quarterly")
    assert written
    assert sub.start_date == clock()
    assert sub.expires_at == clock() + timedelta(days=90)
    assert sub.cycle == "quarterly"
    assert sub.last_order_id == "ORDER_2"


async def test_stack_extends_active_window(ctx, clock):
    first, _ = await _apply(ctx, "ORDER_1", policy=RenewalPolicy.STACK)
    start_date, expires_at = first.start_date, first.expires_at
    clock.advance(days=10)
    sub, _ = await _apply(ctx, "ORDER_2", policy=RenewalPolicy.STACK)
    assert sub.start_date == start_date
    assert sub.expires_at == expires_at + timedelta(days=30)


async def test_stack_after_expiry_starts_fresh(ctx, clock):
    await _apply(ctx, "ORDER_1", policy=RenewalPolicy.STACK)
    clock.advance(days=45)
    sub, _ = await _apply(ctx, "ORDER_2", policy=RenewalPolicy.STACK)
    assert sub.start_date == clock()
    assert sub.expires_at == clock() + timedelta(days=30)


async def test_cancel_keeps_expiry(ctx, clock):
    sub, _ = await _apply(ctx, "ORDER_1")
    expires_at = sub.expires_at
    clock.advance(days=1)
    cancelled = await crud_subscription.cancel(ctx.db, user_id=ALICE, now=clock())
    assert cancelled.status == SubscriptionStatus.CANCELLED.value
    assert cancelled.expires_at == expires_at


async def test_cancel_without_subscription(ctx):
    with pytest.raises(SubscriptionNotFound):
        await crud_subscription.cancel(ctx.db, user_id=ALICE, now=ctx.now())


async def test_purchase_after_cancel_reactivates(ctx, clock):
    await _apply(ctx, "ORDER_1")
    await crud_subscription.cancel(ctx.db, user_id=ALICE, now=clock())
    clock.advance(days=2)
    sub, written = await _apply(ctx, "ORDER_2", policy=RenewalPolicy.STACK)
    assert written
    assert sub.status == SubscriptionStatus.ACTIVE.value
    # a cancelled window is never stacked onto
    assert sub.start_date == clock()


async def test_older_paid_order_is_skipped(ctx, clock):
    older_paid_at = clock()
    clock.advance(days=1)
    await crud_subscription.upsert(
        ctx.db,
        user_id=ALICE,
        plan_type="extended_language",
        cycle="yearly",
        duration_days=365,
        order_id="ORDER_NEW",
        now=clock(),
        paid_at=clock(),
    )
    clock.advance(hours=1)
    sub, written = await crud_subscription.upsert(
        ctx.db,
        user_id=ALICE,
        plan_type="basic_language",
        cycle="monthly",
        duration_days=30,
        order_id="ORDER_OLD",
        now=clock(),
        paid_at=older_paid_at,
    )
    assert not written
    assert sub.last_order_id == "ORDER_NEW"
    assert sub.plan_type == "extended_language"
