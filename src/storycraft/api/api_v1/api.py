from fastapi import APIRouter

from storycraft.api.api_v1.endpoints import orders, payments, plans, subscriptions, users

api_router = APIRouter()
api_router.include_router(plans.router, prefix="/plans", tags=["plans"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
