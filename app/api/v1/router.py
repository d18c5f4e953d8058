from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Order ingestion
    webhooks,
    affiliates,
    # Earnings & payouts
    earnings,
    payouts,
    # Commission schedules
    commissions,
    # Brand ownership & team access
    brands,
    # Platform referral links
    referrals,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"]
)
api_router.include_router(
    affiliates.router,
    prefix="/affiliates",
    tags=["Affiliates"]
)
api_router.include_router(
    earnings.router,
    prefix="/earnings",
    tags=["Earnings"]
)
api_router.include_router(
    payouts.router,
    tags=["Payouts"]
)
api_router.include_router(
    commissions.router,
    prefix="/commissions",
    tags=["Commissions"]
)
api_router.include_router(
    brands.router,
    prefix="/brands",
    tags=["Brands"]
)
api_router.include_router(
    referrals.router,
    prefix="/referrals",
    tags=["Referrals"]
)
