"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from amour_backend.app.api.v1.endpoints import (
    accounts, payments,
    admin_influencers, admin_usage, admin_ops
)

router = APIRouter()

# Account balance and own usage history
router.include_router(accounts.router)

# Razorpay verification and crediting
router.include_router(payments.router)

# Back office
router.include_router(admin_influencers.router)
router.include_router(admin_usage.router)
router.include_router(admin_ops.router)
