"""Affiliates domain API package."""

from affiliates.api.routes import (
    affiliate_router,
    attribution_router,
    commission_router,
    payout_router,
    program_router,
)

__all__ = [
    "affiliate_router",
    "attribution_router",
    "commission_router",
    "payout_router",
    "program_router",
]
