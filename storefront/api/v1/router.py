"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from storefront.api.v1 import orders, payfast

api_router = APIRouter()

# Orders
api_router.include_router(orders.router, prefix="/orders", tags=["Orders"])

# Payfast checkout and ITN
api_router.include_router(payfast.router, prefix="/payfast", tags=["Payfast"])
