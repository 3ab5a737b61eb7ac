# src/storefront/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from storefront.api.routes_public_parts.accounts import router as accounts_router
from storefront.api.routes_public_parts.health import router as health_router
from storefront.api.routes_public_parts.market import router as market_router
from storefront.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(market_router, prefix="/v1", tags=["market"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
