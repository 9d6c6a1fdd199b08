# src/stakeledger/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from stakeledger.api.routes_public_parts.admin import router as admin_router
from stakeledger.api.routes_public_parts.health import router as health_router
from stakeledger.api.routes_public_parts.metrics import router as metrics_router
from stakeledger.api.routes_public_parts.positions import router as positions_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(positions_router, prefix="/v1", tags=["positions"])
public_router.include_router(admin_router, prefix="/v1", tags=["policy"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
