# src/savegrow/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from savegrow.api.routes_public_parts.accounts import router as accounts_router
from savegrow.api.routes_public_parts.faucet import router as faucet_router
from savegrow.api.routes_public_parts.health import router as health_router
from savegrow.api.routes_public_parts.locks import router as locks_router
from savegrow.api.routes_public_parts.metrics import router as metrics_router
from savegrow.api.routes_public_parts.vaults import router as vaults_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(vaults_router, prefix="/v1", tags=["vaults"])
public_router.include_router(locks_router, prefix="/v1", tags=["locks"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])

# Dev only (route refuses unless faucet_enabled)
public_router.include_router(faucet_router, prefix="/v1", tags=["faucet"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
