# src/volumedrip/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from volumedrip.api.routes_public_parts.accounts import router as accounts_router
from volumedrip.api.routes_public_parts.chain import router as chain_router
from volumedrip.api.routes_public_parts.epochs import router as epochs_router
from volumedrip.api.routes_public_parts.health import router as health_router
from volumedrip.api.routes_public_parts.metrics import router as metrics_router
from volumedrip.api.routes_public_parts.state import router as state_router
from volumedrip.api.routes_public_parts.token import router as token_router
from volumedrip.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(token_router, prefix="/v1", tags=["token"])
public_router.include_router(epochs_router, prefix="/v1", tags=["epochs"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(chain_router, prefix="/v1", tags=["chain"])
public_router.include_router(state_router, prefix="/v1", tags=["state"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
