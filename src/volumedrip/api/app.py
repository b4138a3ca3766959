from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from volumedrip.api.errors import ApiError
from volumedrip.api.routes_public import public_router
from volumedrip.api.security import RequestSizeLimitMiddleware
from volumedrip.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from volumedrip.runtime.block_loop import BlockClockLoop
from volumedrip.runtime.chain_config import DripConfig, load_drip_config
from volumedrip.runtime.executor_boot import build_executor as _build_executor


def build_executor(cfg: DripConfig):
    """Build the DripExecutor for the API runtime.

    Tests monkeypatch `volumedrip.api.app.build_executor` through this wrapper.
    """
    return _build_executor(cfg)


def _truthy(v: Optional[str]) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load DripConfig, configure logging, attach the executor
      - False: no executor; tests attach one to app.state.executor
    """
    cfg: Optional[DripConfig] = load_drip_config() if boot_runtime else None
    mode = cfg.mode if cfg is not None else os.environ.get("VOLUMEDRIP_MODE", "prod").strip().lower()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        """Start/stop the block clock when VOLUMEDRIP_BLOCK_LOOP_AUTOSTART=1."""
        loop = None
        ex = getattr(app.state, "executor", None)
        if _truthy(os.environ.get("VOLUMEDRIP_BLOCK_LOOP_AUTOSTART")) and ex is not None:
            loop = BlockClockLoop(executor=ex)
            if not loop.start():
                loop = None
        app.state.block_loop = loop
        yield
        if loop is not None:
            loop.stop()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="VolumeDrip Node API", docs_url=None, redoc_url=None, openapi_url=None, lifespan=_lifespan)
    else:
        app = FastAPI(title="VolumeDrip Node API", lifespan=_lifespan)

    if cfg is not None:
        configure_structured_logging(cfg.log_level)
        app.state.cfg = cfg
        app.state.executor = build_executor(cfg)
    else:
        app.state.cfg = None
        app.state.executor = None

    # block clock is attached by lifespan
    app.state.block_loop = None

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_json())

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": str(e.get("msg", "")), "type": str(e.get("type", ""))}
            for e in exc.errors()
        ]
        err = ApiError.bad_request("bad_request", "request validation failed", {"errors": errors})
        return JSONResponse(status_code=err.status_code, content=err.to_json())

    # --- Middleware ---
    # Size limiter innermost of the two so oversized requests are still logged.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app

