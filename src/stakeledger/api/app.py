from __future__ import annotations

import logging
import os
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stakeledger.api.errors import ApiError, api_error_from_engine
from stakeledger.api.routes_public import public_router
from stakeledger.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from stakeledger.runtime.engine_boot import EngineRuntime
from stakeledger.runtime.engine_boot import build_engine as _build_engine
from stakeledger.runtime.engine_config import load_engine_config
from stakeledger.runtime.errors import EngineError
from stakeledger.runtime.events import log_event

log = logging.getLogger("stakeledger.api")


def build_engine() -> EngineRuntime:
    """Build the engine runtime for the API.

    This wrapper exists so tests can monkeypatch `stakeledger.api.app.build_engine`
    without reaching into runtime modules.
    """
    return _build_engine(load_engine_config())


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins with production-safe defaults.

    Policy:
      - If STAKELEDGER_CORS_ORIGINS is unset/empty -> CORS disabled (fail-closed)
      - Wildcard "*" is rejected in STAKELEDGER_MODE=prod
    """
    raw = os.environ.get("STAKELEDGER_CORS_ORIGINS", "").strip()
    mode = os.environ.get("STAKELEDGER_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in STAKELEDGER_CORS_ORIGINS."
            )
        return ["*"]

    return origins


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    err = api_error_from_engine(exc)
    log_event(log, "engine_rejected", path=str(request.url.path or ""), code=exc.code, reason=exc.reason, status=err.status_code)
    return JSONResponse(status_code=err.status_code, content=err.to_json())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load engine config + attach app.state.runtime
      - False: keep lightweight for unit tests / import-time validation
    """
    configure_structured_logging()
    mode = os.environ.get("STAKELEDGER_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="stakeledger API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="stakeledger API")

    app.state.runtime = build_engine() if boot_runtime else None

    app.add_exception_handler(ApiError, _api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(EngineError, _engine_error_handler)  # type: ignore[arg-type]

    # --- Middleware ---
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-Caller"],
        )

    # --- Routers ---
    app.include_router(public_router)

    return app
