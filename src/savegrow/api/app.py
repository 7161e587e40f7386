from __future__ import annotations

import logging
import os
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from savegrow import __version__
from savegrow.api.errors import ApiError, api_error_handler, vault_error_handler
from savegrow.api.routes_public import public_router
from savegrow.api.security import RequestSizeLimitMiddleware
from savegrow.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from savegrow.runtime.errors import VaultError
from savegrow.runtime.program_boot import build_program as _build_program
from savegrow.runtime.vault_config import VaultConfig, load_vault_config
from savegrow.runtime.vault_logging import log_event
from savegrow.runtime.vault_program import VaultProgram

log = logging.getLogger("savegrow.api")


def build_program(cfg: VaultConfig) -> VaultProgram:
    """Build the VaultProgram for API runtime.

    This wrapper exists so tests can monkeypatch `savegrow.api.app.build_program`
    without reaching into runtime modules.
    """
    return _build_program(cfg)


def _parse_cors_origins(mode: str) -> List[str]:
    """Parse CORS origins with production-safe defaults.

    Policy:
      - If SAVEGROW_CORS_ORIGINS is unset/empty -> CORS disabled
      - Wildcard "*" is rejected in prod mode
    """
    raw = os.environ.get("SAVEGROW_CORS_ORIGINS", "").strip()
    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in SAVEGROW_CORS_ORIGINS."
            )
        return ["*"]

    return origins


def create_app(*, boot_runtime: bool = True, cfg: Optional[VaultConfig] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): build the store + VaultProgram and attach as app.state.program
      - False: keep lightweight for unit tests / import-time validation
    """
    c = cfg or load_vault_config()
    configure_structured_logging(c.log_level)

    # Disable docs in production.
    if c.mode == "prod":
        app = FastAPI(title="savegrow vault API", version=__version__, docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="savegrow vault API", version=__version__)

    app.state.cfg = c
    app.state.program = build_program(c) if boot_runtime else None

    # --- Errors ---
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(VaultError, vault_error_handler)

    # --- Middleware ---
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins(c.mode)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    # --- Routers ---
    app.include_router(public_router)

    log_event(log, "api_created", mode=c.mode, store=c.store, booted=bool(boot_runtime))
    return app
