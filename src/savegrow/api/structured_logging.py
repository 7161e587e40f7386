# src/savegrow/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from savegrow.runtime.vault_logging import log_event

Json = Dict[str, Any]

_OFF = {"0", "false", "no", "n", "off"}

# Headers worth keeping on an access line when SAVEGROW_LOG_REQUEST_HEADERS=1
_HEADER_KEYS = ("user-agent", "content-type", "content-length", "x-forwarded-for")


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Send every logger to stdout as one JSON object per line.

    Level comes from the argument, else SAVEGROW_LOG_LEVEL (default INFO).
    Repeat calls only adjust the level.
    """
    name = (level_name or os.environ.get("SAVEGROW_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_savegrow_configured", False):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_savegrow_configured", True)


def tag_request(request: Request, **fields: Any) -> None:
    """Attach vault context (op, owner, lock_id, error code) to the access log line.

    Routes and exception handlers call this; RequestLogMiddleware reads the
    tags back once the response is ready. None values are dropped.
    """
    tags = getattr(request.state, "vault_tags", None)
    if not isinstance(tags, dict):
        tags = {}
        request.state.vault_tags = tags
    tags.update({k: v for k, v in fields.items() if v is not None})


def request_tags(request: Request) -> Json:
    tags = getattr(request.state, "vault_tags", None)
    return dict(tags) if isinstance(tags, dict) else {}


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with the vault op it served.

    Controls:
      - SAVEGROW_LOG_REQUESTS=0 disables the access line (default on)
      - SAVEGROW_LOG_REQUEST_HEADERS=1 adds a small header subset
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = (os.environ.get("SAVEGROW_LOG_REQUESTS") or "1").strip().lower() not in _OFF
        self._log_headers = (os.environ.get("SAVEGROW_LOG_REQUEST_HEADERS") or "0").strip().lower() not in _OFF
        self._logger = logging.getLogger("savegrow.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        tag_request(request)

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            fields: Json = {
                "request_id": request_id,
                "method": request.method,
                "path": str(request.url.path or ""),
                "status": status,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "client": str(request.client.host) if request.client else "",
                "vault": request_tags(request),
            }
            if self._log_headers:
                fields["headers"] = {k: request.headers[k] for k in _HEADER_KEYS if request.headers.get(k)}
            if err is not None:
                fields["error"] = err
            log_event(self._logger, "http_request", level=logging.WARNING if status >= 500 else logging.INFO, **fields)
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
