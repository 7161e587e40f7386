from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from savegrow.api.structured_logging import tag_request
from savegrow.runtime.errors import VaultError


@dataclass(eq=False)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


# VaultError.code -> HTTP status
VAULT_ERROR_STATUS: Dict[str, int] = {
    "invalid_amount": 400,
    "invalid_recipient": 400,
    "arithmetic_overflow": 400,
    "unauthorized": 403,
    "not_initialized": 404,
    "lock_not_found": 404,
    "already_initialized": 409,
    "insufficient_funds": 409,
    "clock_regression": 409,
    "lock_not_matured": 409,
    "lock_already_claimed": 409,
}


def _error_body(code: str, message: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message, "details": details}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    tag_request(request, error_code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    tag_request(request, error_code=exc.code, error_reason=exc.reason)
    status = VAULT_ERROR_STATUS.get(exc.code, 400)
    return JSONResponse(status_code=status, content=_error_body(exc.code, exc.reason, dict(exc.details or {})))
