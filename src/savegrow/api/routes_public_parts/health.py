from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from savegrow import __version__
from savegrow.api.routes_public_parts.common import _cfg

router = APIRouter()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    cfg = _cfg(request)
    prog = getattr(request.app.state, "program", None)
    return {
        "ok": True,
        "version": __version__,
        "mode": cfg.mode,
        "store": cfg.store,
        "ready": prog is not None,
    }
