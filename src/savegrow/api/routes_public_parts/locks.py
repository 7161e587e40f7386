from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from savegrow.api.routes_public_parts.common import _lockbox
from savegrow.api.schemas import LockCreateRequest, UnlockRequest
from savegrow.api.structured_logging import tag_request

router = APIRouter()

Json = Dict[str, Any]


@router.post("/locks")
def lock_create(body: LockCreateRequest, request: Request) -> Json:
    tag_request(request, op="lock_create", owner=body.owner or body.signer)
    receipt = _lockbox(request).create_lock(body.signer, body.amount, body.duration_hours, owner=body.owner)
    return {"ok": True, "receipt": receipt}


@router.post("/locks/{lock_id}/unlock")
def lock_unlock(lock_id: str, body: UnlockRequest, request: Request) -> Json:
    """Claim a lock. Before ends_at this needs force=true and pays no lock reward."""
    tag_request(request, op="lock_unlock", owner=body.owner or body.signer, lock_id=lock_id)
    receipt = _lockbox(request).unlock(body.signer, lock_id, force=body.force, owner=body.owner)
    return {"ok": True, "receipt": receipt}


@router.get("/vaults/{owner}/locks")
def vault_locks(owner: str, request: Request, active_only: bool = False) -> Json:
    box = _lockbox(request)
    items = box.locks(owner, active_only=active_only)
    return {"ok": True, "owner": owner, "locked_total": box.locked_total(owner), "items": items}
