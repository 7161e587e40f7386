from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from savegrow.api.routes_public_parts.common import _program
from savegrow.api.schemas import DepositRequest, InitializeRequest, TransferRequest, WithdrawRequest
from savegrow.api.structured_logging import tag_request
from savegrow.runtime.store import DEFAULT_HISTORY_LIMIT

router = APIRouter()

Json = Dict[str, Any]


@router.post("/vaults/initialize")
def vault_initialize(body: InitializeRequest, request: Request) -> Json:
    tag_request(request, op="initialize", owner=body.signer)
    receipt = _program(request).initialize(body.signer)
    return {"ok": True, "receipt": receipt}


@router.post("/vaults/deposit")
def vault_deposit(body: DepositRequest, request: Request) -> Json:
    tag_request(request, op="deposit", owner=body.owner or body.signer)
    receipt = _program(request).deposit(body.signer, body.amount, owner=body.owner)
    return {"ok": True, "receipt": receipt}


@router.post("/vaults/withdraw")
def vault_withdraw(body: WithdrawRequest, request: Request) -> Json:
    tag_request(request, op="withdraw", owner=body.owner or body.signer)
    receipt = _program(request).withdraw(body.signer, body.amount, owner=body.owner)
    return {"ok": True, "receipt": receipt}


@router.post("/vaults/transfer")
def vault_transfer(body: TransferRequest, request: Request) -> Json:
    tag_request(request, op="transfer", owner=body.owner or body.signer)
    receipt = _program(request).transfer(body.signer, body.amount, body.recipient, owner=body.owner)
    return {"ok": True, "receipt": receipt}


@router.get("/vaults/{owner}")
def vault_get(owner: str, request: Request) -> Json:
    """Vault + reward pool, with the reward that would settle right now."""
    return {"ok": True, **_program(request).view(owner)}


@router.get("/vaults/{owner}/history")
def vault_history(owner: str, request: Request, limit: int = DEFAULT_HISTORY_LIMIT) -> Json:
    items = _program(request).history(owner, limit)
    return {"ok": True, "owner": owner, "items": items}
