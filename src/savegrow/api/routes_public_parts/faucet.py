from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from savegrow.api.errors import ApiError
from savegrow.api.routes_public_parts.common import _cfg, _program
from savegrow.api.schemas import FaucetRequest
from savegrow.ledger.types import is_program_account
from savegrow.runtime.vault_logging import log_event

router = APIRouter()

log = logging.getLogger("savegrow.faucet")


@router.post("/faucet")
def faucet(body: FaucetRequest, request: Request) -> Dict[str, Any]:
    """Dev-only custody credit, so wallets have funds to deposit.

    Disabled unless faucet_enabled; config validation forbids it in prod.
    """
    cfg = _cfg(request)
    if not cfg.faucet_enabled or cfg.mode == "prod":
        raise ApiError.not_found("not_found", "faucet disabled", {})
    if is_program_account(body.account):
        raise ApiError.bad_request("invalid_account", "faucet cannot credit vault or reward pool accounts", {"account": body.account})
    balance = _program(request).store.fund(body.account, body.amount)
    log_event(log, "faucet_credit", account=body.account, amount=body.amount, balance=balance)
    return {"ok": True, "account": body.account, "balance": balance}
