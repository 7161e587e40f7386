from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from savegrow.api.routes_public_parts.common import _program

router = APIRouter()


@router.get("/accounts/{account}/balance")
def account_balance(account: str, request: Request) -> Dict[str, Any]:
    """Custody balance of any account id (wallets, recipients, vault addresses)."""
    return {"ok": True, "account": account, "balance": _program(request).balance_of(account)}
