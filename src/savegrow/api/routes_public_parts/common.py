from __future__ import annotations

from fastapi import Request

from savegrow.api.errors import ApiError
from savegrow.runtime.locks import LockBox
from savegrow.runtime.vault_config import VaultConfig, default_vault_config
from savegrow.runtime.vault_program import VaultProgram


def _program(request: Request) -> VaultProgram:
    prog = getattr(request.app.state, "program", None)
    if prog is None:
        raise ApiError.internal("not_ready", "vault program not attached to app.state", {})
    return prog


def _cfg(request: Request) -> VaultConfig:
    cfg = getattr(request.app.state, "cfg", None)
    return cfg if isinstance(cfg, VaultConfig) else default_vault_config()


def _lockbox(request: Request) -> LockBox:
    prog = _program(request)
    return LockBox(store=prog.store, clock=prog.clock)
