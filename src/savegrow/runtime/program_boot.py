# src/savegrow/runtime/program_boot.py

from __future__ import annotations

from typing import Optional

from savegrow.runtime.clock import Clock, SystemClock
from savegrow.runtime.sqlite_db import SqliteAccountStore, SqliteDB
from savegrow.runtime.store import AccountStore, MemoryAccountStore
from savegrow.runtime.vault_config import VaultConfig, load_vault_config
from savegrow.runtime.vault_program import VaultProgram


def build_store(cfg: VaultConfig) -> AccountStore:
    if cfg.store == "memory":
        return MemoryAccountStore()
    return SqliteAccountStore(db=SqliteDB(path=cfg.db_path))


def build_program(cfg: Optional[VaultConfig] = None, *, clock: Optional[Clock] = None) -> VaultProgram:
    """
    Build a VaultProgram from an explicit config or, if omitted, from
    SAVEGROW_CONFIG_PATH / SAVEGROW_* environment variables.
    """
    c = cfg or load_vault_config()
    return VaultProgram(store=build_store(c), clock=clock or SystemClock())
