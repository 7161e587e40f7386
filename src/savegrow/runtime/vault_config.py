# src/savegrow/runtime/vault_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class VaultConfig:
    mode: str  # "dev" | "testnet" | "prod"
    store: str  # "memory" | "sqlite"

    # Single SQLite DB file path (store == "sqlite").
    db_path: str

    api_host: str
    api_port: int

    # Dev faucet: credits arbitrary custody accounts over HTTP.
    faucet_enabled: bool

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_STORES = {"memory", "sqlite"}


def validate_vault_config(cfg: VaultConfig) -> None:
    """Fail-fast validation for operator config."""
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if cfg.store not in _ALLOWED_STORES:
        raise ValueError(f"store must be one of {sorted(_ALLOWED_STORES)}; got: {cfg.store!r}")

    if cfg.store == "sqlite" and (not isinstance(cfg.db_path, str) or not cfg.db_path.strip()):
        raise ValueError("db_path must be a non-empty string when store is 'sqlite'")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if cfg.faucet_enabled and mode == "prod":
        raise ValueError("faucet_enabled is not allowed in prod mode")


def default_vault_config() -> VaultConfig:
    # Production-safe defaults: persistent store, no faucet.
    return VaultConfig(
        mode="prod",
        store="sqlite",
        db_path="./data/savegrow.db",
        api_host="127.0.0.1",
        api_port=8080,
        faucet_enabled=False,
        log_level="INFO",
    )


def _from_mapping(raw: Json, base: VaultConfig) -> VaultConfig:
    return VaultConfig(
        mode=_as_str(raw.get("mode"), base.mode).strip().lower(),
        store=_as_str(raw.get("store"), base.store).strip().lower(),
        db_path=_as_str(raw.get("db_path"), base.db_path),
        api_host=_as_str(raw.get("api_host"), base.api_host),
        api_port=_as_int(raw.get("api_port"), base.api_port),
        faucet_enabled=_as_bool(raw.get("faucet_enabled"), base.faucet_enabled),
        log_level=_as_str(raw.get("log_level"), base.log_level).strip().upper(),
    )


def read_vault_config_file(path: str) -> VaultConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("vault config must be a JSON object")

    cfg = _from_mapping(raw, default_vault_config())
    validate_vault_config(cfg)
    return cfg


def _env_overrides() -> Json:
    keys = {
        "mode": "SAVEGROW_MODE",
        "store": "SAVEGROW_STORE",
        "db_path": "SAVEGROW_DB_PATH",
        "api_host": "SAVEGROW_API_HOST",
        "api_port": "SAVEGROW_API_PORT",
        "faucet_enabled": "SAVEGROW_FAUCET_ENABLED",
        "log_level": "SAVEGROW_LOG_LEVEL",
    }
    out: Json = {}
    for field_name, env_name in keys.items():
        v = os.environ.get(env_name)
        if v is not None and v.strip():
            out[field_name] = v.strip()
    return out


def load_vault_config(path: Optional[str] = None) -> VaultConfig:
    """Load config: defaults <- JSON file (SAVEGROW_CONFIG_PATH) <- SAVEGROW_* env."""
    cfg_path = path or os.environ.get("SAVEGROW_CONFIG_PATH")
    base = read_vault_config_file(cfg_path) if cfg_path else default_vault_config()

    cfg = _from_mapping(_env_overrides(), base)
    validate_vault_config(cfg)
    return cfg
