"""savegrow.ledger.types

Vault / RewardPool records and the deterministic account keys the host
derives from an owner identity.

Persisted layout:
  Vault      = {"owner": str, "balance": u64, "last_update_time": i64}
  RewardPool = {"balance": u64}
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict

from savegrow.ledger.constants import I64_MAX, I64_MIN, LOCK_SEED, REWARD_POOL_SEED, U64_MAX, VAULT_SEED

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str, lo: int, hi: int) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"schema error: field '{field}' must be int (got {type(v).__name__})")
    if v < lo or v > hi:
        raise ValueError(f"schema error: field '{field}' out of range [{lo}, {hi}] (got {v})")
    return v


def _derive_address(seed: str, owner: str) -> str:
    h = hashlib.sha256()
    h.update(seed.encode("utf-8"))
    h.update(b"\x00")
    h.update(owner.encode("utf-8"))
    return f"{seed}:{h.hexdigest()}"


def vault_address(owner: str) -> str:
    """Custody account key of `owner`'s vault."""
    return _derive_address(VAULT_SEED, str(owner))


def reward_pool_address(owner: str) -> str:
    return _derive_address(REWARD_POOL_SEED, str(owner))


def lock_id(owner: str, seq: int) -> str:
    """Key of `owner`'s `seq`-th lock (0-based, counting claimed locks too)."""
    return _derive_address(LOCK_SEED, f"{owner}\x00{int(seq)}")


_PROGRAM_PREFIXES = (f"{VAULT_SEED}:", f"{REWARD_POOL_SEED}:")


def is_program_account(account: str) -> bool:
    """True for derived vault / reward pool keys, which only the program may credit."""
    return str(account).startswith(_PROGRAM_PREFIXES)


@dataclass
class Vault:
    owner: str
    balance: int = 0
    last_update_time: int = 0

    @property
    def address(self) -> str:
        return vault_address(self.owner)

    def to_dict(self) -> Json:
        return {"owner": self.owner, "balance": int(self.balance), "last_update_time": int(self.last_update_time)}

    @classmethod
    def from_dict(cls, d: Json) -> "Vault":
        owner = d.get("owner")
        if not isinstance(owner, str) or not owner:
            raise ValueError("schema error: field 'owner' must be a non-empty string")
        return cls(
            owner=owner,
            balance=_coerce_int(d.get("balance", 0), field="balance", lo=0, hi=U64_MAX),
            last_update_time=_coerce_int(d.get("last_update_time", 0), field="last_update_time", lo=I64_MIN, hi=I64_MAX),
        )


@dataclass
class RewardPool:
    balance: int = 0

    def to_dict(self) -> Json:
        return {"balance": int(self.balance)}

    @classmethod
    def from_dict(cls, d: Json) -> "RewardPool":
        return cls(balance=_coerce_int(d.get("balance", 0), field="balance", lo=0, hi=U64_MAX))
