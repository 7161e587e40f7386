from __future__ import annotations

"""
AccountStore: the host collaborator behind every vault operation.

The core never touches persistence directly. It asks the store for copies of
an owner's Vault/RewardPool, computes the new records, and hands the full set
of changes back as one Mutations object. commit() applies that set
all-or-nothing, including the custody movements that back the principal.

Custody balances are kept per account key: owner wallets, arbitrary
recipients, and each vault's own custody account (see vault_address()).
LockBox records ride along in the same commit and never move custody.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from savegrow.ledger.constants import U64_MAX
from savegrow.ledger.locks import Lock, locked_total
from savegrow.ledger.types import RewardPool, Vault
from savegrow.runtime.errors import (
    AlreadyInitialized,
    ArithmeticOverflow,
    InsufficientFunds,
    InvalidAmount,
    LockNotFound,
    NotInitialized,
)

Json = Dict[str, Any]

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


@dataclass(frozen=True)
class CustodyTransfer:
    source: str
    destination: str
    amount: int


@dataclass
class Mutations:
    """Everything one operation changes, committed as a unit."""

    owner: str
    vault: Vault
    pool: RewardPool
    transfers: List[CustodyTransfer] = field(default_factory=list)
    receipt: Optional[Json] = None
    create: bool = False
    # Lock records to insert or replace; all must belong to `owner`.
    locks: List[Lock] = field(default_factory=list)


class AccountStore(Protocol):
    def exists(self, owner: str) -> bool: ...

    def lookup(self, owner: str) -> Tuple[Vault, RewardPool]: ...

    def commit(self, mutations: Mutations) -> None: ...

    def balance_of(self, account: str) -> int: ...

    def fund(self, account: str, amount: int) -> int: ...

    def history(self, owner: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Json]: ...

    def atomic(self) -> Any: ...

    def snapshot(self) -> Any: ...

    def locks_of(self, owner: str, *, active_only: bool = False) -> List[Lock]: ...

    def get_lock(self, lock_id: str) -> Lock: ...

    def locked_total(self, owner: str) -> int: ...


def clamp_history_limit(limit: Any) -> int:
    try:
        n = int(limit)
    except Exception:
        return DEFAULT_HISTORY_LIMIT
    return max(1, min(n, MAX_HISTORY_LIMIT))


def stage_transfers(balances: Dict[str, int], transfers: List[CustodyTransfer]) -> Dict[str, int]:
    """Apply custody movements to a copy of the touched balances.

    `balances` must hold the current balance of every account the transfers
    touch. Returns only the touched accounts; raises before anything is
    written if a movement would overdraw or overflow an account.
    """
    staged: Dict[str, int] = dict(balances)
    for t in transfers:
        amt = int(t.amount)
        if amt < 0:
            raise InvalidAmount("negative_transfer", {"source": t.source, "destination": t.destination, "amount": amt})
        src_bal = int(staged.get(t.source, 0))
        if amt > src_bal:
            raise InsufficientFunds(
                "custody_balance_too_low",
                {"account": t.source, "balance": src_bal, "amount": amt},
            )
        staged[t.source] = src_bal - amt
        dst_bal = int(staged.get(t.destination, 0)) + amt
        if dst_bal > U64_MAX:
            raise ArithmeticOverflow("custody_overflow", {"account": t.destination, "amount": amt})
        staged[t.destination] = dst_bal
    return staged


def touched_accounts(transfers: List[CustodyTransfer]) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    for t in transfers:
        for a in (t.source, t.destination):
            if a not in seen:
                seen.add(a)
                out.append(a)
    return out


def stage_locks(owner: str, vault: Vault, existing: List[Lock], updates: List[Lock]) -> List[Lock]:
    """Merge lock updates over `existing` and check the vault still covers them.

    Returns the full post-commit lock list for `owner`; raises before anything
    is written if a lock belongs to someone else or the active locks would
    exceed the vault balance.
    """
    merged: Dict[str, Lock] = {lk.lock_id: lk for lk in existing}
    for lk in updates:
        if lk.owner != owner:
            raise ValueError("mutations.locks must belong to mutations.owner")
        merged[lk.lock_id] = Lock.from_dict(lk.to_dict())
    out = list(merged.values())
    total = locked_total(out)
    if total > int(vault.balance):
        raise InsufficientFunds(
            "locked_exceeds_balance",
            {"owner": owner, "balance": int(vault.balance), "locked": total},
        )
    return out


class MemoryAccountStore:
    """Process-local store.

    A single RLock serializes every read-modify-write; atomic() exposes it so
    an operation's lookup and commit run under the same hold.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._vaults: Dict[str, Json] = {}
        self._pools: Dict[str, Json] = {}
        self._balances: Dict[str, int] = {}
        self._receipts: Dict[str, List[Json]] = {}
        self._locks: Dict[str, Json] = {}

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            yield

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        with self._lock:
            yield

    def exists(self, owner: str) -> bool:
        with self._lock:
            return owner in self._vaults or owner in self._pools

    def lookup(self, owner: str) -> Tuple[Vault, RewardPool]:
        with self._lock:
            v = self._vaults.get(owner)
            p = self._pools.get(owner)
            if v is None or p is None:
                raise NotInitialized(details={"owner": owner})
            return Vault.from_dict(v), RewardPool.from_dict(p)

    def balance_of(self, account: str) -> int:
        with self._lock:
            return int(self._balances.get(account, 0))

    def fund(self, account: str, amount: int) -> int:
        amt = int(amount)
        if amt < 0:
            raise InvalidAmount("negative_fund", {"account": account, "amount": amt})
        with self._lock:
            new_bal = int(self._balances.get(account, 0)) + amt
            if new_bal > U64_MAX:
                raise ArithmeticOverflow("custody_overflow", {"account": account, "amount": amt})
            self._balances[account] = new_bal
            return new_bal

    def history(self, owner: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Json]:
        n = clamp_history_limit(limit)
        with self._lock:
            rs = self._receipts.get(owner, [])
            return copy.deepcopy(list(reversed(rs[-n:])))

    def locks_of(self, owner: str, *, active_only: bool = False) -> List[Lock]:
        with self._lock:
            out = [Lock.from_dict(d) for d in self._locks.values() if d["owner"] == owner]
        return [lk for lk in out if lk.active] if active_only else out

    def get_lock(self, lock_id: str) -> Lock:
        with self._lock:
            d = self._locks.get(lock_id)
            if d is None:
                raise LockNotFound(details={"lock_id": lock_id})
            return Lock.from_dict(d)

    def locked_total(self, owner: str) -> int:
        return locked_total(self.locks_of(owner, active_only=True))

    def commit(self, mutations: Mutations) -> None:
        m = mutations
        if m.vault.owner != m.owner:
            raise ValueError("mutations.vault.owner must match mutations.owner")

        with self._lock:
            present = m.owner in self._vaults or m.owner in self._pools
            if m.create and present:
                raise AlreadyInitialized(details={"owner": m.owner})
            if not m.create and not present:
                raise NotInitialized(details={"owner": m.owner})

            # Stage everything first; nothing below the staging block can fail.
            current = {a: int(self._balances.get(a, 0)) for a in touched_accounts(m.transfers)}
            staged = stage_transfers(current, m.transfers)
            vault_rec = Vault.from_dict(m.vault.to_dict()).to_dict()
            pool_rec = RewardPool.from_dict(m.pool.to_dict()).to_dict()
            stage_locks(m.owner, m.vault, self.locks_of(m.owner), m.locks)

            self._vaults[m.owner] = vault_rec
            self._pools[m.owner] = pool_rec
            self._balances.update(staged)
            for lk in m.locks:
                self._locks[lk.lock_id] = lk.to_dict()
            if m.receipt is not None:
                self._receipts.setdefault(m.owner, []).append(copy.deepcopy(m.receipt))
