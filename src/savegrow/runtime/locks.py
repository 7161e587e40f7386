# src/savegrow/runtime/locks.py
from __future__ import annotations

"""
LockBox operations.

A lock pins part of an owner's vault principal for a whole number of hours.
Nothing moves in custody: the lock only lowers what withdraw / transfer may
take out (see vault_program.require_available). Unlocking at or after
ends_at pays the reward fixed at creation into the owner's reward pool; a
forced early unlock frees the principal and pays nothing.

Lock records are committed through the same Mutations / store.atomic() path
as the vault operations, so a lock change and its receipt land together.
"""

from typing import Any, List, Optional

from savegrow.ledger.constants import U64_MAX
from savegrow.ledger.locks import claim, new_lock
from savegrow.ledger.rewards import accrue
from savegrow.runtime.clock import Clock, SystemClock
from savegrow.runtime.errors import ArithmeticOverflow, LockNotFound
from savegrow.runtime.metrics import inc_counter
from savegrow.runtime.store import AccountStore, Mutations
from savegrow.runtime.vault_program import (
    Json,
    build_receipt,
    checked_now,
    require_amount,
    require_available,
    require_identity,
    require_owner,
    run_guarded,
)


class LockBox:
    """Fixed-term locks over vault principal, bound to the same host as VaultProgram."""

    def __init__(self, *, store: AccountStore, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    def create_lock(self, signer: str, amount: int, duration_hours: Any, *, owner: Optional[str] = None) -> Json:
        s = require_identity(signer, field="signer")
        o = require_identity(owner if owner is not None else s, field="owner")
        amt = require_amount(amount)

        def body() -> Json:
            now = checked_now(self.clock)
            vault, pool = self.store.lookup(o)
            require_owner(vault, s)

            lock = new_lock(o, len(self.store.locks_of(o)), amt, duration_hours, now)
            require_available(self.store, vault, amt)

            receipt = build_receipt("LOCK_CREATE", vault, pool, now=now, signer=s, amount=amt, reward=0)
            receipt["lock"] = lock.to_dict()
            self.store.commit(Mutations(owner=o, vault=vault, pool=pool, receipt=receipt, locks=[lock]))
            return receipt

        return run_guarded(self.store, "lock_create", o, body, custody=False)

    def unlock(self, signer: str, lock_id: str, *, force: bool = False, owner: Optional[str] = None) -> Json:
        """Close a lock.

        At or after ends_at: pays the fixed lock reward into the reward pool.
        Before ends_at: LockNotMatured unless `force`, which pays nothing.
        A claimed lock cannot be unlocked again (LockAlreadyClaimed).
        """
        s = require_identity(signer, field="signer")
        o = require_identity(owner if owner is not None else s, field="owner")
        lid = str(lock_id or "").strip()
        if not lid:
            raise LockNotFound("missing_lock_id", {})

        def body() -> Json:
            now = checked_now(self.clock)
            vault, pool = self.store.lookup(o)
            require_owner(vault, s)
            lock = self.store.get_lock(lid)
            if lock.owner != o:
                raise LockNotFound(details={"lock_id": lid})

            # Settle first so the per-second reward stays computed on the
            # pre-unlock checkpoint, like every other pool credit.
            reward = accrue(vault, pool, now)
            paid = claim(lock, now, force=bool(force))
            new_pool = int(pool.balance) + paid
            if new_pool > U64_MAX:
                raise ArithmeticOverflow("reward_pool_overflow", {"owner": o, "pool_balance": int(pool.balance), "reward": paid})
            pool.balance = new_pool

            receipt = build_receipt("LOCK_UNLOCK", vault, pool, now=now, signer=s, amount=int(lock.amount), reward=reward)
            receipt["lock"] = lock.to_dict()
            receipt["lock_reward_paid"] = paid
            receipt["early"] = now < int(lock.ends_at)
            self.store.commit(Mutations(owner=o, vault=vault, pool=pool, receipt=receipt, locks=[lock]))
            return receipt

        receipt = run_guarded(self.store, "lock_unlock", o, body, custody=False)
        inc_counter("lock_reward_paid_total", int(receipt.get("lock_reward_paid", 0)))
        return receipt

    def locks(self, owner: str, *, active_only: bool = False) -> List[Json]:
        o = require_identity(owner, field="owner")
        return [lk.to_dict() for lk in self.store.locks_of(o, active_only=active_only)]

    def locked_total(self, owner: str) -> int:
        return self.store.locked_total(require_identity(owner, field="owner"))
