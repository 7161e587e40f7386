# src/savegrow/runtime/vault_program.py
from __future__ import annotations

"""
Vault operations.

Every balance-changing operation follows the same shape:

  1. validate inputs (amount, signer, recipient)
  2. lookup copies of the owner's Vault/RewardPool
  3. settle reward up to now (ledger.rewards.accrue)
  4. apply the operation's own delta to the copies
  5. hand the whole change set to the store in one commit()

Steps 1-4 only touch copies, so any VaultError leaves the store exactly as it
was. Steps 2-5 run inside store.atomic(), which serializes access per store.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from savegrow.ledger.constants import I64_MAX, I64_MIN, U64_MAX
from savegrow.ledger.rewards import accrue, pending_reward
from savegrow.ledger.types import RewardPool, Vault, is_program_account, reward_pool_address, vault_address
from savegrow.runtime.clock import Clock, SystemClock
from savegrow.runtime.errors import (
    ArithmeticOverflow,
    ClockRegression,
    InsufficientFunds,
    InvalidAmount,
    InvalidRecipient,
    Unauthorized,
    VaultError,
)
from savegrow.runtime.metrics import inc_counter
from savegrow.runtime.store import AccountStore, CustodyTransfer, Mutations
from savegrow.runtime.vault_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("savegrow.vault")


def require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount("amount_not_int", {"type": type(amount).__name__})
    if amount < 0:
        raise InvalidAmount("negative_amount", {"amount": amount})
    if amount > U64_MAX:
        raise InvalidAmount("amount_exceeds_u64", {"amount": amount})
    return amount


def require_identity(value: Any, *, field: str) -> str:
    s = value.strip() if isinstance(value, str) else ""
    if not s:
        if field == "recipient":
            raise InvalidRecipient("missing_recipient", {})
        raise Unauthorized(f"missing_{field}", {})
    # Derived vault / reward pool keys are custody accounts, never identities,
    # and only the program moves funds into them.
    if is_program_account(s):
        if field == "recipient":
            raise InvalidRecipient("recipient_is_program_account", {"recipient": s})
        raise Unauthorized(f"{field}_is_program_account", {field: s})
    return s


def require_owner(vault: Vault, signer: str) -> None:
    if vault.owner != signer:
        raise Unauthorized(details={"owner": vault.owner, "signer": signer})


def require_available(store: AccountStore, vault: Vault, amount: int) -> None:
    """Principal under an active lock cannot leave the vault."""
    locked = store.locked_total(vault.owner)
    available = int(vault.balance) - locked
    if amount > available:
        raise InsufficientFunds(
            details={
                "owner": vault.owner,
                "balance": int(vault.balance),
                "locked": locked,
                "available": max(0, available),
                "amount": amount,
            }
        )


def checked_now(clock: Clock) -> int:
    now = int(clock.now())
    if now < I64_MIN or now > I64_MAX:
        raise ClockRegression("clock_out_of_range", {"now": now})
    return now


def run_guarded(store: AccountStore, op: str, owner: str, body: Callable[[], Json], *, custody: bool = True) -> Json:
    """Run `body` inside store.atomic() and record the outcome.

    `custody=False` for operations whose receipt amount never leaves or
    enters custody (LockBox).
    """
    try:
        with store.atomic():
            receipt = body()
    except VaultError as e:
        inc_counter(f"vault_{op}_rejected_total")
        log_event(log, "vault_op_rejected", level=logging.WARNING, op=op, owner=owner, code=e.code, reason=e.reason)
        raise

    inc_counter(f"vault_{op}_applied_total")
    inc_counter("reward_credited_total", int(receipt.get("reward_accrued", 0)))
    if custody:
        inc_counter("custody_moved_total", int(receipt.get("amount", 0)))
    log_event(log, "vault_op_applied", **receipt)
    return receipt


def build_receipt(applied: str, vault: Vault, pool: RewardPool, *, now: int, signer: str, amount: int, reward: int) -> Json:
    return {
        "applied": applied,
        "owner": vault.owner,
        "signer": signer,
        "amount": int(amount),
        "reward_accrued": int(reward),
        "vault_balance": int(vault.balance),
        "reward_balance": int(pool.balance),
        "last_update_time": int(vault.last_update_time),
        "ts": int(now),
    }


class VaultProgram:
    """The four vault operations plus read-only views, bound to one host."""

    def __init__(self, *, store: AccountStore, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    def _now(self) -> int:
        return checked_now(self.clock)

    def _run(self, op: str, owner: str, body: Callable[[], Json]) -> Json:
        return run_guarded(self.store, op, owner, body)

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    def initialize(self, signer: str) -> Json:
        """Create the signer's Vault and RewardPool, both empty, checkpointed at now."""
        owner = require_identity(signer, field="signer")

        def body() -> Json:
            now = self._now()
            vault = Vault(owner=owner, balance=0, last_update_time=now)
            pool = RewardPool(balance=0)
            receipt = build_receipt("VAULT_INITIALIZE", vault, pool, now=now, signer=owner, amount=0, reward=0)
            receipt["vault_address"] = vault_address(owner)
            receipt["reward_pool_address"] = reward_pool_address(owner)
            self.store.commit(Mutations(owner=owner, vault=vault, pool=pool, receipt=receipt, create=True))
            return receipt

        return self._run("initialize", owner, body)

    def deposit(self, signer: str, amount: int, *, owner: Optional[str] = None) -> Json:
        """Settle reward, then move `amount` from the signer's wallet into vault custody."""
        s = require_identity(signer, field="signer")
        o = require_identity(owner if owner is not None else s, field="owner")
        amt = require_amount(amount)

        def body() -> Json:
            now = self._now()
            vault, pool = self.store.lookup(o)
            require_owner(vault, s)
            reward = accrue(vault, pool, now)

            source_balance = self.store.balance_of(s)
            if amt > source_balance:
                raise InsufficientFunds("source_balance_too_low", {"account": s, "balance": source_balance, "amount": amt})

            new_balance = vault.balance + amt
            if new_balance > U64_MAX:
                raise ArithmeticOverflow("vault_balance_overflow", {"owner": o, "balance": vault.balance, "amount": amt})
            vault.balance = new_balance

            transfers = [CustodyTransfer(source=s, destination=vault.address, amount=amt)] if amt else []
            receipt = build_receipt("VAULT_DEPOSIT", vault, pool, now=now, signer=s, amount=amt, reward=reward)
            self.store.commit(Mutations(owner=o, vault=vault, pool=pool, transfers=transfers, receipt=receipt))
            return receipt

        return self._run("deposit", o, body)

    def withdraw(self, signer: str, amount: int, *, owner: Optional[str] = None) -> Json:
        """Settle reward, then release `amount` from vault custody back to the signer.

        Capped by the available balance: principal under an active lock stays put.
        """
        s = require_identity(signer, field="signer")
        o = require_identity(owner if owner is not None else s, field="owner")
        amt = require_amount(amount)

        def body() -> Json:
            now = self._now()
            vault, pool = self.store.lookup(o)
            require_owner(vault, s)
            reward = accrue(vault, pool, now)

            require_available(self.store, vault, amt)
            vault.balance -= amt

            transfers = [CustodyTransfer(source=vault.address, destination=s, amount=amt)] if amt else []
            receipt = build_receipt("VAULT_WITHDRAW", vault, pool, now=now, signer=s, amount=amt, reward=reward)
            self.store.commit(Mutations(owner=o, vault=vault, pool=pool, transfers=transfers, receipt=receipt))
            return receipt

        return self._run("withdraw", o, body)

    def transfer(self, signer: str, amount: int, recipient: str, *, owner: Optional[str] = None) -> Json:
        """Settle reward, then move `amount` straight from vault custody to `recipient`.

        The recipient is any wallet-style account; it does not need a vault.
        Derived vault and reward pool keys are refused, since no record would
        ever account for custody credited there.
        """
        s = require_identity(signer, field="signer")
        o = require_identity(owner if owner is not None else s, field="owner")
        to = require_identity(recipient, field="recipient")
        amt = require_amount(amount)

        def body() -> Json:
            now = self._now()
            vault, pool = self.store.lookup(o)
            require_owner(vault, s)
            reward = accrue(vault, pool, now)

            require_available(self.store, vault, amt)
            vault.balance -= amt

            transfers = [CustodyTransfer(source=vault.address, destination=to, amount=amt)] if amt else []
            receipt = build_receipt("VAULT_TRANSFER", vault, pool, now=now, signer=s, amount=amt, reward=reward)
            receipt["recipient"] = to
            self.store.commit(Mutations(owner=o, vault=vault, pool=pool, transfers=transfers, receipt=receipt))
            return receipt

        return self._run("transfer", o, body)

    # ------------------------------------------------------------------
    # read-only views
    # ------------------------------------------------------------------

    def view(self, owner: str) -> Json:
        """Current records plus the reward that would settle right now."""
        o = require_identity(owner, field="owner")
        with self.store.snapshot():
            vault, pool = self.store.lookup(o)
            custody = self.store.balance_of(vault.address)
            locked = self.store.locked_total(o)
        now = self._now()
        pending = pending_reward(vault, now)
        return {
            "owner": o,
            "vault": vault.to_dict(),
            "reward_pool": pool.to_dict(),
            "pending_reward": pending,
            "projected_reward_balance": int(pool.balance) + pending,
            "custody_balance": custody,
            "locked_total": locked,
            "available_balance": int(vault.balance) - locked,
            "vault_address": vault.address,
            "reward_pool_address": reward_pool_address(o),
            "now": now,
        }

    def history(self, owner: str, limit: int = 50) -> List[Json]:
        return self.store.history(require_identity(owner, field="owner"), limit)

    def balance_of(self, account: str) -> int:
        return self.store.balance_of(account)
