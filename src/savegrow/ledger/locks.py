"""savegrow.ledger.locks

LockBox rules: an owner pins part of the vault principal for a fixed number
of hours in exchange for a reward fixed at creation time.

- Locked principal stays in the vault and keeps accruing the per-second
  reward; it just cannot leave the vault while the lock is active.
- available = vault.balance - sum(active lock amounts)
- Claiming at or after ends_at pays the fixed reward into the reward pool.
- Claiming earlier requires force and pays nothing.
- A lock is claimed once; its record is kept.

Persisted layout:
  Lock = {"lock_id", "owner", "amount", "duration_hours", "reward_amount",
          "created_at", "ends_at", "status", "claimed_at", "paid_reward"}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from savegrow.ledger.constants import (
    BPS_DENOMINATOR,
    HOURS_PER_YEAR,
    I64_MAX,
    I64_MIN,
    LOCK_APY_BPS,
    MAX_LOCK_HOURS,
    MIN_LOCK_HOURS,
    SECONDS_PER_HOUR,
    U64_MAX,
)
from savegrow.ledger.errors import ArithmeticOverflow, InvalidAmount, LockAlreadyClaimed, LockNotMatured
from savegrow.ledger.types import _coerce_int, lock_id

Json = Dict[str, Any]

LOCK_ACTIVE = "active"
LOCK_CLAIMED = "claimed"
_STATUSES = {LOCK_ACTIVE, LOCK_CLAIMED}


@dataclass
class Lock:
    lock_id: str
    owner: str
    amount: int
    duration_hours: int
    reward_amount: int
    created_at: int
    ends_at: int
    status: str = LOCK_ACTIVE
    claimed_at: Optional[int] = None
    paid_reward: int = 0

    @property
    def active(self) -> bool:
        return self.status == LOCK_ACTIVE

    def to_dict(self) -> Json:
        return {
            "lock_id": self.lock_id,
            "owner": self.owner,
            "amount": int(self.amount),
            "duration_hours": int(self.duration_hours),
            "reward_amount": int(self.reward_amount),
            "created_at": int(self.created_at),
            "ends_at": int(self.ends_at),
            "status": self.status,
            "claimed_at": None if self.claimed_at is None else int(self.claimed_at),
            "paid_reward": int(self.paid_reward),
        }

    @classmethod
    def from_dict(cls, d: Json) -> "Lock":
        for k in ("lock_id", "owner"):
            v = d.get(k)
            if not isinstance(v, str) or not v:
                raise ValueError(f"schema error: field '{k}' must be a non-empty string")
        status = d.get("status", LOCK_ACTIVE)
        if status not in _STATUSES:
            raise ValueError(f"schema error: field 'status' must be one of {sorted(_STATUSES)} (got {status!r})")
        claimed_at = d.get("claimed_at")
        return cls(
            lock_id=d["lock_id"],
            owner=d["owner"],
            amount=_coerce_int(d.get("amount"), field="amount", lo=1, hi=U64_MAX),
            duration_hours=_coerce_int(d.get("duration_hours"), field="duration_hours", lo=MIN_LOCK_HOURS, hi=MAX_LOCK_HOURS),
            reward_amount=_coerce_int(d.get("reward_amount", 0), field="reward_amount", lo=0, hi=U64_MAX),
            created_at=_coerce_int(d.get("created_at"), field="created_at", lo=I64_MIN, hi=I64_MAX),
            ends_at=_coerce_int(d.get("ends_at"), field="ends_at", lo=I64_MIN, hi=I64_MAX),
            status=status,
            claimed_at=None if claimed_at is None else _coerce_int(claimed_at, field="claimed_at", lo=I64_MIN, hi=I64_MAX),
            paid_reward=_coerce_int(d.get("paid_reward", 0), field="paid_reward", lo=0, hi=U64_MAX),
        )


def compute_lock_reward(amount: int, duration_hours: int) -> int:
    """Fixed lock reward: amount * 10% APY * hours / 8760, rounded down."""
    a = int(amount)
    h = int(duration_hours)
    if a <= 0 or h <= 0:
        return 0
    return (a * LOCK_APY_BPS * h) // (BPS_DENOMINATOR * HOURS_PER_YEAR)


def new_lock(owner: str, seq: int, amount: int, duration_hours: Any, now: int) -> Lock:
    """Build the `seq`-th lock for `owner`, starting at `now`.

    The caller checks the amount against the available balance.
    """
    if isinstance(duration_hours, bool) or not isinstance(duration_hours, int):
        raise InvalidAmount("duration_not_int", {"type": type(duration_hours).__name__})
    if duration_hours < MIN_LOCK_HOURS or duration_hours > MAX_LOCK_HOURS:
        raise InvalidAmount(
            "duration_out_of_range",
            {"duration_hours": duration_hours, "min": MIN_LOCK_HOURS, "max": MAX_LOCK_HOURS},
        )
    if int(amount) <= 0:
        raise InvalidAmount("lock_amount_not_positive", {"amount": int(amount)})

    ends_at = int(now) + duration_hours * SECONDS_PER_HOUR
    if ends_at > I64_MAX:
        raise ArithmeticOverflow("lock_end_overflow", {"now": int(now), "duration_hours": duration_hours})

    return Lock(
        lock_id=lock_id(owner, seq),
        owner=owner,
        amount=int(amount),
        duration_hours=duration_hours,
        reward_amount=compute_lock_reward(amount, duration_hours),
        created_at=int(now),
        ends_at=ends_at,
    )


def locked_total(locks: Iterable[Lock]) -> int:
    return sum(int(lk.amount) for lk in locks if lk.active)


def claim(lock: Lock, now: int, *, force: bool = False) -> int:
    """Close `lock` at `now` and return the reward it pays (0 on a forced early unlock)."""
    if not lock.active:
        raise LockAlreadyClaimed(details={"lock_id": lock.lock_id, "claimed_at": lock.claimed_at})

    matured = int(now) >= int(lock.ends_at)
    if not matured and not force:
        raise LockNotMatured(details={"lock_id": lock.lock_id, "now": int(now), "ends_at": int(lock.ends_at)})

    paid = int(lock.reward_amount) if matured else 0
    lock.status = LOCK_CLAIMED
    lock.claimed_at = int(now)
    lock.paid_reward = paid
    return paid
