# src/savegrow/ledger/rewards.py
from __future__ import annotations

from savegrow.ledger.constants import MIN_ACCRUAL_ELAPSED, REWARD_RATE_DENOMINATOR, U64_MAX
from savegrow.ledger.errors import ArithmeticOverflow, ClockRegression
from savegrow.ledger.types import RewardPool, Vault


def compute_reward(balance: int, elapsed: int) -> int:
    """Reward for holding `balance` over `elapsed` seconds, rounded down.

    Multiply before dividing; Python ints never overflow the intermediate.
    """
    b = int(balance)
    e = int(elapsed)
    if b <= 0 or e < MIN_ACCRUAL_ELAPSED:
        return 0
    return (b * e) // REWARD_RATE_DENOMINATOR


def _elapsed(vault: Vault, now: int) -> int:
    n = int(now)
    elapsed = n - int(vault.last_update_time)
    if elapsed < 0:
        raise ClockRegression(
            details={"owner": vault.owner, "now": n, "last_update_time": int(vault.last_update_time)},
        )
    return elapsed


def pending_reward(vault: Vault, now: int) -> int:
    """Reward that accrue() would credit at `now`, without mutating anything."""
    return compute_reward(vault.balance, _elapsed(vault, now))


def accrue(vault: Vault, pool: RewardPool, now: int) -> int:
    """Settle reward up to `now` and advance the checkpoint.

    Below one whole elapsed second nothing happens and the checkpoint stays
    put, so the partial interval is carried into the next settlement.

    Returns the reward credited to `pool`.
    """
    elapsed = _elapsed(vault, now)
    if elapsed < MIN_ACCRUAL_ELAPSED:
        return 0

    reward = compute_reward(vault.balance, elapsed)
    new_pool = int(pool.balance) + reward
    if new_pool > U64_MAX:
        raise ArithmeticOverflow(
            "reward_pool_overflow",
            {"owner": vault.owner, "pool_balance": int(pool.balance), "reward": reward},
        )

    pool.balance = new_pool
    vault.last_update_time = int(now)
    return reward
