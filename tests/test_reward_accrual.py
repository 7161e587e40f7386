# tests/test_reward_accrual.py
from __future__ import annotations

import pytest

from savegrow.ledger.constants import U64_MAX
from savegrow.ledger.rewards import accrue, compute_reward, pending_reward
from savegrow.ledger.types import RewardPool, Vault
from savegrow.runtime.errors import ArithmeticOverflow, ClockRegression


T0 = 1_700_000_000


def _pair(balance: int = 0, pool: int = 0, t: int = T0) -> tuple[Vault, RewardPool]:
    return Vault(owner="alice", balance=balance, last_update_time=t), RewardPool(balance=pool)


def test_one_second_on_ten_thousand_yields_one() -> None:
    assert compute_reward(10_000, 1) == 1


def test_zero_balance_never_accrues() -> None:
    for elapsed in (0, 1, 60, 86_400 * 365):
        assert compute_reward(0, elapsed) == 0


def test_reward_rounds_down() -> None:
    # 9_999 * 1 / 10_000 = 0.9999 -> 0
    assert compute_reward(9_999, 1) == 0
    assert compute_reward(9_999, 2) == 1
    assert compute_reward(15_000, 3) == 4


def test_intermediate_product_does_not_overflow_u64() -> None:
    # balance * elapsed exceeds 2**64 but the quotient fits.
    reward = compute_reward(U64_MAX, 5_000)
    assert reward == (U64_MAX * 5_000) // 10_000


def test_accrue_credits_pool_and_advances_checkpoint() -> None:
    vault, pool = _pair(balance=10_000)
    credited = accrue(vault, pool, T0 + 5)
    assert credited == 5
    assert pool.balance == 5
    assert vault.last_update_time == T0 + 5
    assert vault.balance == 10_000


def test_accrue_same_now_twice_is_noop() -> None:
    vault, pool = _pair(balance=50_000)
    accrue(vault, pool, T0 + 10)
    snapshot = (vault.balance, vault.last_update_time, pool.balance)

    assert accrue(vault, pool, T0 + 10) == 0
    assert (vault.balance, vault.last_update_time, pool.balance) == snapshot


def test_elapsed_below_one_second_keeps_checkpoint() -> None:
    vault, pool = _pair(balance=10_000)
    assert accrue(vault, pool, T0) == 0
    assert vault.last_update_time == T0
    assert pool.balance == 0


def test_advances_checkpoint_even_when_reward_rounds_to_zero() -> None:
    vault, pool = _pair(balance=100)
    assert accrue(vault, pool, T0 + 3) == 0
    assert vault.last_update_time == T0 + 3


def test_clock_regression_rejected_without_mutation() -> None:
    vault, pool = _pair(balance=10_000, pool=7)
    with pytest.raises(ClockRegression) as e:
        accrue(vault, pool, T0 - 1)
    assert e.value.code == "clock_regression"
    assert vault.last_update_time == T0
    assert pool.balance == 7


def test_pool_overflow_rejected_without_mutation() -> None:
    vault, pool = _pair(balance=10_000, pool=U64_MAX)
    with pytest.raises(ArithmeticOverflow):
        accrue(vault, pool, T0 + 1)
    assert pool.balance == U64_MAX
    assert vault.last_update_time == T0


def test_pending_reward_does_not_mutate() -> None:
    vault, pool = _pair(balance=20_000)
    assert pending_reward(vault, T0 + 30) == 60
    assert vault.last_update_time == T0
    assert pool.balance == 0


def test_pool_is_non_decreasing_across_settlements() -> None:
    vault, pool = _pair(balance=12_345)
    seen = [pool.balance]
    for step in (1, 1, 7, 0, 120, 3):
        accrue(vault, pool, vault.last_update_time + step)
        seen.append(pool.balance)
    assert seen == sorted(seen)
