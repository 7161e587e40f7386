# tests/test_lockbox.py
from __future__ import annotations

import pytest

from savegrow.ledger.constants import SECONDS_PER_HOUR
from savegrow.ledger.locks import compute_lock_reward
from savegrow.ledger.rewards import compute_reward
from savegrow.ledger.types import lock_id, vault_address
from savegrow.runtime.clock import ManualClock
from savegrow.runtime.errors import (
    InsufficientFunds,
    InvalidAmount,
    LockAlreadyClaimed,
    LockNotFound,
    LockNotMatured,
    Unauthorized,
)
from savegrow.runtime.locks import LockBox
from savegrow.runtime.store import MemoryAccountStore
from savegrow.runtime.vault_program import VaultProgram


T0 = 1_700_000_000


def _setup(*owners: str, wallet: int = 10_000_000) -> tuple[VaultProgram, LockBox, ManualClock]:
    clock = ManualClock(T0)
    store = MemoryAccountStore()
    prog = VaultProgram(store=store, clock=clock)
    for o in owners:
        store.fund(o, wallet)
        prog.initialize(o)
    return prog, LockBox(store=store, clock=clock), clock


def test_lock_reward_is_ten_percent_apy_rounded_down() -> None:
    assert compute_lock_reward(1_000_000, 8_760) == 100_000
    assert compute_lock_reward(87_600, 24) == 24
    assert compute_lock_reward(8_760_000, 1) == 100
    assert compute_lock_reward(100, 1) == 0
    assert compute_lock_reward(0, 24) == 0


def test_create_lock_records_terms_without_moving_custody() -> None:
    prog, box, _ = _setup("alice")
    prog.deposit("alice", 87_600)

    r = box.create_lock("alice", 87_600, 24)

    lock = r["lock"]
    assert r["applied"] == "LOCK_CREATE"
    assert lock["lock_id"] == lock_id("alice", 0)
    assert lock["reward_amount"] == 24
    assert lock["created_at"] == T0
    assert lock["ends_at"] == T0 + 24 * SECONDS_PER_HOUR
    assert lock["status"] == "active"
    assert prog.balance_of(vault_address("alice")) == 87_600
    assert box.locked_total("alice") == 87_600


def test_lock_ids_are_per_owner_sequence() -> None:
    prog, box, _ = _setup("alice", "bob")
    prog.deposit("alice", 1_000)
    prog.deposit("bob", 1_000)

    a0 = box.create_lock("alice", 10, 1)["lock"]["lock_id"]
    a1 = box.create_lock("alice", 10, 1)["lock"]["lock_id"]
    b0 = box.create_lock("bob", 10, 1)["lock"]["lock_id"]

    assert len({a0, a1, b0}) == 3
    assert a1 == lock_id("alice", 1)
    assert b0 == lock_id("bob", 0)


@pytest.mark.parametrize("op", ["withdraw", "transfer"])
def test_active_lock_caps_outflow_to_available_balance(op: str) -> None:
    prog, box, _ = _setup("alice")
    prog.deposit("alice", 10_000)
    box.create_lock("alice", 6_000, 1)

    def run(amount: int):
        if op == "withdraw":
            return prog.withdraw("alice", amount)
        return prog.transfer("alice", amount, "bob")

    with pytest.raises(InsufficientFunds) as e:
        run(4_001)
    assert e.value.details["locked"] == 6_000
    assert e.value.details["available"] == 4_000

    r = run(4_000)
    assert r["vault_balance"] == 6_000
    with pytest.raises(InsufficientFunds):
        run(1)


def test_lock_cannot_exceed_available_balance() -> None:
    prog, box, _ = _setup("alice")
    prog.deposit("alice", 1_000)
    box.create_lock("alice", 600, 12)

    with pytest.raises(InsufficientFunds):
        box.create_lock("alice", 401, 12)
    box.create_lock("alice", 400, 12)
    assert box.locked_total("alice") == 1_000


def test_early_unlock_needs_force_and_pays_nothing() -> None:
    prog, box, clock = _setup("alice")
    prog.deposit("alice", 87_600)
    lid = box.create_lock("alice", 87_600, 24)["lock"]["lock_id"]
    clock.advance(SECONDS_PER_HOUR)
    before = prog.store.lookup("alice")

    with pytest.raises(LockNotMatured):
        box.unlock("alice", lid)
    assert prog.store.lookup("alice") == before
    assert box.locked_total("alice") == 87_600

    r = box.unlock("alice", lid, force=True)
    assert r["applied"] == "LOCK_UNLOCK"
    assert r["lock_reward_paid"] == 0
    assert r["early"] is True
    assert r["lock"]["status"] == "claimed"
    # The per-second reward still settles on the way through.
    assert r["reward_accrued"] == compute_reward(87_600, SECONDS_PER_HOUR)
    assert r["reward_balance"] == r["reward_accrued"]

    assert box.locked_total("alice") == 0
    prog.withdraw("alice", 87_600)


def test_matured_unlock_pays_fixed_reward_into_pool() -> None:
    prog, box, clock = _setup("alice")
    prog.deposit("alice", 87_600)
    lid = box.create_lock("alice", 87_600, 24)["lock"]["lock_id"]

    clock.advance(24 * SECONDS_PER_HOUR)
    r = box.unlock("alice", lid)

    assert r["lock_reward_paid"] == 24
    assert r["early"] is False
    _, pool = prog.store.lookup("alice")
    assert pool.balance == compute_reward(87_600, 24 * SECONDS_PER_HOUR) + 24
    assert prog.view("alice")["available_balance"] == 87_600


@pytest.mark.parametrize("force", [False, True])
def test_second_unlock_is_rejected(force: bool) -> None:
    prog, box, clock = _setup("alice")
    prog.deposit("alice", 1_000)
    lid = box.create_lock("alice", 1_000, 1)["lock"]["lock_id"]
    clock.advance(SECONDS_PER_HOUR)
    box.unlock("alice", lid)
    _, pool_before = prog.store.lookup("alice")

    with pytest.raises(LockAlreadyClaimed):
        box.unlock("alice", lid, force=force)
    _, pool_after = prog.store.lookup("alice")
    assert pool_after == pool_before


def test_unlock_only_finds_own_locks() -> None:
    prog, box, _ = _setup("alice", "bob")
    prog.deposit("alice", 1_000)
    lid = box.create_lock("alice", 1_000, 1)["lock"]["lock_id"]

    with pytest.raises(LockNotFound):
        box.unlock("bob", lid, force=True)
    with pytest.raises(Unauthorized):
        box.unlock("bob", lid, force=True, owner="alice")
    with pytest.raises(LockNotFound):
        box.unlock("alice", lock_id("alice", 99))
    assert box.locked_total("alice") == 1_000


@pytest.mark.parametrize("hours", [0, -1, 8_761, 1.5, True, "1"])
def test_invalid_durations_rejected(hours) -> None:
    prog, box, _ = _setup("alice")
    prog.deposit("alice", 1_000)
    with pytest.raises(InvalidAmount):
        box.create_lock("alice", 10, hours)
    assert box.locks("alice") == []


def test_zero_amount_lock_rejected() -> None:
    prog, box, _ = _setup("alice")
    prog.deposit("alice", 1_000)
    with pytest.raises(InvalidAmount):
        box.create_lock("alice", 0, 1)


def test_view_and_history_reflect_locks() -> None:
    prog, box, clock = _setup("alice")
    prog.deposit("alice", 5_000)
    lid = box.create_lock("alice", 2_000, 1)["lock"]["lock_id"]

    v = prog.view("alice")
    assert v["locked_total"] == 2_000
    assert v["available_balance"] == 3_000

    clock.advance(SECONDS_PER_HOUR)
    box.unlock("alice", lid)
    assert [i["applied"] for i in prog.history("alice", limit=2)] == ["LOCK_UNLOCK", "LOCK_CREATE"]
    assert box.locks("alice", active_only=True) == []
    assert [lk["status"] for lk in box.locks("alice")] == ["claimed"]
