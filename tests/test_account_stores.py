# tests/test_account_stores.py
from __future__ import annotations

from pathlib import Path

import pytest

from savegrow.ledger.locks import claim, new_lock
from savegrow.ledger.types import RewardPool, Vault
from savegrow.runtime.errors import AlreadyInitialized, InsufficientFunds, LockNotFound, NotInitialized
from savegrow.runtime.sqlite_db import SqliteAccountStore, SqliteDB
from savegrow.runtime.store import CustodyTransfer, MemoryAccountStore, Mutations


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return MemoryAccountStore()
    return SqliteAccountStore(db=SqliteDB(path=str(tmp_path / "savegrow.db")))


def _create(store, owner: str, t: int = 100) -> None:
    store.commit(
        Mutations(
            owner=owner,
            vault=Vault(owner=owner, balance=0, last_update_time=t),
            pool=RewardPool(balance=0),
            receipt={"applied": "VAULT_INITIALIZE", "owner": owner},
            create=True,
        )
    )


def test_create_lookup_roundtrip(store) -> None:
    assert not store.exists("alice")
    _create(store, "alice")
    assert store.exists("alice")

    vault, pool = store.lookup("alice")
    assert vault == Vault(owner="alice", balance=0, last_update_time=100)
    assert pool == RewardPool(balance=0)


def test_create_twice_rejected(store) -> None:
    _create(store, "alice")
    with pytest.raises(AlreadyInitialized):
        _create(store, "alice")


def test_lookup_missing_owner(store) -> None:
    with pytest.raises(NotInitialized):
        store.lookup("ghost")


def test_lookup_returns_copies(store) -> None:
    _create(store, "alice")
    vault, pool = store.lookup("alice")
    vault.balance = 999
    pool.balance = 999
    assert store.lookup("alice") == (Vault(owner="alice", balance=0, last_update_time=100), RewardPool(balance=0))


def test_commit_applies_records_and_custody_together(store) -> None:
    _create(store, "alice")
    store.fund("alice", 1_000)

    store.commit(
        Mutations(
            owner="alice",
            vault=Vault(owner="alice", balance=600, last_update_time=105),
            pool=RewardPool(balance=3),
            transfers=[CustodyTransfer(source="alice", destination="vault:alice", amount=600)],
            receipt={"applied": "VAULT_DEPOSIT", "amount": 600},
        )
    )

    vault, pool = store.lookup("alice")
    assert vault.balance == 600
    assert vault.last_update_time == 105
    assert pool.balance == 3
    assert store.balance_of("alice") == 400
    assert store.balance_of("vault:alice") == 600
    assert [r["applied"] for r in store.history("alice")] == ["VAULT_DEPOSIT", "VAULT_INITIALIZE"]


def test_overdrawing_custody_aborts_whole_commit(store) -> None:
    _create(store, "alice")
    store.fund("alice", 50)

    with pytest.raises(InsufficientFunds):
        store.commit(
            Mutations(
                owner="alice",
                vault=Vault(owner="alice", balance=60, last_update_time=200),
                pool=RewardPool(balance=42),
                transfers=[
                    CustodyTransfer(source="alice", destination="bob", amount=10),
                    CustodyTransfer(source="alice", destination="vault:alice", amount=60),
                ],
                receipt={"applied": "VAULT_DEPOSIT"},
            )
        )

    vault, pool = store.lookup("alice")
    assert vault.balance == 0
    assert vault.last_update_time == 100
    assert pool.balance == 0
    assert store.balance_of("alice") == 50
    assert store.balance_of("bob") == 0
    assert len(store.history("alice")) == 1


def test_commit_for_unknown_owner_rejected(store) -> None:
    with pytest.raises(NotInitialized):
        store.commit(Mutations(owner="ghost", vault=Vault(owner="ghost"), pool=RewardPool()))


def test_large_u64_balances_survive_persistence(store) -> None:
    big = 2**64 - 1
    _create(store, "whale")
    store.fund("whale", big)
    store.commit(
        Mutations(
            owner="whale",
            vault=Vault(owner="whale", balance=big, last_update_time=101),
            pool=RewardPool(balance=big),
            transfers=[CustodyTransfer(source="whale", destination="vault:whale", amount=big)],
        )
    )
    vault, pool = store.lookup("whale")
    assert vault.balance == big
    assert pool.balance == big
    assert store.balance_of("vault:whale") == big


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    db_path = str(tmp_path / "persist.db")
    s1 = SqliteAccountStore(db=SqliteDB(path=db_path))
    _create(s1, "alice", t=1234)
    s1.fund("alice", 77)

    s2 = SqliteAccountStore(db=SqliteDB(path=db_path))
    vault, _ = s2.lookup("alice")
    assert vault.last_update_time == 1234
    assert s2.balance_of("alice") == 77
    assert s2.history("alice")[0]["applied"] == "VAULT_INITIALIZE"


def test_sqlite_atomic_rolls_back_on_error(tmp_path: Path) -> None:
    store = SqliteAccountStore(db=SqliteDB(path=str(tmp_path / "rb.db")))
    _create(store, "alice")

    with pytest.raises(RuntimeError):
        with store.atomic():
            store.fund("alice", 500)
            raise RuntimeError("boom")

    assert store.balance_of("alice") == 0


def _fund_vault(store, owner: str, amount: int) -> None:
    store.fund(owner, amount)
    store.commit(
        Mutations(
            owner=owner,
            vault=Vault(owner=owner, balance=amount, last_update_time=100),
            pool=RewardPool(balance=0),
            transfers=[CustodyTransfer(source=owner, destination=f"vault:{owner}", amount=amount)],
        )
    )


def test_locks_commit_with_records_and_stay_owner_scoped(store) -> None:
    _create(store, "alice")
    _create(store, "bob")
    _fund_vault(store, "alice", 1_000)

    lk = new_lock("alice", 0, 700, 12, 100)
    vault, pool = store.lookup("alice")
    store.commit(Mutations(owner="alice", vault=vault, pool=pool, locks=[lk], receipt={"applied": "LOCK_CREATE"}))

    assert store.get_lock(lk.lock_id) == lk
    assert store.locked_total("alice") == 700
    assert store.locked_total("bob") == 0
    assert store.locks_of("bob") == []

    claim(lk, lk.ends_at)
    store.commit(Mutations(owner="alice", vault=vault, pool=pool, locks=[lk]))
    assert store.locked_total("alice") == 0
    assert [x.status for x in store.locks_of("alice")] == ["claimed"]
    assert store.locks_of("alice", active_only=True) == []


def test_commit_refuses_locks_beyond_vault_balance(store) -> None:
    _create(store, "alice")
    _fund_vault(store, "alice", 1_000)
    vault, pool = store.lookup("alice")
    store.commit(Mutations(owner="alice", vault=vault, pool=pool, locks=[new_lock("alice", 0, 800, 1, 100)]))

    # Shrinking the vault below the locked amount must not land.
    with pytest.raises(InsufficientFunds) as e:
        store.commit(
            Mutations(
                owner="alice",
                vault=Vault(owner="alice", balance=500, last_update_time=100),
                pool=pool,
                transfers=[CustodyTransfer(source="vault:alice", destination="alice", amount=500)],
            )
        )
    assert e.value.reason == "locked_exceeds_balance"
    assert store.lookup("alice")[0].balance == 1_000
    assert store.balance_of("alice") == 0


def test_missing_lock_lookup(store) -> None:
    with pytest.raises(LockNotFound):
        store.get_lock("lock:nope")


def test_sqlite_snapshot_hides_concurrent_commit(tmp_path: Path) -> None:
    db_path = str(tmp_path / "snap.db")
    reader = SqliteAccountStore(db=SqliteDB(path=db_path))
    writer = SqliteAccountStore(db=SqliteDB(path=db_path))
    _create(reader, "alice")
    reader.fund("alice", 10)

    with reader.snapshot():
        assert reader.balance_of("alice") == 10
        writer.fund("alice", 5)
        assert reader.balance_of("alice") == 10
        assert reader.lookup("alice")[0].owner == "alice"

    assert reader.balance_of("alice") == 15
