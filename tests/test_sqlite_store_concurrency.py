from __future__ import annotations

import multiprocessing as mp
from pathlib import Path

from savegrow.ledger.types import vault_address
from savegrow.runtime.clock import ManualClock
from savegrow.runtime.sqlite_db import SqliteAccountStore, SqliteDB
from savegrow.runtime.vault_program import VaultProgram


def _worker(db_path: str, n: int) -> None:
    store = SqliteAccountStore(db=SqliteDB(path=db_path))
    prog = VaultProgram(store=store, clock=ManualClock(1_000))
    for _ in range(int(n)):
        prog.deposit("alice", 1)


def test_sqlite_deposits_are_cross_process_safe(tmp_path: Path) -> None:
    """Concurrent deposits from several processes must not lose updates.

    Each deposit is a lookup -> settle -> commit sequence; without the
    store's write transaction around it, interleaved processes would
    overwrite each other's balances.
    """
    db_path = str(tmp_path / "savegrow_test.db")
    store = SqliteAccountStore(db=SqliteDB(path=db_path))
    prog = VaultProgram(store=store, clock=ManualClock(1_000))

    workers = 4
    per = 50

    store.fund("alice", workers * per)
    prog.initialize("alice")

    procs: list[mp.Process] = []
    for _ in range(workers):
        pr = mp.Process(target=_worker, args=(db_path, per))
        pr.start()
        procs.append(pr)

    for pr in procs:
        pr.join(60)
        assert pr.exitcode == 0

    vault, _ = store.lookup("alice")
    assert vault.balance == workers * per
    assert store.balance_of(vault_address("alice")) == workers * per
    assert store.balance_of("alice") == 0
