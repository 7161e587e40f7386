#!/usr/bin/env python3

"""Smoke test for the savegrow vault API.

It verifies, on a fresh SQLite db:
  - the FastAPI app boots and serves /v1/health
  - faucet -> initialize -> deposit -> withdraw -> transfer all succeed
  - reward settles before each balance change
  - a lock caps withdrawals until it is (force-)unlocked

Usage:
  python3 scripts/smoke_vault.py

Optional env overrides:
  SAVEGROW_SMOKE_WAIT_S=2   seconds to wait between deposit and withdraw
"""

from __future__ import annotations

import os
import tempfile
import time

from fastapi.testclient import TestClient

from savegrow.api.app import create_app
from savegrow.runtime.vault_config import VaultConfig


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def _ok(resp) -> dict:
    j = resp.json()
    if resp.status_code != 200 or not j.get("ok"):
        raise RuntimeError(f"request failed: {resp.status_code} {j}")
    return j


def main() -> int:
    wait_s = max(1, _env_int("SAVEGROW_SMOKE_WAIT_S", 2))

    with tempfile.TemporaryDirectory(prefix="savegrow-smoke-") as td:
        cfg = VaultConfig(
            mode="dev",
            store="sqlite",
            db_path=os.path.join(td, "savegrow.db"),
            api_host="127.0.0.1",
            api_port=8080,
            faucet_enabled=True,
            log_level="WARNING",
        )

        with TestClient(create_app(cfg=cfg)) as c:
            _ok(c.get("/v1/health"))
            _ok(c.post("/v1/faucet", json={"account": "smoke", "amount": 1_000_000}))
            _ok(c.post("/v1/vaults/initialize", json={"signer": "smoke"}))
            _ok(c.post("/v1/vaults/deposit", json={"signer": "smoke", "amount": 500_000}))

            time.sleep(wait_s)

            w = _ok(c.post("/v1/vaults/withdraw", json={"signer": "smoke", "amount": 1_000}))["receipt"]
            if w["reward_accrued"] < 50:
                raise RuntimeError(f"expected reward to settle before withdraw: {w}")

            _ok(c.post("/v1/vaults/transfer", json={"signer": "smoke", "amount": 1_000, "recipient": "smoke-peer"}))
            peer = _ok(c.get("/v1/accounts/smoke-peer/balance"))
            if peer["balance"] != 1_000:
                raise RuntimeError(f"recipient balance mismatch: {peer}")

            lock = _ok(c.post("/v1/locks", json={"signer": "smoke", "amount": 400_000, "duration_hours": 1}))["receipt"]["lock"]
            capped = c.post("/v1/vaults/withdraw", json={"signer": "smoke", "amount": 100_000})
            if capped.status_code != 409:
                raise RuntimeError(f"expected locked principal to cap withdraw: {capped.status_code} {capped.json()}")
            u = _ok(c.post(f"/v1/locks/{lock['lock_id']}/unlock", json={"signer": "smoke", "force": True}))["receipt"]
            if u["lock_reward_paid"] != 0:
                raise RuntimeError(f"forced unlock must not pay the lock reward: {u}")

            view = _ok(c.get("/v1/vaults/smoke"))
            print(f"[smoke] vault={view['vault']} reward_pool={view['reward_pool']}")

    print("[smoke] ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
