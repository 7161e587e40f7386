# src/savegrow/ledger/constants.py
from __future__ import annotations

"""Vault accounting constants.

- Reward accrues at 1/10000 of principal per elapsed second (0.01%/s)
- Accrual only settles once at least one whole second has elapsed
- Balances are unsigned 64-bit, timestamps signed 64-bit seconds
- Locked principal earns a fixed 10% APY, paid only at maturity
"""

# Reward rate: balance * elapsed / REWARD_RATE_DENOMINATOR
REWARD_RATE_DENOMINATOR: int = 10_000

# Minimum elapsed seconds before the checkpoint advances
MIN_ACCRUAL_ELAPSED: int = 1

U64_MAX: int = 2**64 - 1
I64_MIN: int = -(2**63)
I64_MAX: int = 2**63 - 1

# Seeds for deterministic per-owner account keys
VAULT_SEED: str = "vault"
REWARD_POOL_SEED: str = "reward"
LOCK_SEED: str = "lock"

# LockBox: fixed-term locks on vault principal.
# reward = amount * LOCK_APY_BPS * hours // (BPS_DENOMINATOR * HOURS_PER_YEAR)
LOCK_APY_BPS: int = 1_000  # 10% APY
BPS_DENOMINATOR: int = 10_000
HOURS_PER_YEAR: int = 8_760
SECONDS_PER_HOUR: int = 3_600
MIN_LOCK_HOURS: int = 1
MAX_LOCK_HOURS: int = HOURS_PER_YEAR
