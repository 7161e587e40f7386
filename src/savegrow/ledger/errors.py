"""savegrow.ledger.errors

Errors the pure ledger rules raise. They share the VaultError shape with the
runtime taxonomy (savegrow.runtime.errors re-exports them), so callers catch
one base type regardless of which layer rejected the change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(eq=False)
class VaultError(Exception):
    """Canonical error type for vault operations.

    Raised before any mutation is committed; the store never observes a
    partially applied operation.
    """

    code: str
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ClockRegression(VaultError):
    def __init__(self, reason: str = "now_before_checkpoint", details: Dict[str, Any] | None = None) -> None:
        super().__init__("clock_regression", reason, details or {})


class InvalidAmount(VaultError):
    def __init__(self, reason: str = "amount_invalid", details: Dict[str, Any] | None = None) -> None:
        super().__init__("invalid_amount", reason, details or {})


class ArithmeticOverflow(VaultError):
    def __init__(self, reason: str = "u64_overflow", details: Dict[str, Any] | None = None) -> None:
        super().__init__("arithmetic_overflow", reason, details or {})


class LockNotMatured(VaultError):
    def __init__(self, reason: str = "lock_period_active", details: Dict[str, Any] | None = None) -> None:
        super().__init__("lock_not_matured", reason, details or {})


class LockAlreadyClaimed(VaultError):
    def __init__(self, reason: str = "already_claimed", details: Dict[str, Any] | None = None) -> None:
        super().__init__("lock_already_claimed", reason, details or {})
