from __future__ import annotations

from typing import Any, Dict

from savegrow.ledger.errors import (
    ArithmeticOverflow,
    ClockRegression,
    InvalidAmount,
    LockAlreadyClaimed,
    LockNotMatured,
    VaultError,
)

__all__ = [
    "AlreadyInitialized",
    "ArithmeticOverflow",
    "ClockRegression",
    "InsufficientFunds",
    "InvalidAmount",
    "InvalidRecipient",
    "LockAlreadyClaimed",
    "LockNotFound",
    "LockNotMatured",
    "NotInitialized",
    "Unauthorized",
    "VaultError",
]


class Unauthorized(VaultError):
    def __init__(self, reason: str = "signer_not_owner", details: Dict[str, Any] | None = None) -> None:
        super().__init__("unauthorized", reason, details or {})


class InsufficientFunds(VaultError):
    def __init__(self, reason: str = "amount_exceeds_balance", details: Dict[str, Any] | None = None) -> None:
        super().__init__("insufficient_funds", reason, details or {})


class AlreadyInitialized(VaultError):
    def __init__(self, reason: str = "vault_exists", details: Dict[str, Any] | None = None) -> None:
        super().__init__("already_initialized", reason, details or {})


class NotInitialized(VaultError):
    def __init__(self, reason: str = "vault_missing", details: Dict[str, Any] | None = None) -> None:
        super().__init__("not_initialized", reason, details or {})


class InvalidRecipient(VaultError):
    def __init__(self, reason: str = "recipient_invalid", details: Dict[str, Any] | None = None) -> None:
        super().__init__("invalid_recipient", reason, details or {})


class LockNotFound(VaultError):
    def __init__(self, reason: str = "lock_missing", details: Dict[str, Any] | None = None) -> None:
        super().__init__("lock_not_found", reason, details or {})
