from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. Domain validation (amount
bounds, ownership, balances) happens in VaultProgram and surfaces as
VaultError.
"""

from typing import Optional

from pydantic import BaseModel, Field, StrictBool, StrictInt


class InitializeRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller; becomes the vault owner")


class DepositRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller")
    amount: StrictInt = Field(..., description="Base units moved from the signer's wallet into the vault")
    owner: Optional[str] = Field(default=None, description="Vault owner; defaults to signer")


class WithdrawRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller")
    amount: StrictInt = Field(..., description="Base units released from the vault to the signer")
    owner: Optional[str] = Field(default=None, description="Vault owner; defaults to signer")


class TransferRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller")
    amount: StrictInt = Field(..., description="Base units moved from the vault to the recipient")
    recipient: str = Field(..., min_length=1, description="Any custody account id")
    owner: Optional[str] = Field(default=None, description="Vault owner; defaults to signer")


class FaucetRequest(BaseModel):
    account: str = Field(..., min_length=1, description="Custody account to credit")
    amount: StrictInt = Field(..., ge=0, description="Base units to credit")


class LockCreateRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller")
    amount: StrictInt = Field(..., description="Vault principal to pin; must fit the available balance")
    duration_hours: StrictInt = Field(..., description="Whole hours the principal stays locked")
    owner: Optional[str] = Field(default=None, description="Vault owner; defaults to signer")


class UnlockRequest(BaseModel):
    signer: str = Field(..., min_length=1, description="Authenticated caller")
    force: StrictBool = Field(default=False, description="Unlock before ends_at, forfeiting the lock reward")
    owner: Optional[str] = Field(default=None, description="Vault owner; defaults to signer")
