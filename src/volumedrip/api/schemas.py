"""Pydantic request schemas for the public API.

These models only validate HTTP input. Payload semantics (accounts,
amounts) are checked by the ledger when the tx is applied.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="REPORT_VOLUME, TRANSFER, APPROVE, ...")
    signer: str = Field(..., description="Signer account address (0x...)")
    nonce: int = Field(..., ge=0, description="Must equal the signer's last nonce + 1")
    payload: Dict[str, Any] = Field(default_factory=dict)

    sig: str = Field(default="", description="Hex or base64 Ed25519 signature")
    pubkey: str = Field(default="", description="Hex or base64 Ed25519 public key")

    model_config = {"extra": "forbid"}


class MineRequest(BaseModel):
    n: int = Field(default=1, ge=1, le=1_000_000, description="Number of empty blocks to mine")
