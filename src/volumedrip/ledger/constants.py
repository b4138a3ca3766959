# src/volumedrip/ledger/constants.py
from __future__ import annotations

"""Numeric domain and token constants.

Amounts live in the unsigned 256-bit range; epoch indices in the unsigned
64-bit range. The u64 maximum is the wire value of the "ended" clock state.
"""

U256_MAX: int = (1 << 256) - 1
U64_MAX: int = (1 << 64) - 1

# Wire value reported for the terminal (ended) epoch state.
ENDED_SENTINEL: int = U64_MAX

TOKEN_DECIMALS: int = 18
ONE_TOKEN: int = 10**TOKEN_DECIMALS

# Counterparty used in mint Transfer events.
ZERO_ADDRESS: str = "0x" + "00" * 20

SYSTEM_SIGNER: str = "SYSTEM"
