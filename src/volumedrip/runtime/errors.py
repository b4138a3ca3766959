from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ApplyError(Exception):
    """Canonical error type for apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class UnauthorizedError(ApplyError):
    code: str = "unauthorized"
    reason: str = "caller_not_authorized"
    details: Any | None = None


@dataclass
class ArithmeticOverflowError(ApplyError):
    code: str = "arithmetic_overflow"
    reason: str = "u256_overflow"
    details: Any | None = None


@dataclass
class InsufficientBalanceError(ApplyError):
    code: str = "insufficient_balance"
    reason: str = "balance_too_low"
    details: Any | None = None
