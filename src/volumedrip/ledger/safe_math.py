# src/volumedrip/ledger/safe_math.py
from __future__ import annotations

"""Checked unsigned 256-bit arithmetic.

Python ints never wrap, so overflow has to be detected against the u256
bound explicitly. Every helper raises ArithmeticOverflowError instead of
truncating; callers rely on the executor to roll the transaction back.
"""

from volumedrip.ledger.constants import U256_MAX
from volumedrip.runtime.errors import ApplyError, ArithmeticOverflowError


def require_u256(x: int, *, field: str = "amount") -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise ApplyError("invalid_payload", f"{field}_not_int", {"field": field, "type": type(x).__name__})
    if x < 0 or x > U256_MAX:
        raise ApplyError("invalid_payload", f"{field}_out_of_range", {"field": field, "value": str(x)})
    return x


def u256_add(x: int, y: int) -> int:
    """Checked add: raise on overflow."""
    z = int(x) + int(y)
    if z > U256_MAX:
        raise ArithmeticOverflowError(details={"op": "add", "x": str(x), "y": str(y)})
    return z


def u256_sub(x: int, y: int) -> int:
    """Checked sub: raise on underflow (y > x)."""
    if int(y) > int(x):
        raise ArithmeticOverflowError(reason="u256_underflow", details={"op": "sub", "x": str(x), "y": str(y)})
    return int(x) - int(y)


def u256_mul(x: int, y: int) -> int:
    """Checked multiply: raise on overflow."""
    z = int(x) * int(y)
    if z > U256_MAX:
        raise ArithmeticOverflowError(details={"op": "mul", "x": str(x), "y": str(y)})
    return z


def u256_mul_div_down(x: int, y: int, d: int) -> int:
    """Checked floor((x*y)/d).

    The product is range-checked before dividing, matching fixed-width
    semantics where the intermediate can overflow even if the ratio is small.
    """
    if int(d) == 0:
        raise ArithmeticOverflowError(reason="division_by_zero", details={"op": "mul_div", "d": "0"})
    return u256_mul(x, y) // int(d)
