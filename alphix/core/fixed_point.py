"""Integer fixed-point arithmetic shared by every Alphix kernel.

Every function is stateless and operates on plain Python ints.

Rounding is always explicit: `mul_div` floors, `mul_div_up` rounds toward +inf.
Who absorbs rounding dust is part of the economic contract, so callers pick the
direction at each call site. Python ints do not overflow, so the 256-bit word
bound of the host ledger is enforced with `require_uint256` where values are
persisted.
"""

from __future__ import annotations

from .errors import ArithmeticOverflow

# Scales
WAD: int = 10**18
Q96: int = 1 << 96
MAX_BPS: int = 10_000
MAX_PIPS: int = 1_000_000

MAX_UINT256: int = (1 << 256) - 1
MAX_UINT160: int = (1 << 160) - 1
MAX_UINT128: int = (1 << 128) - 1


def require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def require_uint256(name: str, value: int) -> int:
    """Return *value* unchanged if it fits an unsigned 256-bit word."""
    require_int(name, value)
    if value < 0 or value > MAX_UINT256:
        raise ArithmeticOverflow(f"{name} out of uint256 range: {value}")
    return value


def require_uint128(name: str, value: int) -> int:
    require_int(name, value)
    if value < 0 or value > MAX_UINT128:
        raise ArithmeticOverflow(f"{name} out of uint128 range: {value}")
    return value


def mul_div(a: int, b: int, denominator: int) -> int:
    """``floor(a * b / denominator)`` for non-negative operands."""
    if denominator <= 0:
        raise ZeroDivisionError("mul_div denominator must be positive")
    if a < 0 or b < 0:
        raise ArithmeticOverflow("mul_div operands must be non-negative")
    return require_uint256("mul_div result", (a * b) // denominator)


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """``ceil(a * b / denominator)`` for non-negative operands."""
    if denominator <= 0:
        raise ZeroDivisionError("mul_div_up denominator must be positive")
    if a < 0 or b < 0:
        raise ArithmeticOverflow("mul_div_up operands must be non-negative")
    return require_uint256("mul_div_up result", -((-(a * b)) // denominator))


def div_up(a: int, b: int) -> int:
    return mul_div_up(a, 1, b)


def abs_val(x: int) -> int:
    return x if x >= 0 else -x


def div_trunc(a: int, b: int) -> int:
    """Signed division truncated toward zero (not Python's floor)."""
    if b == 0:
        raise ZeroDivisionError("div_trunc by zero")
    q = abs_val(a) // abs_val(b)
    return q if (a >= 0) == (b > 0) else -q


def clamp(x: int, lo: int, hi: int) -> int:
    if lo > hi:
        raise ValueError(f"empty clamp range [{lo}, {hi}]")
    return lo if x < lo else hi if x > hi else x


def deviation_exceeds_bps(actual: int, expected: int, max_bps: int) -> bool:
    """True when ``|actual - expected| / expected > max_bps / 10_000``.

    Cross-multiplied to avoid division. An `expected` of zero disables the check.
    """
    if expected == 0:
        return False
    return abs_val(actual - expected) * MAX_BPS > max_bps * expected
