"""
ReHypothecation ledger math: pool shares <-> vault positions.

Pool shares are a pro-rata claim on everything the hook holds in its two
vault wrappers. The first mint is priced by the pool's composition over the
JIT range at the current price (one share == one unit of liquidity); every
later mint or burn is priced against the hook's current vault positions, so
yield and slashing flow to share holders automatically.

Adds round up (the caller pays the dust), removes round down (the ledger keeps
it).
"""

from __future__ import annotations

from .errors import InsufficientBalance, InvalidParams
from .fixed_point import deviation_exceeds_bps, mul_div, mul_div_up
from .jit import JitRange
from .liquidity_amounts import amounts_for_liquidity


def preview_add(
    shares: int,
    total_shares: int,
    assets0: int,
    assets1: int,
    sqrt_price: int,
    rng: JitRange,
) -> tuple[int, int]:
    """Token amounts required to mint `shares`."""
    if shares < 0:
        raise InvalidParams(f"shares must be non-negative: {shares}")
    if total_shares == 0:
        return amounts_for_liquidity(sqrt_price, rng.sqrt_lower, rng.sqrt_upper, shares, round_up=True)
    return (
        mul_div_up(shares, assets0, total_shares),
        mul_div_up(shares, assets1, total_shares),
    )


def preview_remove(shares: int, total_shares: int, assets0: int, assets1: int) -> tuple[int, int]:
    """Token amounts released by burning `shares`."""
    if shares < 0:
        raise InvalidParams(f"shares must be non-negative: {shares}")
    if total_shares == 0:
        return 0, 0
    if shares > total_shares:
        raise InsufficientBalance(f"shares {shares} exceed total supply {total_shares}")
    return (
        mul_div(shares, assets0, total_shares),
        mul_div(shares, assets1, total_shares),
    )


def slippage_exceeded(current_sqrt_price: int, expected_sqrt_price: int, max_slippage_bps: int) -> bool:
    """True when the price moved further than the caller tolerates.

    Both arguments are sqrtPriceX96 values, but the tolerance applies to the
    price itself: they are squared before comparing. An expected price of 0
    disables the check.
    """
    if max_slippage_bps < 0:
        raise InvalidParams(f"max_slippage_bps must be non-negative: {max_slippage_bps}")
    return deviation_exceeds_bps(
        current_sqrt_price * current_sqrt_price, expected_sqrt_price * expected_sqrt_price, max_slippage_bps
    )
