"""
Concentrated-liquidity amount math (Q64.96 sqrt prices, integer only).

This module covers exactly what the hook needs to size liquidity around the
current price and what the in-memory exchange needs to step a swap inside one
liquidity segment. Rounding direction is explicit on every amount: amounts
owed *to* the pool round up, amounts paid *by* the pool round down.

`sqrt_price_at_tick` is evaluated with `decimal` at fixed precision and
floored, which is deterministic and strictly monotone in the tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, localcontext
from functools import lru_cache

from .fixed_point import MAX_PIPS, Q96, div_up, mul_div, mul_div_up, require_int


MIN_TICK = -887272
MAX_TICK = 887272

_TICK_BASE = Decimal("1.0001")
_PRECISION = 80


@dataclass(frozen=True)
class SwapStep:
    sqrt_price_next_x96: int
    amount_in: int
    amount_out: int
    fee_amount: int


def _check_tick(tick: int) -> None:
    require_int("tick", tick)
    if not (MIN_TICK <= tick <= MAX_TICK):
        raise ValueError(f"tick out of range [{MIN_TICK}, {MAX_TICK}]: {tick}")


@lru_cache(maxsize=4096)
def sqrt_price_at_tick(tick: int) -> int:
    """``floor(sqrt(1.0001 ** tick) * 2**96)``."""
    _check_tick(tick)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        value = (_TICK_BASE ** tick).sqrt() * Q96
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


MIN_SQRT_PRICE = sqrt_price_at_tick(MIN_TICK)
MAX_SQRT_PRICE = sqrt_price_at_tick(MAX_TICK)


def tick_at_sqrt_price(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is ``<= sqrt_price_x96``."""
    require_int("sqrt_price_x96", sqrt_price_x96)
    if not (MIN_SQRT_PRICE <= sqrt_price_x96 <= MAX_SQRT_PRICE):
        raise ValueError(f"sqrt_price_x96 out of range: {sqrt_price_x96}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ratio = (Decimal(sqrt_price_x96) / Q96) ** 2
        estimate = int((ratio.ln() / _TICK_BASE.ln()).to_integral_value(rounding=ROUND_FLOOR))
    tick = max(MIN_TICK, min(MAX_TICK, estimate))
    # The log estimate can be off by one at exact tick boundaries.
    while tick > MIN_TICK and sqrt_price_at_tick(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and sqrt_price_at_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick


def _ordered(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    return (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)


# ---------------------------------------------------------------------------
# Liquidity <-> amounts
# ---------------------------------------------------------------------------

def liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_a == sqrt_b:
        return 0
    intermediate = mul_div(sqrt_a, sqrt_b, Q96)
    return mul_div(amount0, intermediate, sqrt_b - sqrt_a)


def liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_a == sqrt_b:
        return 0
    return mul_div(amount1, Q96, sqrt_b - sqrt_a)


def liquidity_for_amounts(sqrt_price: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int) -> int:
    """Largest liquidity fundable by both amounts at the current price (floored)."""
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_price <= sqrt_a:
        return liquidity_for_amount0(sqrt_a, sqrt_b, amount0)
    if sqrt_price < sqrt_b:
        return min(
            liquidity_for_amount0(sqrt_price, sqrt_b, amount0),
            liquidity_for_amount1(sqrt_a, sqrt_price, amount1),
        )
    return liquidity_for_amount1(sqrt_a, sqrt_b, amount1)


def amount0_delta(sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_a <= 0:
        raise ValueError("sqrt price must be positive")
    numerator1 = liquidity << 96
    numerator2 = sqrt_b - sqrt_a
    if round_up:
        return div_up(mul_div_up(numerator1, numerator2, sqrt_b), sqrt_a)
    return mul_div(numerator1, numerator2, sqrt_b) // sqrt_a


def amount1_delta(sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if round_up:
        return mul_div_up(liquidity, sqrt_b - sqrt_a, Q96)
    return mul_div(liquidity, sqrt_b - sqrt_a, Q96)


def amounts_for_liquidity(
    sqrt_price: int, sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool
) -> tuple[int, int]:
    """Token amounts represented by `liquidity` over [sqrt_a, sqrt_b] at `sqrt_price`."""
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_price <= sqrt_a:
        return amount0_delta(sqrt_a, sqrt_b, liquidity, round_up=round_up), 0
    if sqrt_price < sqrt_b:
        return (
            amount0_delta(sqrt_price, sqrt_b, liquidity, round_up=round_up),
            amount1_delta(sqrt_a, sqrt_price, liquidity, round_up=round_up),
        )
    return 0, amount1_delta(sqrt_a, sqrt_b, liquidity, round_up=round_up)


# ---------------------------------------------------------------------------
# Swap step (exact input)
# ---------------------------------------------------------------------------

def next_sqrt_price_from_input(sqrt_price: int, liquidity: int, amount_in: int, zero_for_one: bool) -> int:
    if sqrt_price <= 0 or liquidity <= 0:
        raise ValueError("sqrt_price and liquidity must be positive")
    if amount_in == 0:
        return sqrt_price
    if zero_for_one:
        # Rounds up so the price never moves further than the input pays for.
        numerator1 = liquidity << 96
        return mul_div_up(numerator1, sqrt_price, numerator1 + amount_in * sqrt_price)
    return sqrt_price + mul_div(amount_in, Q96, liquidity)


def compute_swap_step(
    sqrt_price: int,
    sqrt_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> SwapStep:
    """Swap `amount_remaining` (fee inclusive) toward `sqrt_target` within one segment."""
    if not (0 <= fee_pips <= MAX_PIPS):
        raise ValueError(f"fee_pips must be in [0, {MAX_PIPS}]: {fee_pips}")
    zero_for_one = sqrt_price >= sqrt_target
    remaining_less_fee = mul_div(amount_remaining, MAX_PIPS - fee_pips, MAX_PIPS)

    if zero_for_one:
        amount_in = amount0_delta(sqrt_target, sqrt_price, liquidity, round_up=True)
    else:
        amount_in = amount1_delta(sqrt_price, sqrt_target, liquidity, round_up=True)

    if remaining_less_fee >= amount_in:
        sqrt_next = sqrt_target
    else:
        sqrt_next = next_sqrt_price_from_input(sqrt_price, liquidity, remaining_less_fee, zero_for_one)

    reached = sqrt_next == sqrt_target
    if zero_for_one:
        if not reached:
            amount_in = amount0_delta(sqrt_next, sqrt_price, liquidity, round_up=True)
        amount_out = amount1_delta(sqrt_next, sqrt_price, liquidity, round_up=False)
    else:
        if not reached:
            amount_in = amount1_delta(sqrt_price, sqrt_next, liquidity, round_up=True)
        amount_out = amount0_delta(sqrt_price, sqrt_next, liquidity, round_up=False)

    if not reached:
        fee_amount = amount_remaining - amount_in
    elif fee_pips == MAX_PIPS:
        fee_amount = 0
    else:
        fee_amount = mul_div_up(amount_in, fee_pips, MAX_PIPS - fee_pips)

    return SwapStep(
        sqrt_price_next_x96=sqrt_next,
        amount_in=amount_in,
        amount_out=amount_out,
        fee_amount=fee_amount,
    )
