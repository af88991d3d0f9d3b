"""
In-memory concentrated-liquidity exchange (external collaborator).

Just enough of an exchange to drive the hook end to end: positions keyed by
(owner, tick_lower, tick_upper), exact-input swaps that step across position
boundaries, a dynamic LP fee that only the registered fee controller may set,
and per-position fee accounting. Token custody goes through the shared
`TokenLedger` under the exchange's own address.

Swap fees are credited to the positions active in each step, pro-rata to
liquidity (floored; the remainder stays with the exchange).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from ..core.errors import InvalidParams, Unauthorized, ZeroAmount
from ..core.fixed_point import MAX_PIPS, mul_div, require_uint128
from ..core.liquidity_amounts import (
    MAX_SQRT_PRICE,
    MIN_SQRT_PRICE,
    amounts_for_liquidity,
    compute_swap_step,
    sqrt_price_at_tick,
    tick_at_sqrt_price,
)
from ..state.balances import Address, Amount, Currency, TokenLedger
from .host import HostLedger


logger = logging.getLogger(__name__)

PositionKey = Tuple[Address, int, int]


@dataclass(frozen=True)
class Position:
    liquidity: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0


@dataclass(frozen=True)
class SwapResult:
    zero_for_one: bool
    amount_in: int
    amount_out: int
    fee_amount: int
    fee_pips: int
    sqrt_price_x96: int
    tick: int


@dataclass(frozen=True)
class ModifyLiquidityResult:
    amount0: int
    amount1: int
    fees0: int = 0
    fees1: int = 0


class ConcentratedLiquidityPool:
    _STATE_FIELDS = ("_sqrt_price_x96", "_lp_fee", "_positions", "_fee_controller")

    def __init__(
        self,
        host: HostLedger,
        tokens: TokenLedger,
        currency0: Currency,
        currency1: Currency,
        *,
        sqrt_price_x96: int,
        tick_spacing: int,
        address: Address = "exchange",
        lp_fee: int = 0,
    ) -> None:
        if currency0 >= currency1:
            raise InvalidParams(f"currencies must be sorted: {currency0} < {currency1}")
        if tick_spacing <= 0:
            raise InvalidParams(f"tick_spacing must be positive: {tick_spacing}")
        if not (MIN_SQRT_PRICE < sqrt_price_x96 < MAX_SQRT_PRICE):
            raise InvalidParams(f"sqrt_price_x96 out of range: {sqrt_price_x96}")
        if not (0 <= lp_fee <= MAX_PIPS):
            raise InvalidParams(f"lp_fee must be in [0, {MAX_PIPS}]: {lp_fee}")
        self._host = host
        self._tokens = tokens
        self._currency0 = currency0
        self._currency1 = currency1
        self._address = address
        self._tick_spacing = tick_spacing
        self._sqrt_price_x96 = sqrt_price_x96
        self._lp_fee = lp_fee
        self._positions: Dict[PositionKey, Position] = {}
        self._fee_controller: Optional[Address] = None
        host.register(self)

    # -- views ---------------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._address

    @property
    def currencies(self) -> Tuple[Currency, Currency]:
        return self._currency0, self._currency1

    @property
    def tick_spacing(self) -> int:
        return self._tick_spacing

    @property
    def sqrt_price_x96(self) -> int:
        return self._sqrt_price_x96

    @property
    def tick(self) -> int:
        return tick_at_sqrt_price(self._sqrt_price_x96)

    @property
    def lp_fee(self) -> int:
        return self._lp_fee

    @property
    def fee_controller(self) -> Optional[Address]:
        return self._fee_controller

    def position(self, owner: Address, tick_lower: int, tick_upper: int) -> Position:
        return self._positions.get((owner, tick_lower, tick_upper), Position())

    def positions(self) -> Dict[PositionKey, Position]:
        return dict(self._positions)

    def active_liquidity(self) -> int:
        sp = self._sqrt_price_x96
        return sum(
            pos.liquidity
            for (_, lower, upper), pos in self._positions.items()
            if sqrt_price_at_tick(lower) <= sp < sqrt_price_at_tick(upper)
        )

    # -- admin ---------------------------------------------------------------

    def set_fee_controller(self, controller: Address) -> None:
        """One-time hook registration (the pool is created with its hook)."""
        if self._fee_controller is not None and self._fee_controller != controller:
            raise InvalidParams(f"fee controller already set to {self._fee_controller}")
        self._fee_controller = controller

    def update_dynamic_lp_fee(self, caller: Address, fee: int) -> None:
        if caller != self._fee_controller:
            raise Unauthorized(caller, "update_dynamic_lp_fee")
        if not (0 <= fee <= MAX_PIPS):
            raise InvalidParams(f"lp fee must be in [0, {MAX_PIPS}]: {fee}")
        self._lp_fee = fee
        logger.debug("%s lp fee -> %d pips", self._address, fee)

    # -- liquidity -----------------------------------------------------------

    def _check_ticks(self, tick_lower: int, tick_upper: int) -> None:
        if tick_lower >= tick_upper:
            raise InvalidParams(f"tick_lower {tick_lower} must be < tick_upper {tick_upper}")
        if tick_lower % self._tick_spacing or tick_upper % self._tick_spacing:
            raise InvalidParams(f"ticks must be multiples of {self._tick_spacing}")
        sqrt_price_at_tick(tick_lower)
        sqrt_price_at_tick(tick_upper)

    def modify_liquidity(
        self, owner: Address, tick_lower: int, tick_upper: int, liquidity_delta: int
    ) -> ModifyLiquidityResult:
        """Add (delta > 0, pulls rounded-up amounts) or remove (delta < 0, pays
        rounded-down amounts plus all fees owed to the position)."""
        with self._host.atomic("Exchange.modify_liquidity"):
            self._check_ticks(tick_lower, tick_upper)
            if liquidity_delta == 0:
                raise ZeroAmount("liquidity_delta must be non-zero")
            key = (owner, tick_lower, tick_upper)
            pos = self._positions.get(key, Position())
            sqrt_lower, sqrt_upper = sqrt_price_at_tick(tick_lower), sqrt_price_at_tick(tick_upper)

            if liquidity_delta > 0:
                new_liquidity = require_uint128("liquidity", pos.liquidity + liquidity_delta)
                amount0, amount1 = amounts_for_liquidity(
                    self._sqrt_price_x96, sqrt_lower, sqrt_upper, liquidity_delta, round_up=True
                )
                self._tokens.transfer(owner, self._address, self._currency0, amount0)
                self._tokens.transfer(owner, self._address, self._currency1, amount1)
                self._positions[key] = replace(pos, liquidity=new_liquidity)
                return ModifyLiquidityResult(amount0=amount0, amount1=amount1)

            removed = -liquidity_delta
            if removed > pos.liquidity:
                raise InvalidParams(f"cannot remove {removed} from position with {pos.liquidity}")
            amount0, amount1 = amounts_for_liquidity(
                self._sqrt_price_x96, sqrt_lower, sqrt_upper, removed, round_up=False
            )
            fees0, fees1 = pos.tokens_owed0, pos.tokens_owed1
            self._tokens.transfer(self._address, owner, self._currency0, amount0 + fees0)
            self._tokens.transfer(self._address, owner, self._currency1, amount1 + fees1)
            remaining = pos.liquidity - removed
            if remaining == 0:
                self._positions.pop(key, None)
            else:
                self._positions[key] = Position(liquidity=remaining)
            return ModifyLiquidityResult(amount0=amount0, amount1=amount1, fees0=fees0, fees1=fees1)

    # -- swap ----------------------------------------------------------------

    def _segment(self, sqrt_price: int, zero_for_one: bool, limit: int) -> Tuple[int, Dict[PositionKey, int]]:
        """Next price boundary in the swap direction and the positions active until it."""
        target = limit
        active: Dict[PositionKey, int] = {}
        for key, pos in self._positions.items():
            _, lower, upper = key
            sqrt_lower, sqrt_upper = sqrt_price_at_tick(lower), sqrt_price_at_tick(upper)
            if zero_for_one:
                if sqrt_lower < sqrt_price <= sqrt_upper and pos.liquidity:
                    active[key] = pos.liquidity
                for boundary in (sqrt_lower, sqrt_upper):
                    if target < boundary < sqrt_price:
                        target = boundary
            else:
                if sqrt_lower <= sqrt_price < sqrt_upper and pos.liquidity:
                    active[key] = pos.liquidity
                for boundary in (sqrt_lower, sqrt_upper):
                    if sqrt_price < boundary < target:
                        target = boundary
        return target, active

    def swap(
        self,
        sender: Address,
        zero_for_one: bool,
        amount_in: Amount,
        sqrt_price_limit_x96: Optional[int] = None,
    ) -> SwapResult:
        """Exact-input swap at the current LP fee."""
        with self._host.atomic("Exchange.swap"):
            if amount_in <= 0:
                raise ZeroAmount("amount_in must be positive")
            sqrt_price = self._sqrt_price_x96
            if sqrt_price_limit_x96 is None:
                sqrt_price_limit_x96 = MIN_SQRT_PRICE + 1 if zero_for_one else MAX_SQRT_PRICE - 1
            if zero_for_one and not (MIN_SQRT_PRICE < sqrt_price_limit_x96 < sqrt_price):
                raise InvalidParams(f"bad price limit {sqrt_price_limit_x96} for zero_for_one")
            if not zero_for_one and not (sqrt_price < sqrt_price_limit_x96 < MAX_SQRT_PRICE):
                raise InvalidParams(f"bad price limit {sqrt_price_limit_x96} for one_for_zero")

            fee = self._lp_fee
            remaining = amount_in
            total_out = 0
            total_fee = 0
            while remaining > 0 and sqrt_price != sqrt_price_limit_x96:
                target, active = self._segment(sqrt_price, zero_for_one, sqrt_price_limit_x96)
                liquidity = sum(active.values())
                if liquidity == 0:
                    sqrt_price = target
                    continue
                step = compute_swap_step(sqrt_price, target, liquidity, remaining, fee)
                remaining -= step.amount_in + step.fee_amount
                total_out += step.amount_out
                total_fee += step.fee_amount
                self._credit_fees(active, liquidity, step.fee_amount, zero_for_one)
                sqrt_price = step.sqrt_price_next_x96

            consumed = amount_in - remaining
            currency_in, currency_out = (
                (self._currency0, self._currency1) if zero_for_one else (self._currency1, self._currency0)
            )
            self._tokens.transfer(sender, self._address, currency_in, consumed)
            self._tokens.transfer(self._address, sender, currency_out, total_out)
            self._sqrt_price_x96 = sqrt_price

            result = SwapResult(
                zero_for_one=zero_for_one,
                amount_in=consumed,
                amount_out=total_out,
                fee_amount=total_fee,
                fee_pips=fee,
                sqrt_price_x96=sqrt_price,
                tick=tick_at_sqrt_price(sqrt_price),
            )
            logger.debug(
                "%s swap %s in=%d out=%d fee=%d", self._address, "0->1" if zero_for_one else "1->0",
                consumed, total_out, total_fee,
            )
            return result

    def _credit_fees(self, active: Dict[PositionKey, int], liquidity: int, fee_amount: int, in_token0: bool) -> None:
        if fee_amount == 0:
            return
        for key, pos_liquidity in active.items():
            share = mul_div(fee_amount, pos_liquidity, liquidity)
            pos = self._positions[key]
            if in_token0:
                self._positions[key] = replace(pos, tokens_owed0=pos.tokens_owed0 + share)
            else:
                self._positions[key] = replace(pos, tokens_owed1=pos.tokens_owed1 + share)
