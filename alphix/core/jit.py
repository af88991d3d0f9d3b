"""JIT liquidity planner.

Pure decisions for the per-swap state machine run by the hook shell:

  IDLE --(before swap, preconditions hold)--> INJECTING --(after swap)--> IDLE

Nothing here is persisted between swaps. The shell withdraws what the plan
says from the vault wrappers, adds the temporary position, lets the swap run,
then removes the position and re-deposits everything it received.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from .errors import InvalidParams
from .liquidity_amounts import (
    MAX_TICK,
    MIN_TICK,
    amounts_for_liquidity,
    liquidity_for_amounts,
    sqrt_price_at_tick,
)


@unique
class JitPhase(Enum):
    IDLE = "idle"
    INJECTING = "injecting"


@unique
class SkipReason(Enum):
    PAUSED = "paused"
    NOT_INITIALIZED = "not_initialized"
    YIELD_SOURCE_MISSING = "yield_source_missing"
    PRICE_OUT_OF_RANGE = "price_out_of_range"
    NO_LIQUIDITY = "no_liquidity"


@dataclass(frozen=True)
class JitRange:
    """Fixed JIT zone, set once at pool initialization."""

    tick_lower: int
    tick_upper: int

    def __post_init__(self) -> None:
        for name, val in (("tick_lower", self.tick_lower), ("tick_upper", self.tick_upper)):
            if not isinstance(val, int) or isinstance(val, bool):
                raise TypeError(f"{name} must be an int")
            if not (MIN_TICK <= val <= MAX_TICK):
                raise InvalidParams(f"{name} out of range: {val}")
        if self.tick_lower >= self.tick_upper:
            raise InvalidParams(f"tick_lower {self.tick_lower} must be < tick_upper {self.tick_upper}")

    def contains(self, tick: int) -> bool:
        return self.tick_lower <= tick < self.tick_upper

    @property
    def sqrt_lower(self) -> int:
        return sqrt_price_at_tick(self.tick_lower)

    @property
    def sqrt_upper(self) -> int:
        return sqrt_price_at_tick(self.tick_upper)


@dataclass(frozen=True)
class JitPlan:
    liquidity: int
    amount0: int
    amount1: int


def validate_jit_range(rng: JitRange, current_tick: int, tick_spacing: int, max_asymmetry_ticks: int) -> None:
    """Reject JIT ranges that are misaligned, miss the price, or are lopsided."""
    if tick_spacing <= 0:
        raise InvalidParams(f"tick_spacing must be positive: {tick_spacing}")
    if rng.tick_lower % tick_spacing or rng.tick_upper % tick_spacing:
        raise InvalidParams(f"JIT ticks must be multiples of tick spacing {tick_spacing}")
    if not rng.contains(current_tick):
        raise InvalidParams(
            f"JIT range [{rng.tick_lower}, {rng.tick_upper}) does not straddle tick {current_tick}"
        )
    asymmetry = abs((rng.tick_upper - current_tick) - (current_tick - rng.tick_lower))
    if asymmetry > max_asymmetry_ticks:
        raise InvalidParams(f"JIT range asymmetry {asymmetry} exceeds {max_asymmetry_ticks} ticks")


def entry_skip_reason(
    *,
    paused: bool,
    initialized: bool,
    source0_configured: bool,
    source1_configured: bool,
    rng: JitRange | None,
    current_tick: int,
) -> SkipReason | None:
    """None when IDLE -> INJECTING may proceed, otherwise why injection is skipped."""
    if paused:
        return SkipReason.PAUSED
    if not initialized or rng is None:
        return SkipReason.NOT_INITIALIZED
    if not (source0_configured and source1_configured):
        return SkipReason.YIELD_SOURCE_MISSING
    if not rng.contains(current_tick):
        return SkipReason.PRICE_OUT_OF_RANGE
    return None


def plan_injection(sqrt_price: int, rng: JitRange, available0: int, available1: int) -> JitPlan | None:
    """Size the temporary position from what the vaults can release.

    One unit per side is held back so that the exchange's rounded-up pull for
    the floored liquidity never exceeds what was withdrawn.
    """
    budget0 = max(available0 - 1, 0)
    budget1 = max(available1 - 1, 0)
    liquidity = liquidity_for_amounts(sqrt_price, rng.sqrt_lower, rng.sqrt_upper, budget0, budget1)
    if liquidity == 0:
        return None
    amount0, amount1 = amounts_for_liquidity(
        sqrt_price, rng.sqrt_lower, rng.sqrt_upper, liquidity, round_up=True
    )
    if amount0 > available0 or amount1 > available1:
        return None
    return JitPlan(liquidity=liquidity, amount0=amount0, amount1=amount1)
