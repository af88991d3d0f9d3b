"""Pure arithmetic for the dynamic fee controller.

Every function is stateless and operates on plain Python ints. Magnitudes are
computed first and the sign re-applied afterwards, so signed quantities
truncate toward zero (never toward -inf).
"""

from __future__ import annotations

from ..fixed_point import WAD, abs_val, clamp, div_trunc, mul_div
from .types import PoolParams


def clamp_ratio(current_ratio: int, params: PoolParams) -> int:
    """Bound the observed ratio to ``[0, max_current_ratio]``."""
    return clamp(current_ratio, 0, params.max_current_ratio)


def deviation(current_ratio: int, target_ratio: int) -> int:
    """Signed relative deviation ``(current - target) / target``, WAD-scaled."""
    if target_ratio <= 0:
        raise ZeroDivisionError("target_ratio must be positive")
    magnitude = mul_div(abs_val(current_ratio - target_ratio), WAD, target_ratio)
    return magnitude if current_ratio >= target_ratio else -magnitude


def within_tolerance(dev: int, params: PoolParams) -> bool:
    return abs_val(dev) <= params.ratio_tolerance


def nudge_target(current_ratio: int, target_ratio: int, params: PoolParams) -> int:
    """Move the target ``1 / lookback_period`` of the way toward the observed ratio.

    The result stays in ``[1, max_current_ratio]`` so later deviations remain defined.
    """
    step = div_trunc(current_ratio - target_ratio, params.lookback_period)
    return clamp(target_ratio + step, 1, params.max_current_ratio)


def side_factor(current_ratio: int, target_ratio: int, params: PoolParams) -> int:
    return params.upper_side_factor if current_ratio > target_ratio else params.lower_side_factor


def raw_fee_delta(dev: int, factor: int, params: PoolParams) -> int:
    """Unclamped fee delta magnitude in pips: ``linear_slope * |dev| * factor``.

    All three inputs are WAD-scaled; the product is floored to whole pips.
    """
    scaled = mul_div(params.linear_slope, abs_val(dev), WAD)
    return mul_div(scaled, factor, WAD * WAD)


def bounded_fee_delta(raw_delta: int, params: PoolParams) -> int:
    """Per-invocation cap: a single poke moves the fee by at most ``base_max_fee_delta``."""
    return min(raw_delta, params.base_max_fee_delta)


def apply_fee_delta(current_fee: int, delta: int, increase: bool, params: PoolParams) -> int:
    new_fee = current_fee + delta if increase else current_fee - delta
    return clamp(new_fee, params.min_fee, params.max_fee)


def cooldown_elapsed(now: int, last_update_timestamp: int, params: PoolParams) -> bool:
    return now - last_update_timestamp >= params.min_period
