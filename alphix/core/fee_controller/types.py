"""Data types for the dynamic fee controller.

All types are frozen dataclasses (immutable).

Units/conventions:
- fees are pips (1_000_000 == 100%), the exchange's LP fee unit.
- `*_ratio`, `ratio_tolerance`, `linear_slope` and `*_side_factor` are WAD-scaled (1e18 == 1.0).
- `linear_slope` is the fee change (in pips, WAD-scaled) per 100% ratio deviation.
- timestamps and periods are seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from ..errors import InvalidParams
from ..fixed_point import MAX_PIPS, MAX_UINT256, WAD


@unique
class Event(Enum):
    FEE_UPDATED = "FeeUpdated"
    TARGET_NUDGED = "TargetNudged"


@dataclass(frozen=True)
class PoolParams:
    """Immutable per-pool configuration of the control loop."""

    min_fee: int
    max_fee: int
    base_max_fee_delta: int
    lookback_period: int
    min_period: int
    ratio_tolerance: int
    linear_slope: int
    max_current_ratio: int
    upper_side_factor: int = WAD
    lower_side_factor: int = WAD

    def __post_init__(self) -> None:
        for name in PoolParams.__dataclass_fields__:
            val = getattr(self, name)
            if not isinstance(val, int) or isinstance(val, bool):
                raise TypeError(f"{name} must be an int")
            if not (0 <= val <= MAX_UINT256):
                raise InvalidParams(f"{name} out of range: {val}")
        if self.max_fee > MAX_PIPS:
            raise InvalidParams(f"max_fee must be <= {MAX_PIPS}: {self.max_fee}")
        if self.min_fee > self.max_fee:
            raise InvalidParams(f"min_fee {self.min_fee} > max_fee {self.max_fee}")
        if self.min_period <= 0:
            raise InvalidParams(f"min_period must be positive: {self.min_period}")
        if self.lookback_period <= 0:
            raise InvalidParams(f"lookback_period must be positive: {self.lookback_period}")
        if self.max_current_ratio <= 0:
            raise InvalidParams(f"max_current_ratio must be positive: {self.max_current_ratio}")
        if self.ratio_tolerance >= WAD:
            raise InvalidParams(f"ratio_tolerance must be < 1e18: {self.ratio_tolerance}")


@dataclass(frozen=True)
class FeeState:
    """Mutable-by-replacement controller state (one per pool)."""

    current_fee: int
    target_ratio: int
    last_update_timestamp: int

    def __post_init__(self) -> None:
        for name in FeeState.__dataclass_fields__:
            val = getattr(self, name)
            if not isinstance(val, int) or isinstance(val, bool):
                raise TypeError(f"{name} must be an int")
            if val < 0:
                raise InvalidParams(f"{name} must be non-negative: {val}")


@dataclass(frozen=True)
class FeeUpdate:
    """Preview of what a poke would commit."""

    new_fee: int
    new_target_ratio: int
    would_update: bool


@dataclass(frozen=True)
class PokeParams:
    current_ratio: int
    now: int
    auth_ok: bool = False


@dataclass(frozen=True)
class FeeEffect:
    event: Event
    old_fee: int
    new_fee: int
    old_target_ratio: int
    new_target_ratio: int
    clamped_ratio: int


@dataclass(frozen=True)
class FeeStepResult:
    accepted: bool
    state: FeeState | None = None
    effect: FeeEffect | None = None
    rejection: str | None = None
