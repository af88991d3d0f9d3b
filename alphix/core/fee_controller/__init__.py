"""`fee_controller`: bounded, cooldown-gated dynamic fee kernel.

- deterministic, integer-only transitions,
- immutable state (frozen dataclasses),
- preview (`compute_fee_update`) decoupled from commit (`step`).

Public API:
- `initial_state(params, initial_fee, initial_target_ratio, now) -> FeeState`
- `compute_fee_update(params, state, current_ratio, now) -> FeeUpdate`
- `step(params, state, poke) -> FeeStepResult`
- `step_or_raise(params, state, poke) -> FeeStepResult` (raises on rejection)
"""

from .engine import compute_fee_update, initial_state, step, step_or_raise
from .types import Event, FeeEffect, FeeState, FeeStepResult, FeeUpdate, PokeParams, PoolParams

__all__ = [
    "compute_fee_update",
    "initial_state",
    "step",
    "step_or_raise",
    "Event",
    "FeeEffect",
    "FeeState",
    "FeeStepResult",
    "FeeUpdate",
    "PokeParams",
    "PoolParams",
]
