"""Dynamic fee controller: preview/commit over a frozen `FeeState`.

``compute_fee_update(params, state, current_ratio, now)`` is the pure preview.
It never rejects; the cooldown is reported as ``would_update`` so operators can
dry-run a poke.

``step(params, state, poke)`` is the commit path. It:

1. Checks authorization and the cooldown gate.
2. Runs the preview.
3. Checks all invariants on the post-state.
4. Returns a ``FeeStepResult`` (accepted or rejected with reason).

The new fee only reaches the exchange when the shell pushes it, so it applies
from the next swap onwards.
"""

from __future__ import annotations

from ..errors import CooldownNotMet, InvalidParams, InvariantViolation, Unauthorized
from ..fixed_point import MAX_UINT256
from .invariants import check_all, check_transition
from .math import (
    apply_fee_delta,
    bounded_fee_delta,
    clamp_ratio,
    cooldown_elapsed,
    deviation,
    nudge_target,
    raw_fee_delta,
    side_factor,
    within_tolerance,
)
from .types import Event, FeeEffect, FeeState, FeeStepResult, FeeUpdate, PokeParams, PoolParams


def initial_state(params: PoolParams, initial_fee: int, initial_target_ratio: int, now: int) -> FeeState:
    """Build the pool's first `FeeState`; rejects values outside the configured bounds."""
    state = FeeState(
        current_fee=initial_fee,
        target_ratio=initial_target_ratio,
        last_update_timestamp=now,
    )
    violations = check_all(state, params)
    if violations:
        raise InvalidParams(f"initial fee state out of bounds: {', '.join(violations)}")
    return state


def compute_fee_update(params: PoolParams, state: FeeState, current_ratio: int, now: int) -> FeeUpdate:
    if current_ratio < 0 or current_ratio > MAX_UINT256:
        raise InvalidParams(f"current_ratio out of range: {current_ratio}")

    ratio = clamp_ratio(current_ratio, params)
    target = state.target_ratio
    new_target = nudge_target(ratio, target, params)

    dev = deviation(ratio, target)
    if within_tolerance(dev, params):
        new_fee = state.current_fee
    else:
        raw = raw_fee_delta(dev, side_factor(ratio, target, params), params)
        delta = bounded_fee_delta(raw, params)
        new_fee = apply_fee_delta(state.current_fee, delta, ratio > target, params)

    return FeeUpdate(
        new_fee=new_fee,
        new_target_ratio=new_target,
        would_update=cooldown_elapsed(now, state.last_update_timestamp, params),
    )


def step(params: PoolParams, state: FeeState, poke: PokeParams) -> FeeStepResult:
    """Commit one poke. Rejections leave the caller's state untouched."""
    if not poke.auth_ok:
        return FeeStepResult(accepted=False, rejection="unauthorized")
    if poke.current_ratio < 0 or poke.current_ratio > MAX_UINT256:
        return FeeStepResult(accepted=False, rejection="param_domain:current_ratio")

    update = compute_fee_update(params, state, poke.current_ratio, poke.now)
    if not update.would_update:
        return FeeStepResult(accepted=False, rejection="cooldown")

    new_state = FeeState(
        current_fee=update.new_fee,
        target_ratio=update.new_target_ratio,
        last_update_timestamp=poke.now,
    )

    violations = check_transition(state, new_state, params)
    if violations:
        return FeeStepResult(accepted=False, rejection=f"invariant:{','.join(violations)}")

    effect = FeeEffect(
        event=Event.FEE_UPDATED if new_state.current_fee != state.current_fee else Event.TARGET_NUDGED,
        old_fee=state.current_fee,
        new_fee=new_state.current_fee,
        old_target_ratio=state.target_ratio,
        new_target_ratio=new_state.target_ratio,
        clamped_ratio=clamp_ratio(poke.current_ratio, params),
    )
    return FeeStepResult(accepted=True, state=new_state, effect=effect)


def step_or_raise(params: PoolParams, state: FeeState, poke: PokeParams, *, caller: str = "") -> FeeStepResult:
    """Like ``step()`` but raises on rejection instead of returning a result.

    Raises:
        Unauthorized: caller lacks the poke capability.
        CooldownNotMet: fewer than ``min_period`` seconds since the last update.
        InvalidParams: ratio outside the uint256 domain.
        InvariantViolation: post-state violates one or more invariants.
    """
    result = step(params, state, poke)
    if result.accepted:
        return result

    reason = result.rejection or ""
    if reason == "unauthorized":
        raise Unauthorized(caller, "poke")
    if reason == "cooldown":
        raise CooldownNotMet(poke.now - state.last_update_timestamp, params.min_period)
    if reason.startswith("param_domain:"):
        raise InvalidParams(reason)
    if reason.startswith("invariant:"):
        raise InvariantViolation(reason.removeprefix("invariant:").split(","))
    raise InvalidParams(reason)
