"""Invariant checkers for the dynamic fee controller.

Each function returns True when the invariant holds; `check_all()` returns the
list of violated invariant IDs (empty = all pass).
"""

from __future__ import annotations

from typing import Callable

from .types import FeeState, PoolParams


def inv_fee_bounded(s: FeeState, p: PoolParams) -> bool:
    return p.min_fee <= s.current_fee <= p.max_fee


def inv_target_positive(s: FeeState, p: PoolParams) -> bool:
    return s.target_ratio > 0


def inv_target_bounded(s: FeeState, p: PoolParams) -> bool:
    return s.target_ratio <= p.max_current_ratio


INVARIANT_REGISTRY: dict[str, Callable[[FeeState, PoolParams], bool]] = {
    "inv_fee_bounded": inv_fee_bounded,
    "inv_target_positive": inv_target_positive,
    "inv_target_bounded": inv_target_bounded,
}


def check_all(state: FeeState, params: PoolParams) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state, params)
    ]


def check_transition(pre: FeeState, post: FeeState, params: PoolParams) -> list[str]:
    """Post-state invariants plus the monotone-clock transition rule."""
    violations = check_all(post, params)
    if post.last_update_timestamp < pre.last_update_timestamp:
        violations.append("inv_timestamp_monotone")
    return violations
