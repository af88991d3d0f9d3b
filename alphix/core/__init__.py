"""
Core Alphix algorithms (pure functions over frozen state)
"""

from .errors import (
    AlphixError,
    AlreadyInitialized,
    CooldownNotMet,
    InsolvencyViolation,
    InvalidParams,
    NotConfigured,
    Paused,
    SlippageExceeded,
    Unauthorized,
    ZeroAmount,
)
from .fee_controller import FeeState, FeeUpdate, PoolParams, compute_fee_update
from .jit import JitPhase, JitPlan, JitRange, SkipReason, plan_injection
from .rehypothecation import preview_add, preview_remove, slippage_exceeded
from .vault import VaultCommand, VaultState, VaultStepResult
from .vault import init_vault_state, step as vault_step

__all__ = [
    "AlphixError",
    "AlreadyInitialized",
    "CooldownNotMet",
    "InsolvencyViolation",
    "InvalidParams",
    "NotConfigured",
    "Paused",
    "SlippageExceeded",
    "Unauthorized",
    "ZeroAmount",
    "FeeState",
    "FeeUpdate",
    "PoolParams",
    "compute_fee_update",
    "JitPhase",
    "JitPlan",
    "JitRange",
    "SkipReason",
    "plan_injection",
    "preview_add",
    "preview_remove",
    "slippage_exceeded",
    "VaultCommand",
    "VaultState",
    "VaultStepResult",
    "init_vault_state",
    "vault_step",
]
