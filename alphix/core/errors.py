"""Exception types for the Alphix engine.

Every error aborts the enclosing call; the host ledger rolls back all state
touched by the call (see ``alphix.integration.host``). Pure kernels report the
same conditions as ``rejection`` strings; their ``*_or_raise`` wrappers map them
back to these classes.

``InsolvencyViolation``, ``InvariantViolation`` and ``ArithmeticOverflow`` are
fatal: they mean the accounting is wrong and nothing in the engine catches them.
"""

from __future__ import annotations


class AlphixError(Exception):
    """Base class. ``code`` is a stable discriminator for callers."""

    code = "error"


class CooldownNotMet(AlphixError):
    code = "cooldown"

    def __init__(self, elapsed: int, min_period: int) -> None:
        self.elapsed = elapsed
        self.min_period = min_period
        super().__init__(f"cooldown not met: {elapsed}s elapsed, {min_period}s required")


class Unauthorized(AlphixError):
    code = "unauthorized"

    def __init__(self, caller: str, operation: str) -> None:
        self.caller = caller
        self.operation = operation
        super().__init__(f"{caller!r} may not call {operation}")


class NotConfigured(AlphixError):
    """Missing yield source, uninitialized pool, or JIT range not covering price."""

    code = "not_configured"


class SlippageExceeded(AlphixError):
    code = "slippage"

    def __init__(self, current: int, expected: int, max_slippage_bps: int) -> None:
        self.current = current
        self.expected = expected
        self.max_slippage_bps = max_slippage_bps
        super().__init__(
            f"price moved beyond {max_slippage_bps} bps: expected={expected} current={current}"
        )


class AlreadyInitialized(AlphixError):
    code = "already_initialized"


class Paused(AlphixError):
    code = "paused"


class ZeroAmount(AlphixError):
    code = "zero_amount"


class InsufficientBalance(AlphixError):
    code = "insufficient_balance"


class VaultDepleted(AlphixError):
    """Shares are outstanding but the vault holds no assets to price them against."""

    code = "vault_depleted"


class ReentrantCall(AlphixError):
    code = "reentrancy"


class InvalidParams(AlphixError, ValueError):
    """Configuration error: rejected before any state is written."""

    code = "invalid_params"


class InsolvencyViolation(AlphixError):
    """`total_assets + claimable_fees != external_balance` after a mutation."""

    code = "insolvency"

    def __init__(self, total_assets: int, claimable_fees: int, external_balance: int) -> None:
        self.total_assets = total_assets
        self.claimable_fees = claimable_fees
        self.external_balance = external_balance
        super().__init__(
            f"solvency violated: total_assets={total_assets} + claimable_fees={claimable_fees}"
            f" != external_balance={external_balance}"
        )


class InvariantViolation(AlphixError):
    """A post-state violates one or more kernel invariants."""

    code = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


class ArithmeticOverflow(AlphixError):
    code = "overflow"
