"""
Vault Wrapper share-accounting kernel (ERC-4626 shaped, fee-skimming).

This is a pure state machine intended for the functional core:
- Inputs are integers plus the wrapper's observed external balance.
- Outputs are (next_state, effects) or a rejection.

Every command starts with an accrual step against the external balance:
positive yield is split into a fee (`claimable_fees`) and depositor gains
(`total_assets`); negative yield (slashing) reduces `total_assets` with no fee.
The shell moves funds through the yield vault first and then steps the kernel
with the amounts it actually measured, so rounding dust charged by the yield
vault is paid by the caller and never by the other depositors.

Solvency invariant: ``total_assets + claimable_fees == external_balance``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Literal, Mapping

from .fixed_point import MAX_BPS, mul_div, mul_div_up, require_uint256


MAX_FEE_BPS = MAX_BPS


@dataclass(frozen=True)
class VaultState:
    """Vault state."""

    total_assets: int
    last_observed_external_balance: int
    fee_rate_bps: int
    claimable_fees: int
    total_shares: int

    def __post_init__(self) -> None:
        for name in VaultState.__dataclass_fields__:
            require_uint256(name, getattr(self, name))
        if self.fee_rate_bps > MAX_FEE_BPS:
            raise ValueError(f"fee_rate_bps must be in [0, {MAX_FEE_BPS}]: {self.fee_rate_bps}")


@dataclass(frozen=True)
class Accrual:
    """What one accrual step realized."""

    gain: int
    fee: int
    loss: int


@dataclass(frozen=True)
class VaultCommand:
    tag: Literal["accrue", "deposit", "withdraw", "redeem", "collect_fees", "set_fee"]
    args: Mapping[str, Any]


@dataclass(frozen=True)
class VaultStepResult:
    ok: bool
    state: VaultState | None = None
    effects: Mapping[str, Any] | None = None
    error: str | None = None


def init_vault_state(fee_rate_bps: int = 0) -> VaultState:
    return VaultState(
        total_assets=0,
        last_observed_external_balance=0,
        fee_rate_bps=fee_rate_bps,
        claimable_fees=0,
        total_shares=0,
    )


# ---------------------------------------------------------------------------
# Accrual
# ---------------------------------------------------------------------------

def _apply_loss(state: VaultState, loss: int) -> VaultState:
    """Take a loss from depositors first; only what exceeds `total_assets` hits fees."""
    from_assets = min(loss, state.total_assets)
    from_fees = min(loss - from_assets, state.claimable_fees)
    return replace(
        state,
        total_assets=state.total_assets - from_assets,
        claimable_fees=state.claimable_fees - from_fees,
    )


def accrue(state: VaultState, external_balance: int) -> tuple[VaultState, Accrual]:
    """Realize yield or loss since the last observation."""
    require_uint256("external_balance", external_balance)
    delta = external_balance - state.last_observed_external_balance
    if delta > 0:
        fee = mul_div(delta, state.fee_rate_bps, MAX_BPS)
        new_state = replace(
            state,
            total_assets=require_uint256("total_assets", state.total_assets + delta - fee),
            claimable_fees=require_uint256("claimable_fees", state.claimable_fees + fee),
            last_observed_external_balance=external_balance,
        )
        return new_state, Accrual(gain=delta - fee, fee=fee, loss=0)
    if delta < 0:
        new_state = replace(_apply_loss(state, -delta), last_observed_external_balance=external_balance)
        return new_state, Accrual(gain=0, fee=0, loss=-delta)
    return state, Accrual(gain=0, fee=0, loss=0)


def is_solvent(state: VaultState, external_balance: int) -> bool:
    return state.total_assets + state.claimable_fees == external_balance


# ---------------------------------------------------------------------------
# Conversions (against an already-accrued state)
# ---------------------------------------------------------------------------

def convert_to_shares(state: VaultState, assets: int, *, round_up: bool = False) -> int:
    if state.total_shares == 0:
        return assets
    if state.total_assets == 0:
        return 0
    if round_up:
        return mul_div_up(assets, state.total_shares, state.total_assets)
    return mul_div(assets, state.total_shares, state.total_assets)


def convert_to_assets(state: VaultState, shares: int, *, round_up: bool = False) -> int:
    if state.total_shares == 0:
        return shares
    if round_up:
        return mul_div_up(shares, state.total_assets, state.total_shares)
    return mul_div(shares, state.total_assets, state.total_shares)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _non_negative_int(args: Mapping[str, Any], name: str) -> int | None:
    value = args.get(name)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        return None
    return value


def step(state: VaultState, cmd: VaultCommand, external_balance: int) -> VaultStepResult:
    """Accrue against `external_balance`, then execute a vault command.

    On success `state.last_observed_external_balance` is the balance the shell
    should expect once it has moved the assets reported in `effects`.
    """
    try:
        accrued, accrual = accrue(state, external_balance)
        effects: dict[str, Any] = {"gain": accrual.gain, "fee": accrual.fee, "loss": accrual.loss}
        if cmd.tag == "accrue":
            return VaultStepResult(ok=True, state=accrued, effects=effects)
        if cmd.tag == "deposit":
            return _deposit(accrued, cmd.args, effects)
        if cmd.tag == "withdraw":
            return _withdraw(accrued, cmd.args, effects)
        if cmd.tag == "redeem":
            return _redeem(accrued, cmd.args, effects)
        if cmd.tag == "collect_fees":
            return _collect_fees(accrued, cmd.args, effects)
        if cmd.tag == "set_fee":
            return _set_fee(accrued, cmd.args, effects)
        return VaultStepResult(ok=False, error=f"unknown action: {cmd.tag}")
    except (ValueError, ArithmeticError) as exc:
        return VaultStepResult(ok=False, error=f"invalid_params:{exc}")


def _deposit(state: VaultState, args: Mapping[str, Any], effects: dict[str, Any]) -> VaultStepResult:
    assets = _non_negative_int(args, "assets")
    if assets is None:
        return VaultStepResult(ok=False, error="invalid_params:assets")
    if assets == 0:
        return VaultStepResult(ok=False, error="zero_amount:assets")
    if state.total_shares != 0 and state.total_assets == 0:
        return VaultStepResult(ok=False, error="vault_depleted")

    shares = convert_to_shares(state, assets)
    if shares == 0:
        return VaultStepResult(ok=False, error="zero_amount:shares")

    new_state = replace(
        state,
        total_assets=require_uint256("total_assets", state.total_assets + assets),
        total_shares=require_uint256("total_shares", state.total_shares + shares),
        last_observed_external_balance=state.last_observed_external_balance + assets,
    )
    return VaultStepResult(ok=True, state=new_state, effects={**effects, "assets": assets, "shares": shares})


def _withdraw(state: VaultState, args: Mapping[str, Any], effects: dict[str, Any]) -> VaultStepResult:
    assets = _non_negative_int(args, "assets")
    owner_shares = _non_negative_int(args, "owner_shares")
    if assets is None or owner_shares is None:
        return VaultStepResult(ok=False, error="invalid_params:assets")
    if assets == 0:
        return VaultStepResult(ok=False, error="zero_amount:assets")
    if assets > state.total_assets:
        return VaultStepResult(ok=False, error="insufficient_balance:total_assets")

    # Burn rounds up: the vault never pays out more than the shares are worth.
    shares = convert_to_shares(state, assets, round_up=True)
    if shares > owner_shares:
        return VaultStepResult(ok=False, error="insufficient_balance:shares")

    new_state = replace(
        state,
        total_assets=state.total_assets - assets,
        total_shares=state.total_shares - shares,
        last_observed_external_balance=state.last_observed_external_balance - assets,
    )
    return VaultStepResult(ok=True, state=new_state, effects={**effects, "assets": assets, "shares": shares})


def _redeem(state: VaultState, args: Mapping[str, Any], effects: dict[str, Any]) -> VaultStepResult:
    shares = _non_negative_int(args, "shares")
    owner_shares = _non_negative_int(args, "owner_shares")
    if shares is None or owner_shares is None:
        return VaultStepResult(ok=False, error="invalid_params:shares")
    if shares == 0:
        return VaultStepResult(ok=False, error="zero_amount:shares")
    if shares > owner_shares or shares > state.total_shares:
        return VaultStepResult(ok=False, error="insufficient_balance:shares")

    assets = convert_to_assets(state, shares)
    if assets == 0:
        return VaultStepResult(ok=False, error="zero_amount:assets")

    # The shell may report a smaller measured outflow; never a larger one.
    if "assets_out" in args:
        assets_out = _non_negative_int(args, "assets_out")
        if assets_out is None or assets_out > assets:
            return VaultStepResult(ok=False, error="insufficient_balance:assets_out")
        assets = assets_out

    new_state = replace(
        state,
        total_assets=state.total_assets - assets,
        total_shares=state.total_shares - shares,
        last_observed_external_balance=state.last_observed_external_balance - assets,
    )
    return VaultStepResult(ok=True, state=new_state, effects={**effects, "assets": assets, "shares": shares})


def _collect_fees(state: VaultState, args: Mapping[str, Any], effects: dict[str, Any]) -> VaultStepResult:
    """Pay out claimable fees; a measured `assets_out` below the total leaves the rest claimable."""
    amount = state.claimable_fees
    if amount == 0:
        return VaultStepResult(ok=False, error="zero_amount:claimable_fees")
    if "assets_out" in args:
        assets_out = _non_negative_int(args, "assets_out")
        if assets_out is None or assets_out > amount:
            return VaultStepResult(ok=False, error="insufficient_balance:assets_out")
        amount = assets_out
    new_state = replace(
        state,
        claimable_fees=state.claimable_fees - amount,
        last_observed_external_balance=state.last_observed_external_balance - amount,
    )
    return VaultStepResult(ok=True, state=new_state, effects={**effects, "assets": amount})


def _set_fee(state: VaultState, args: Mapping[str, Any], effects: dict[str, Any]) -> VaultStepResult:
    rate = _non_negative_int(args, "fee_rate_bps")
    if rate is None or rate > MAX_FEE_BPS:
        return VaultStepResult(ok=False, error="invalid_params:fee_rate_bps")
    new_state = replace(state, fee_rate_bps=rate)
    return VaultStepResult(
        ok=True,
        state=new_state,
        effects={**effects, "old_fee_rate_bps": state.fee_rate_bps, "fee_rate_bps": rate},
    )
