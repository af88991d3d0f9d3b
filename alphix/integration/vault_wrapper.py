"""
Vault Wrapper: share-accounted adapter around one external yield vault.

This is the imperative shell around `alphix.core.vault`:
- reads the wrapper's external balance (its yield-vault shares valued in assets),
- runs the pure kernel step (accrual + command),
- moves tokens / yield-vault shares and measures what the position actually
  gained or lost,
- steps the kernel again with the measured amounts and asserts that the
  committed state matches the position exactly (solvency).

Only the owner and explicitly authorized callers (pool hooks) may move funds,
and deposits always credit the caller itself.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Set

from ..core import vault as kernel
from ..core.fixed_point import mul_div
from ..core.errors import (
    InsolvencyViolation,
    InsufficientBalance,
    InvalidParams,
    Unauthorized,
    VaultDepleted,
    ZeroAmount,
)
from ..core.vault import VaultCommand, VaultState
from ..state.balances import Address, Amount, Currency, TokenLedger
from ..state.shares import ShareTable
from .access import PauseSwitch, ReentrancyGuard
from .host import HostLedger
from .yield_source import YieldVault


logger = logging.getLogger(__name__)


def _raise_for(error: str) -> None:
    code, _, detail = error.partition(":")
    if code == "zero_amount":
        raise ZeroAmount(detail or error)
    if code == "insufficient_balance":
        raise InsufficientBalance(detail or error)
    if code == "vault_depleted":
        raise VaultDepleted("shares outstanding with zero assets")
    raise InvalidParams(error)


class VaultWrapper:
    """ERC-4626 shaped wrapper with yield-fee skimming."""

    _STATE_FIELDS = ("_state", "_authorized_callers", "_treasury")

    def __init__(
        self,
        host: HostLedger,
        tokens: TokenLedger,
        yield_vault: YieldVault,
        *,
        address: Address,
        owner: Address,
        treasury: Address,
        fee_rate_bps: int = 0,
        pause_switch: Optional[PauseSwitch] = None,
    ) -> None:
        if not treasury:
            raise InvalidParams("treasury must be set")
        self._host = host
        self._tokens = tokens
        self._yield_vault = yield_vault
        self._address = address
        self._owner = owner
        self._treasury = treasury
        self._pause = pause_switch
        self._state: VaultState = kernel.init_vault_state(fee_rate_bps)
        self._authorized_callers: Set[Address] = set()
        self._shares = host.register(ShareTable())
        self._guard = ReentrancyGuard(f"VaultWrapper({address})")
        host.register(self)

    # -- properties / views --------------------------------------------------

    @property
    def address(self) -> Address:
        return self._address

    @property
    def asset(self) -> Currency:
        return self._yield_vault.asset

    @property
    def owner(self) -> Address:
        return self._owner

    @property
    def treasury(self) -> Address:
        return self._treasury

    @property
    def yield_vault(self) -> YieldVault:
        return self._yield_vault

    @property
    def state(self) -> VaultState:
        """Last committed state (not accrued to the current external balance)."""
        return self._state

    @property
    def fee_rate_bps(self) -> int:
        return self._state.fee_rate_bps

    @property
    def total_shares(self) -> Amount:
        return self._shares.total_supply

    def is_authorized(self, account: Address) -> bool:
        return account == self._owner or account in self._authorized_callers

    def external_balance(self) -> Amount:
        """Assets the wrapper actually holds in the yield vault."""
        return self._yield_vault.convert_to_assets(self._yield_vault.balance_of(self._address))

    def _accrued(self) -> VaultState:
        state, _ = kernel.accrue(self._state, self.external_balance())
        return state

    def total_assets(self) -> Amount:
        return self._accrued().total_assets

    def get_claimable_fees(self) -> Amount:
        """Realized fees plus the fee a mutating call would realize right now."""
        return self._accrued().claimable_fees

    def balance_of(self, holder: Address) -> Amount:
        return self._shares.balance_of(holder)

    def convert_to_shares(self, assets: Amount) -> Amount:
        return kernel.convert_to_shares(self._accrued(), assets)

    def convert_to_assets(self, shares: Amount) -> Amount:
        return kernel.convert_to_assets(self._accrued(), shares)

    def preview_deposit(self, assets: Amount) -> Amount:
        return kernel.convert_to_shares(self._accrued(), self._deposit_proceeds(assets))

    def preview_withdraw(self, assets: Amount) -> Amount:
        cost = self._withdraw_cost(assets)
        return kernel.convert_to_shares(self._accrued(), assets if cost is None else cost, round_up=True)

    def preview_redeem(self, shares: Amount) -> Amount:
        return self._max_payout(kernel.convert_to_assets(self._accrued(), shares))

    def max_withdraw(self, owner: Address) -> Amount:
        return self.preview_redeem(self._shares.balance_of(owner))

    def is_solvent(self) -> bool:
        """Solvency of the state a mutating call would start from."""
        return kernel.is_solvent(self._accrued(), self.external_balance())

    # -- yield-vault position math -------------------------------------------
    #
    # The yield vault rounds in its own favour on every deposit and withdraw.
    # These helpers predict what an interaction does to the wrapper's position
    # so that the caller, not the other depositors, pays that rounding.

    @staticmethod
    def _value(yield_shares: Amount, total: Amount, supply: Amount) -> Amount:
        return mul_div(yield_shares, total, supply) if supply else 0

    def _position(self) -> tuple[Amount, Amount, Amount]:
        vault = self._yield_vault
        return vault.balance_of(self._address), vault.total_assets(), vault.total_supply()

    def _deposit_proceeds(self, assets: Amount) -> Amount:
        """Growth of the wrapper's position when it deposits `assets`."""
        minted = self._yield_vault.convert_to_shares(assets)
        if minted == 0:
            return 0
        held, total, supply = self._position()
        return self._value(held + minted, total + assets, supply + minted) - self._value(held, total, supply)

    def _withdraw_cost(self, assets: Amount) -> Optional[Amount]:
        """Shrinkage of the wrapper's position when `assets` leave the yield vault; None if impossible."""
        if assets == 0:
            return 0
        held, total, supply = self._position()
        burned = self._yield_vault.preview_withdraw(assets)
        if burned > held or assets > total:
            return None
        return self._value(held, total, supply) - self._value(held - burned, total - assets, supply - burned)

    def _max_payout(self, limit: Amount) -> Amount:
        """Largest payout whose cost to the position does not exceed `limit`."""

        def affordable(payout: Amount) -> bool:
            cost = self._withdraw_cost(payout)
            return cost is not None and cost <= limit

        if affordable(limit):
            return limit
        # Bisect: `low` is always affordable, `high` never is.
        low, high = 0, limit
        while high - low > 1:
            mid = (low + high) // 2
            if affordable(mid):
                low = mid
            else:
                high = mid
        return low

    # -- internals -----------------------------------------------------------

    def _require_not_paused(self) -> None:
        if self._pause is not None:
            self._pause.require_not_paused()

    def _require_owner(self, caller: Address, operation: str) -> None:
        if caller != self._owner:
            raise Unauthorized(caller, operation)

    def _require_authorized(self, caller: Address, operation: str) -> None:
        if not self.is_authorized(caller):
            raise Unauthorized(caller, operation)

    def _step(self, tag: str, external_balance: Optional[Amount] = None, **args: Any) -> kernel.VaultStepResult:
        if external_balance is None:
            external_balance = self.external_balance()
        result = kernel.step(self._state, VaultCommand(tag=tag, args=args), external_balance)
        if not result.ok:
            _raise_for(result.error or "")
        return result

    def _commit(self, state: VaultState) -> None:
        """The new state must describe the yield-vault position exactly; a gap is fatal."""
        external = self.external_balance()
        if state.last_observed_external_balance != external or not kernel.is_solvent(state, external):
            raise InsolvencyViolation(state.total_assets, state.claimable_fees, external)
        self._state = state

    # -- mutating entry points -----------------------------------------------

    def deposit(self, caller: Address, assets: Amount, depositor: Address) -> Amount:
        """Pull `assets` from the caller into the yield vault; mint shares for what the position gained."""
        with self._host.atomic("VaultWrapper.deposit"), self._guard.hold():
            self._require_not_paused()
            self._require_authorized(caller, "deposit")
            if depositor != caller:
                raise Unauthorized(caller, "deposit on behalf of another account")
            self._step("deposit", assets=assets)

            before = self.external_balance()
            self._tokens.transfer(caller, self._address, self.asset, assets)
            self._yield_vault.deposit(self._address, assets, self._address)
            received = self.external_balance() - before

            result = self._step("deposit", external_balance=before, assets=received)
            shares = result.effects["shares"]
            self._commit(result.state)
            self._shares.mint(depositor, shares)
            logger.info(
                "%s deposit %d (credited %d) -> %d shares for %s", self._address, assets, received, shares, depositor
            )
            return shares

    def withdraw(self, caller: Address, assets: Amount, receiver: Address, owner: Address) -> Amount:
        """Send exactly `assets` to `receiver`; burns (rounded up) the shares covering what the position lost."""
        with self._host.atomic("VaultWrapper.withdraw"), self._guard.hold():
            self._require_not_paused()
            self._require_authorized(caller, "withdraw")
            if owner != caller:
                raise Unauthorized(caller, "withdraw on behalf of another account")
            owner_shares = self._shares.balance_of(owner)
            self._step("withdraw", assets=assets, owner_shares=owner_shares)

            before = self.external_balance()
            self._yield_vault.withdraw(self._address, assets, receiver, self._address)
            removed = before - self.external_balance()

            result = self._step("withdraw", external_balance=before, assets=removed, owner_shares=owner_shares)
            shares = result.effects["shares"]
            self._shares.burn(owner, shares)
            self._commit(result.state)
            logger.info("%s withdraw %d (cost %d, %d shares) to %s", self._address, assets, removed, shares, receiver)
            return shares

    def redeem(self, caller: Address, shares: Amount, receiver: Address, owner: Address) -> Amount:
        """Burn `shares` and send `receiver` the most their value covers, yield-vault rounding included."""
        with self._host.atomic("VaultWrapper.redeem"), self._guard.hold():
            self._require_not_paused()
            self._require_authorized(caller, "redeem")
            if owner != caller:
                raise Unauthorized(caller, "redeem on behalf of another account")
            owner_shares = self._shares.balance_of(owner)
            self._step("redeem", shares=shares, owner_shares=owner_shares)
            payout = self.preview_redeem(shares)
            if payout == 0:
                raise ZeroAmount(f"{shares} shares cover no payout after yield-vault rounding")

            before = self.external_balance()
            self._yield_vault.withdraw(self._address, payout, receiver, self._address)
            removed = before - self.external_balance()

            result = self._step(
                "redeem", external_balance=before, shares=shares, owner_shares=owner_shares, assets_out=removed
            )
            self._shares.burn(owner, shares)
            self._commit(result.state)
            logger.info("%s redeem %d shares -> %d to %s", self._address, shares, payout, receiver)
            return payout

    def accrue(self, caller: Address) -> VaultState:
        """Realize pending yield/loss without moving funds."""
        with self._host.atomic("VaultWrapper.accrue"), self._guard.hold():
            self._require_not_paused()
            self._require_authorized(caller, "accrue")
            result = self._step("accrue")
            self._commit(result.state)
            return self._state

    def collect_fees(self, caller: Address) -> Amount:
        """Send claimable fees to the treasury as yield-vault shares; returns the fee assets."""
        with self._host.atomic("VaultWrapper.collect_fees"), self._guard.hold():
            self._require_not_paused()
            self._require_owner(caller, "collect_fees")
            amount = self._step("collect_fees").effects["assets"]

            yield_shares = self._yield_vault.convert_to_shares(amount)
            if yield_shares == 0:
                raise ZeroAmount(f"claimable fees {amount} are below one yield-vault share")
            before = self.external_balance()
            self._yield_vault.transfer(self._address, self._treasury, yield_shares)
            paid = before - self.external_balance()

            result = self._step("collect_fees", external_balance=before, assets_out=paid)
            self._commit(result.state)
            logger.info("%s collected %d fees (%d vault shares) to %s", self._address, paid, yield_shares, self._treasury)
            return paid

    def set_fee(self, caller: Address, fee_rate_bps: int) -> None:
        """Change the yield fee; yield earned so far is accrued at the old rate first."""
        with self._host.atomic("VaultWrapper.set_fee"), self._guard.hold():
            self._require_not_paused()
            self._require_owner(caller, "set_fee")
            result = self._step("set_fee", fee_rate_bps=fee_rate_bps)
            self._commit(result.state)
            logger.info(
                "%s fee rate %d -> %d bps", self._address, result.effects["old_fee_rate_bps"], fee_rate_bps
            )

    def set_treasury(self, caller: Address, treasury: Address) -> None:
        with self._host.atomic("VaultWrapper.set_treasury"):
            self._require_not_paused()
            self._require_owner(caller, "set_treasury")
            if not treasury:
                raise InvalidParams("treasury must be set")
            self._treasury = treasury

    def add_authorized_caller(self, caller: Address, account: Address) -> None:
        with self._host.atomic("VaultWrapper.add_authorized_caller"):
            self._require_not_paused()
            self._require_owner(caller, "add_authorized_caller")
            if not account:
                raise InvalidParams("account must be set")
            self._authorized_callers = self._authorized_callers | {account}
            logger.info("%s authorized %s", self._address, account)

    def remove_authorized_caller(self, caller: Address, account: Address) -> None:
        with self._host.atomic("VaultWrapper.remove_authorized_caller"):
            self._require_not_paused()
            self._require_owner(caller, "remove_authorized_caller")
            self._authorized_callers = self._authorized_callers - {account}
            logger.info("%s deauthorized %s", self._address, account)
