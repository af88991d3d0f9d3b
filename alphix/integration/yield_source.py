"""
External yield sources.

`YieldVault` is the interface a Vault Wrapper is generic over: an ERC-4626
style lending vault whose shares are the "external yield-bearing unit".
`SimulatedYieldVault` is the in-memory backend: it holds underlying tokens in
the shared `TokenLedger` and lets tests inject yield or slash its holdings.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..core.errors import InsufficientBalance, ZeroAmount
from ..core.fixed_point import MAX_BPS, mul_div, mul_div_up
from ..state.balances import Address, Amount, Currency, TokenLedger
from ..state.shares import ShareTable
from .host import HostLedger


logger = logging.getLogger(__name__)


class YieldVault(Protocol):
    @property
    def address(self) -> Address: ...

    @property
    def asset(self) -> Currency: ...

    def total_assets(self) -> Amount: ...

    def total_supply(self) -> Amount: ...

    def balance_of(self, holder: Address) -> Amount: ...

    def convert_to_assets(self, shares: Amount) -> Amount: ...

    def convert_to_shares(self, assets: Amount) -> Amount: ...

    def preview_withdraw(self, assets: Amount) -> Amount: ...

    def deposit(self, caller: Address, assets: Amount, receiver: Address) -> Amount: ...

    def withdraw(self, caller: Address, assets: Amount, receiver: Address, owner: Address) -> Amount: ...

    def transfer(self, sender: Address, recipient: Address, shares: Amount) -> None: ...


class SimulatedYieldVault:
    """Lending-market style vault: floor on mint/convert, ceil on burn."""

    def __init__(self, host: HostLedger, tokens: TokenLedger, asset: Currency, *, address: Address) -> None:
        self._host = host
        self._tokens = tokens
        self._asset = asset
        self._address = address
        self._shares = host.register(ShareTable())

    @property
    def address(self) -> Address:
        return self._address

    @property
    def asset(self) -> Currency:
        return self._asset

    def total_assets(self) -> Amount:
        return self._tokens.balance_of(self._address, self._asset)

    def total_supply(self) -> Amount:
        return self._shares.total_supply

    def balance_of(self, holder: Address) -> Amount:
        return self._shares.balance_of(holder)

    def convert_to_shares(self, assets: Amount) -> Amount:
        supply = self._shares.total_supply
        if supply == 0:
            return assets
        total = self.total_assets()
        if total == 0:
            return 0
        return mul_div(assets, supply, total)

    def convert_to_assets(self, shares: Amount) -> Amount:
        supply = self._shares.total_supply
        if supply == 0:
            return shares
        return mul_div(shares, self.total_assets(), supply)

    def preview_withdraw(self, assets: Amount) -> Amount:
        """Shares `withdraw` would burn for `assets` (rounded up)."""
        total = self.total_assets()
        return mul_div_up(assets, self._shares.total_supply, total) if total else 0

    def deposit(self, caller: Address, assets: Amount, receiver: Address) -> Amount:
        with self._host.atomic("SimulatedYieldVault.deposit"):
            shares = self.convert_to_shares(assets)
            if shares == 0:
                raise ZeroAmount(f"deposit of {assets} mints no shares")
            self._tokens.transfer(caller, self._address, self._asset, assets)
            self._shares.mint(receiver, shares)
            return shares

    def withdraw(self, caller: Address, assets: Amount, receiver: Address, owner: Address) -> Amount:
        with self._host.atomic("SimulatedYieldVault.withdraw"):
            if caller != owner:
                raise InsufficientBalance(f"{caller} has no allowance over {owner}")
            total = self.total_assets()
            if assets > total:
                raise InsufficientBalance(f"vault holds {total}, cannot withdraw {assets}")
            supply = self._shares.total_supply
            shares = mul_div_up(assets, supply, total) if total else 0
            self._shares.burn(owner, shares)
            self._tokens.transfer(self._address, receiver, self._asset, assets)
            return shares

    def transfer(self, sender: Address, recipient: Address, shares: Amount) -> None:
        with self._host.atomic("SimulatedYieldVault.transfer"):
            self._shares.transfer(sender, recipient, shares)

    # -- simulation controls -------------------------------------------------

    def accrue_yield(self, amount: Amount) -> None:
        """Interest arrives: the underlying backing every share grows."""
        self._tokens.mint(self._address, self._asset, amount)
        logger.debug("%s accrued %d %s", self._address, amount, self._asset)

    def slash(self, bps: int) -> Amount:
        """Destroy `bps` of the vault's underlying (negative yield)."""
        if not (0 <= bps <= MAX_BPS):
            raise ValueError(f"slash bps must be in [0, {MAX_BPS}]: {bps}")
        loss = mul_div(self.total_assets(), bps, MAX_BPS)
        self._tokens.burn(self._address, self._asset, loss)
        logger.debug("%s slashed %d %s (%d bps)", self._address, loss, self._asset, bps)
        return loss
