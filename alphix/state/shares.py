"""
Share balance tracking.

One `ShareTable` per share token: a Vault Wrapper's shares, or the hook's
rehypothecation shares. Shares are fungible, minted on deposit and burned on
withdraw/redeem; `total_supply` is kept alongside the balances so it never has
to be recomputed.
"""

from __future__ import annotations

from typing import Dict

from ..core.errors import InsufficientBalance
from .balances import Address, Amount


class ShareTable:
    """
    Share balances mapping holder -> amount.

    Notes:
    - Balances are always non-negative.
    - Zero balances are omitted to keep the table sparse.
    """

    _STATE_FIELDS = ("_balances", "_total_supply")

    def __init__(self) -> None:
        self._balances: Dict[Address, Amount] = {}
        self._total_supply: Amount = 0

    @property
    def total_supply(self) -> Amount:
        return self._total_supply

    def balance_of(self, holder: Address) -> Amount:
        """Get share balance for `holder`. Returns 0 if not found."""
        return self._balances.get(holder, 0)

    def mint(self, holder: Address, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative: {amount}")
        if amount == 0:
            return
        self._balances[holder] = self.balance_of(holder) + amount
        self._total_supply += amount

    def burn(self, holder: Address, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"burn amount must be non-negative: {amount}")
        current = self.balance_of(holder)
        if current < amount:
            raise InsufficientBalance(f"{holder} holds {current} shares, cannot burn {amount}")
        if current == amount:
            self._balances.pop(holder, None)
        else:
            self._balances[holder] = current - amount
        self._total_supply -= amount

    def transfer(self, sender: Address, recipient: Address, amount: Amount) -> None:
        self.burn(sender, amount)
        self.mint(recipient, amount)

    def get_all_balances(self) -> Dict[Address, Amount]:
        return dict(self._balances)

    def verify_supply(self) -> bool:
        """Verify the cached supply equals the sum of balances."""
        return self._total_supply == sum(self._balances.values())

    def __repr__(self) -> str:
        return f"ShareTable({len(self._balances)} holders, supply={self._total_supply})"
