"""
Multi-currency token balances for every account the engine touches.

Implements TokenLedger[Address, Currency] -> Amount. This is the plain ERC-20
collaborator: hooks, vaults, the exchange and users all hold balances here.
"""

from typing import Dict, Tuple

from ..core.errors import InsufficientBalance


# Type aliases
Address = str
Currency = str
Amount = int  # Non-negative integer (arbitrary precision)


class TokenLedger:
    """
    Balance table mapping (holder, currency) -> amount.

    Zero balances are omitted to keep the table sparse. Mutations go through
    `transfer`, `mint` and `burn`; each either fully applies or raises.
    """

    _STATE_FIELDS = ("_balances",)

    def __init__(self) -> None:
        self._balances: Dict[Tuple[Address, Currency], Amount] = {}

    def balance_of(self, holder: Address, currency: Currency) -> Amount:
        """Get balance for (holder, currency). Returns 0 if not found."""
        return self._balances.get((holder, currency), 0)

    def _set(self, holder: Address, currency: Currency, amount: Amount) -> None:
        if amount < 0:
            raise InsufficientBalance(f"balance cannot be negative: {holder} {currency} {amount}")
        if amount == 0:
            self._balances.pop((holder, currency), None)
        else:
            self._balances[(holder, currency)] = amount

    def mint(self, holder: Address, currency: Currency, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative: {amount}")
        self._set(holder, currency, self.balance_of(holder, currency) + amount)

    def burn(self, holder: Address, currency: Currency, amount: Amount) -> None:
        """
        Destroy `amount` of `holder`'s balance.

        Raises:
            InsufficientBalance: If `holder` holds less than `amount`
        """
        if amount < 0:
            raise ValueError(f"burn amount must be non-negative: {amount}")
        current = self.balance_of(holder, currency)
        if current < amount:
            raise InsufficientBalance(
                f"{holder} holds {current} {currency}, cannot burn {amount}"
            )
        self._set(holder, currency, current - amount)

    def transfer(self, sender: Address, recipient: Address, currency: Currency, amount: Amount) -> None:
        """
        Move `amount` of `currency` from `sender` to `recipient`.

        Raises:
            ValueError: If amount is negative
            InsufficientBalance: If `sender` holds less than `amount`
        """
        if amount < 0:
            raise ValueError(f"transfer amount must be non-negative: {amount}")
        if amount == 0:
            return
        self.burn(sender, currency, amount)
        self.mint(recipient, currency, amount)

    def total_supply(self, currency: Currency) -> Amount:
        return sum(amount for (_, c), amount in self._balances.items() if c == currency)

    def get_balances_for_currency(self, currency: Currency) -> Dict[Address, Amount]:
        result = {}
        for (holder, c), amount in self._balances.items():
            if c == currency:
                result[holder] = amount
        return result

    def __repr__(self) -> str:
        return f"TokenLedger({len(self._balances)} entries)"
