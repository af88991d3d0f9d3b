"""
State tables for the Alphix engine
"""

from .balances import Address, Amount, Currency, TokenLedger
from .shares import ShareTable

__all__ = [
    "Address",
    "Amount",
    "Currency",
    "TokenLedger",
    "ShareTable",
]
