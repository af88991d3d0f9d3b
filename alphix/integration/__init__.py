"""
Imperative shell: host ledger, collaborators and the Alphix hook
"""

from .access import PauseSwitch, ReentrancyGuard, StaticAuthorizer
from .exchange import ConcentratedLiquidityPool, Position, SwapResult
from .hook import AlphixHook
from .host import HostLedger
from .vault_wrapper import VaultWrapper
from .yield_source import SimulatedYieldVault, YieldVault

__all__ = [
    "PauseSwitch",
    "ReentrancyGuard",
    "StaticAuthorizer",
    "ConcentratedLiquidityPool",
    "Position",
    "SwapResult",
    "AlphixHook",
    "HostLedger",
    "VaultWrapper",
    "SimulatedYieldVault",
    "YieldVault",
]
