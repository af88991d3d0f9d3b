from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import pytest

from alphix.config import STANDARD, HookConfig
from alphix.core.fixed_point import Q96, WAD
from alphix.integration.access import (
    OP_INITIALIZE_POOL,
    OP_PAUSE,
    OP_POKE,
    OP_SET_YIELD_SOURCE,
    PauseSwitch,
    StaticAuthorizer,
)
from alphix.integration.exchange import ConcentratedLiquidityPool
from alphix.integration.hook import AlphixHook
from alphix.integration.host import HostLedger
from alphix.integration.vault_wrapper import VaultWrapper
from alphix.integration.yield_source import SimulatedYieldVault
from alphix.state.balances import TokenLedger


TOKEN0 = "token0"
TOKEN1 = "token1"
ADMIN = "admin"
KEEPER = "keeper"
TREASURY = "treasury"
START_TIME = 1_000

JIT_LOWER = -600
JIT_UPPER = 600


@dataclass
class Env:
    host: HostLedger
    tokens: TokenLedger
    authorizer: StaticAuthorizer
    pause: PauseSwitch
    pool: ConcentratedLiquidityPool
    hook: AlphixHook
    yield_vaults: Dict[str, SimulatedYieldVault] = field(default_factory=dict)
    wrappers: Dict[str, VaultWrapper] = field(default_factory=dict)

    def make_wrapper(self, name: str, currency: str, *, fee_rate_bps: int = 0) -> VaultWrapper:
        vault = SimulatedYieldVault(self.host, self.tokens, currency, address=f"yv-{name}")
        wrapper = VaultWrapper(
            self.host,
            self.tokens,
            vault,
            address=f"wrapper-{name}",
            owner=ADMIN,
            treasury=TREASURY,
            fee_rate_bps=fee_rate_bps,
            pause_switch=self.pause,
        )
        wrapper.add_authorized_caller(ADMIN, self.hook.address)
        self.yield_vaults[name] = vault
        self.wrappers[name] = wrapper
        return wrapper

    def fund(self, holder: str, amount0: int, amount1: int) -> None:
        self.tokens.mint(holder, TOKEN0, amount0)
        self.tokens.mint(holder, TOKEN1, amount1)


def build_env() -> Env:
    host = HostLedger(timestamp=START_TIME)
    tokens = host.register(TokenLedger())
    authorizer = StaticAuthorizer(
        {
            OP_INITIALIZE_POOL: {ADMIN},
            OP_SET_YIELD_SOURCE: {ADMIN},
            OP_PAUSE: {ADMIN},
            OP_POKE: {KEEPER},
        }
    )
    pause = host.register(PauseSwitch(authorizer))
    pool = ConcentratedLiquidityPool(host, tokens, TOKEN0, TOKEN1, sqrt_price_x96=Q96, tick_spacing=60)
    hook = AlphixHook(host, tokens, pool, authorizer, pause)
    return Env(host=host, tokens=tokens, authorizer=authorizer, pause=pause, pool=pool, hook=hook)


@pytest.fixture
def env() -> Env:
    return build_env()


@pytest.fixture
def initialized_env(env: Env) -> Env:
    env.hook.initialize_pool(ADMIN, HookConfig(), 3_000, WAD, STANDARD, JIT_LOWER, JIT_UPPER)
    return env


@pytest.fixture
def funded_env(initialized_env: Env) -> Env:
    """Initialized pool with both yield sources set and 10**21 rehypothecation shares minted to `lp`."""
    env = initialized_env
    env.hook.set_yield_source(ADMIN, 0, env.make_wrapper("0", TOKEN0))
    env.hook.set_yield_source(ADMIN, 1, env.make_wrapper("1", TOKEN1))
    env.fund("lp", 10**24, 10**24)
    env.hook.add_rehypothecated_liquidity("lp", 10**21)
    return env
