"""End-to-end tests for the Alphix hook: fee pokes, rehypothecation and JIT swaps."""

from __future__ import annotations

import logging

import pytest

from alphix.config import STANDARD, AlphixConfig, HookConfig
from alphix.core.errors import (
    AlreadyInitialized,
    CooldownNotMet,
    InsufficientBalance,
    InvalidParams,
    NotConfigured,
    Paused,
    ReentrantCall,
    SlippageExceeded,
    Unauthorized,
)
from alphix.core.fixed_point import Q96, WAD
from alphix.core.jit import JitPhase, JitRange
from alphix.core.liquidity_amounts import amounts_for_liquidity, sqrt_price_at_tick
from alphix.integration.vault_wrapper import VaultWrapper
from alphix.integration.yield_source import SimulatedYieldVault


class _Rollback(Exception):
    pass


def _positions(env) -> tuple[int, int]:
    return env.hook.vault_positions()


def _no_jit_position(env) -> bool:
    rng = env.hook.jit_range
    return env.pool.position(env.hook.address, rng.tick_lower, rng.tick_upper).liquidity == 0


def _wrappers_solvent(env) -> bool:
    return all(w.is_solvent() for w in env.wrappers.values())


# ---------------------------------------------------------------------------
# initialize_pool
# ---------------------------------------------------------------------------

class TestInitializePool:
    def test_sets_fee_state_and_pushes_fee(self, env, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="alphix.integration.hook"):
            state = env.hook.initialize_pool("admin", HookConfig(), 3_000, WAD, STANDARD, -600, 600)
        assert state.current_fee == 3_000
        assert state.target_ratio == WAD
        assert state.last_update_timestamp == env.host.now
        assert env.pool.lp_fee == 3_000
        assert env.hook.jit_range == JitRange(-600, 600)
        assert env.hook.initialized
        assert "initialized" in caplog.text

    def test_second_call_rejected(self, initialized_env) -> None:
        with pytest.raises(AlreadyInitialized):
            initialized_env.hook.initialize_pool("admin", HookConfig(), 3_000, WAD, STANDARD, -600, 600)

    def test_unauthorized(self, env) -> None:
        with pytest.raises(Unauthorized):
            env.hook.initialize_pool("mallory", HookConfig(), 3_000, WAD, STANDARD, -600, 600)
        assert not env.hook.initialized

    def test_asymmetric_range_is_configuration_error(self, env) -> None:
        with pytest.raises(InvalidParams, match="asymmetry"):
            env.hook.initialize_pool("admin", HookConfig(), 3_000, WAD, STANDARD, -120, 600)
        env.hook.initialize_pool(
            "admin", HookConfig(max_jit_asymmetry_ticks=480), 3_000, WAD, STANDARD, -120, 600
        )

    def test_range_must_straddle_price(self, env) -> None:
        with pytest.raises(InvalidParams, match="straddle"):
            env.hook.initialize_pool("admin", HookConfig(max_jit_asymmetry_ticks=10_000), 3_000, WAD, STANDARD, 60, 600)

    def test_fee_outside_bounds_rejected(self, env) -> None:
        with pytest.raises(InvalidParams):
            env.hook.initialize_pool("admin", HookConfig(), 50, WAD, STANDARD, -600, 600)
        assert env.pool.lp_fee == 0
        assert env.hook.fee_state is None

    def test_paused(self, env) -> None:
        env.pause.pause("admin")
        with pytest.raises(Paused):
            env.hook.initialize_pool("admin", HookConfig(), 3_000, WAD, STANDARD, -600, 600)

    def test_from_config(self, env) -> None:
        cfg = AlphixConfig(pool_params=STANDARD, initial_fee=2_000, initial_target_ratio=2 * WAD)
        state = env.hook.initialize_from_config("admin", cfg, -600, 600)
        assert state.current_fee == 2_000
        assert env.hook.params == STANDARD


# ---------------------------------------------------------------------------
# fee controller entry points
# ---------------------------------------------------------------------------

class TestPoke:
    def test_uninitialized(self, env) -> None:
        with pytest.raises(NotConfigured):
            env.hook.compute_fee_update(WAD)
        with pytest.raises(NotConfigured):
            env.hook.poke("keeper", WAD)

    def test_cooldown_from_initialization(self, initialized_env) -> None:
        env = initialized_env
        assert env.hook.compute_fee_update(3 * WAD // 2).would_update is False
        with pytest.raises(CooldownNotMet):
            env.hook.poke("keeper", 3 * WAD // 2)

    def test_poke_updates_fee_for_next_swap(self, initialized_env) -> None:
        env = initialized_env
        env.host.advance_time(STANDARD.min_period)
        preview = env.hook.compute_fee_update(3 * WAD // 2)
        state = env.hook.poke("keeper", 3 * WAD // 2)
        # raw = 1000 pips * 0.5 * 2 (upper side factor) = 1000, capped at 50.
        assert state.current_fee == preview.new_fee == 3_050
        assert state.target_ratio == preview.new_target_ratio == WAD + (WAD // 2) // STANDARD.lookback_period
        assert env.pool.lp_fee == 3_050

        env.fund("lp2", 10**24, 10**24)
        env.pool.modify_liquidity("lp2", -6_000, 6_000, 10**20)
        env.fund("trader", 10**20, 10**20)
        assert env.hook.swap("trader", True, 10**15).fee_pips == 3_050

    def test_second_poke_within_cooldown_leaves_state(self, initialized_env) -> None:
        env = initialized_env
        env.host.advance_time(STANDARD.min_period)
        first = env.hook.poke("keeper", 3 * WAD // 2)
        env.host.advance_time(STANDARD.min_period - 1)
        with pytest.raises(CooldownNotMet):
            env.hook.poke("keeper", 2 * WAD)
        assert env.hook.fee_state == first
        env.host.advance_time(1)
        assert env.hook.poke("keeper", 2 * WAD).current_fee == 3_100

    def test_unauthorized_poke(self, initialized_env) -> None:
        env = initialized_env
        env.host.advance_time(STANDARD.min_period)
        with pytest.raises(Unauthorized):
            env.hook.poke("mallory", WAD)

    def test_paused_poke(self, initialized_env) -> None:
        env = initialized_env
        env.host.advance_time(STANDARD.min_period)
        env.pause.pause("admin")
        with pytest.raises(Paused):
            env.hook.poke("keeper", WAD)


# ---------------------------------------------------------------------------
# yield sources
# ---------------------------------------------------------------------------

class TestSetYieldSource:
    def test_currency_mismatch(self, initialized_env) -> None:
        env = initialized_env
        with pytest.raises(InvalidParams):
            env.hook.set_yield_source("admin", 0, env.make_wrapper("x", "token1"))

    def test_bad_slot(self, initialized_env) -> None:
        env = initialized_env
        with pytest.raises(InvalidParams):
            env.hook.set_yield_source("admin", 2, None)

    def test_unauthorized_and_paused(self, initialized_env) -> None:
        env = initialized_env
        wrapper = env.make_wrapper("0", "token0")
        with pytest.raises(Unauthorized):
            env.hook.set_yield_source("mallory", 0, wrapper)
        env.pause.pause("admin")
        with pytest.raises(Paused):
            env.hook.set_yield_source("admin", 0, wrapper)
        assert env.hook.yield_source(0) is None

    def test_migration_moves_all_funds(self, funded_env) -> None:
        env = funded_env
        old = env.wrappers["0"]
        before0, before1 = _positions(env)
        new = env.make_wrapper("0b", "token0")
        env.hook.set_yield_source("admin", 0, new)
        assert env.hook.yield_source(0) is new
        assert old.balance_of(env.hook.address) == 0
        assert _positions(env) == (before0, before1)
        assert _wrappers_solvent(env)

    def test_clearing_funded_source_rejected(self, funded_env) -> None:
        env = funded_env
        with pytest.raises(InvalidParams, match="migrate"):
            env.hook.set_yield_source("admin", 0, None)
        assert env.hook.yield_source(0) is env.wrappers["0"]

    def test_clearing_empty_source(self, funded_env) -> None:
        env = funded_env
        env.hook.remove_rehypothecated_liquidity("lp", env.hook.balance_of("lp"))
        env.hook.set_yield_source("admin", 0, None)
        assert env.hook.yield_source(0) is None


# ---------------------------------------------------------------------------
# rehypothecation ledger
# ---------------------------------------------------------------------------

class TestLedger:
    def test_requires_both_sources(self, initialized_env) -> None:
        env = initialized_env
        env.hook.set_yield_source("admin", 0, env.make_wrapper("0", "token0"))
        env.fund("lp", 10**24, 10**24)
        with pytest.raises(NotConfigured):
            env.hook.add_rehypothecated_liquidity("lp", 10**18)

    def test_requires_initialization(self, env) -> None:
        with pytest.raises(NotConfigured):
            env.hook.add_rehypothecated_liquidity("lp", 10**18)

    def test_first_add_uses_jit_composition(self, funded_env) -> None:
        env = funded_env
        rng = env.hook.jit_range
        expected = amounts_for_liquidity(Q96, rng.sqrt_lower, rng.sqrt_upper, 10**21, round_up=True)
        assert _positions(env) == expected
        assert env.hook.balance_of("lp") == 10**21
        assert env.tokens.balance_of("lp", "token0") == 10**24 - expected[0]
        assert env.hook.total_shares == 10**21

    def test_later_add_is_pro_rata_and_matches_preview(self, funded_env) -> None:
        env = funded_env
        pos0, pos1 = _positions(env)
        preview = env.hook.preview_add_rehypothecated_liquidity(5 * 10**20)
        assert preview == (-(-pos0 // 2), -(-pos1 // 2))
        env.fund("lp2", 10**24, 10**24)
        assert env.hook.add_rehypothecated_liquidity("lp2", 5 * 10**20) == preview
        assert env.hook.balance_of("lp2") == 5 * 10**20

    def test_full_remove_returns_everything(self, funded_env) -> None:
        env = funded_env
        positions = _positions(env)
        amounts = env.hook.remove_rehypothecated_liquidity("lp", 10**21)
        assert amounts == positions
        assert env.tokens.balance_of("lp", "token0") == 10**24
        assert env.tokens.balance_of("lp", "token1") == 10**24
        assert env.hook.total_shares == 0
        assert _positions(env) == (0, 0)

    def test_remove_more_than_owned(self, funded_env) -> None:
        env = funded_env
        with pytest.raises(InsufficientBalance):
            env.hook.remove_rehypothecated_liquidity("lp", 10**21 + 1)
        assert env.hook.balance_of("lp") == 10**21
        with pytest.raises(InsufficientBalance):
            env.hook.remove_rehypothecated_liquidity("mallory", 1)

    def test_yield_flows_to_share_holders(self, funded_env) -> None:
        env = funded_env
        before = env.hook.preview_remove_rehypothecated_liquidity(10**21)
        env.yield_vaults["0"].accrue_yield(10**18)
        after = env.hook.preview_remove_rehypothecated_liquidity(10**21)
        assert after == (before[0] + 10**18, before[1])

    def test_slashing_hits_share_holders(self, funded_env) -> None:
        env = funded_env
        before = env.hook.preview_remove_rehypothecated_liquidity(10**21)
        env.yield_vaults["1"].slash(1_000)
        after = env.hook.preview_remove_rehypothecated_liquidity(10**21)
        assert after[0] == before[0]
        assert after[1] < before[1]
        env.hook.remove_rehypothecated_liquidity("lp", 10**21)
        assert _wrappers_solvent(env)

    def test_slippage_guard(self, funded_env) -> None:
        env = funded_env
        env.fund("lp2", 10**24, 10**24)
        with pytest.raises(SlippageExceeded):
            env.hook.add_rehypothecated_liquidity("lp2", 10**18, Q96 * 102 // 100, 100)
        with pytest.raises(SlippageExceeded):
            env.hook.remove_rehypothecated_liquidity("lp", 10**18, Q96 * 98 // 100, 100)
        env.hook.add_rehypothecated_liquidity("lp2", 10**18, Q96 * 1005 // 1000, 100)
        env.hook.add_rehypothecated_liquidity("lp2", 10**18, 0, 0)

    def test_slippage_tolerance_is_on_price(self, funded_env) -> None:
        env = funded_env
        # sqrt price off by 0.6% means the price is off by about 1.2%.
        with pytest.raises(SlippageExceeded):
            env.hook.remove_rehypothecated_liquidity("lp", 10**18, Q96 * 1006 // 1000, 100)
        env.hook.remove_rehypothecated_liquidity("lp", 10**18, Q96 * 1006 // 1000, 125)

    def test_negative_slippage_tolerance_rejected(self, funded_env) -> None:
        with pytest.raises(InvalidParams):
            funded_env.hook.add_rehypothecated_liquidity("lp", 10**18, Q96, -1)

    def test_paused_ledger(self, funded_env) -> None:
        env = funded_env
        env.pause.pause("admin")
        with pytest.raises(Paused):
            env.hook.remove_rehypothecated_liquidity("lp", 1)
        with pytest.raises(Paused):
            env.hook.add_rehypothecated_liquidity("lp", 1)

    def test_failed_add_rolls_back(self, funded_env) -> None:
        env = funded_env
        env.fund("poor", 1, 0)
        before = _positions(env)
        with pytest.raises(InsufficientBalance):
            env.hook.add_rehypothecated_liquidity("poor", 10**20)
        assert _positions(env) == before
        assert env.tokens.balance_of("poor", "token0") == 1
        assert env.hook.balance_of("poor") == 0


# ---------------------------------------------------------------------------
# JIT swaps
# ---------------------------------------------------------------------------

@pytest.fixture
def market(funded_env):
    env = funded_env
    env.fund("lp2", 10**24, 10**24)
    env.pool.modify_liquidity("lp2", -6_000, 6_000, 10**20)
    env.fund("trader", 10**24, 10**24)
    return env


class TestJitSwap:
    def test_jit_position_removed_and_resting_untouched(self, market) -> None:
        env = market
        before0, before1 = _positions(env)
        resting = env.pool.position("lp2", -6_000, 6_000)

        r = env.hook.swap("trader", True, 10**18)

        assert r.amount_out > 0
        assert _no_jit_position(env)
        assert env.pool.position("lp2", -6_000, 6_000).liquidity == resting.liquidity
        assert env.hook.phase == JitPhase.IDLE
        after0, after1 = _positions(env)
        # The JIT position bought token0 and sold token1.
        assert after0 > before0
        assert after1 < before1
        assert _wrappers_solvent(env)

    def test_jit_improves_execution(self, market) -> None:
        env = market
        with pytest.raises(_Rollback):
            with env.host.atomic("outer"):
                env.pause.pause("admin")
                plain = env.hook.swap("trader", True, 10**18)
                raise _Rollback
        assert not env.pause.paused

        with_jit = env.hook.swap("trader", True, 10**18)
        assert with_jit.amount_out > plain.amount_out

    def test_jit_earns_swap_fees(self, market) -> None:
        env = market
        before0, before1 = _positions(env)
        env.hook.swap("trader", True, 10**18)
        env.hook.swap("trader", False, 10**18)
        after0, after1 = _positions(env)
        # Round trip at 0.3%: the JIT side gains fees in both currencies' value.
        p = env.pool.sqrt_price_x96
        value_before = before0 * p // Q96 * p // Q96 + before1
        value_after = after0 * p // Q96 * p // Q96 + after1
        assert value_after > value_before

    def test_paused_swap_skips_jit(self, market) -> None:
        env = market
        before = _positions(env)
        env.pause.pause("admin")
        r = env.hook.swap("trader", True, 10**18)
        assert r.amount_out > 0
        assert _positions(env) == before

    def test_missing_source_skips_jit(self, initialized_env) -> None:
        env = initialized_env
        env.hook.set_yield_source("admin", 0, env.make_wrapper("0", "token0"))
        env.fund("lp2", 10**24, 10**24)
        env.pool.modify_liquidity("lp2", -6_000, 6_000, 10**20)
        env.fund("trader", 10**20, 10**20)
        env.hook.swap("trader", True, 10**15)
        assert env.pool.positions().keys() == {("lp2", -6_000, 6_000)}

    def test_price_outside_range_skips_jit(self, market) -> None:
        env = market
        env.pool.swap("trader", False, 10**23, sqrt_price_limit_x96=sqrt_price_at_tick(1_200))
        assert env.pool.tick >= 1_200 - 1
        before = _positions(env)
        env.hook.swap("trader", True, 10**15)
        assert _positions(env) == before

    def test_uninitialized_hook_swaps_against_resting_liquidity(self, env) -> None:
        env.fund("lp2", 10**24, 10**24)
        env.pool.modify_liquidity("lp2", -6_000, 6_000, 10**20)
        env.fund("trader", 10**20, 10**20)
        assert env.hook.swap("trader", True, 10**15).amount_out > 0

    def test_failed_swap_rolls_back_injection(self, market) -> None:
        env = market
        before = _positions(env)
        with pytest.raises(InsufficientBalance):
            env.hook.swap("pauper", True, 10**18)
        assert _positions(env) == before
        assert _no_jit_position(env)
        assert env.hook.phase == JitPhase.IDLE


# ---------------------------------------------------------------------------
# re-entrancy
# ---------------------------------------------------------------------------

class _ReenteringVault(SimulatedYieldVault):
    """Yield vault that calls back into the engine while paying out."""

    callback = None

    def withdraw(self, caller, assets, receiver, owner):
        if self.callback is not None:
            self.callback()
        return super().withdraw(caller, assets, receiver, owner)


def test_reentrant_swap_during_injection_aborts_everything(initialized_env) -> None:
    env = initialized_env
    vault = _ReenteringVault(env.host, env.tokens, "token0", address="yv-evil")
    evil = VaultWrapper(env.host, env.tokens, vault, address="wrapper-evil", owner="admin", treasury="treasury")
    evil.add_authorized_caller("admin", env.hook.address)
    env.wrappers["evil"] = evil
    env.hook.set_yield_source("admin", 0, evil)
    env.hook.set_yield_source("admin", 1, env.make_wrapper("1", "token1"))
    env.fund("lp", 10**24, 10**24)
    env.hook.add_rehypothecated_liquidity("lp", 10**21)
    env.fund("trader", 10**20, 10**20)

    vault.callback = lambda: env.hook.swap("trader", True, 10**15)
    before = _positions(env)
    trader0 = env.tokens.balance_of("trader", "token0")

    with pytest.raises(ReentrantCall):
        env.hook.swap("trader", True, 10**18)

    assert _positions(env) == before
    assert env.tokens.balance_of("trader", "token0") == trader0
    assert _no_jit_position(env)
    assert env.hook.phase == JitPhase.IDLE

    vault.callback = None
    env.hook.swap("trader", True, 10**18)
    assert _no_jit_position(env)


def test_reentrant_wrapper_call_rejected(initialized_env) -> None:
    env = initialized_env
    vault = _ReenteringVault(env.host, env.tokens, "token0", address="yv-evil")
    wrapper = VaultWrapper(env.host, env.tokens, vault, address="wrapper-evil", owner="admin", treasury="treasury")
    env.tokens.mint("admin", "token0", 10**6)
    wrapper.deposit("admin", 1_000, "admin")
    vault.callback = lambda: wrapper.deposit("admin", 1, "admin")
    with pytest.raises(ReentrantCall):
        wrapper.redeem("admin", 500, "admin", "admin")
    assert wrapper.balance_of("admin") == 1_000
    assert wrapper.is_solvent()
