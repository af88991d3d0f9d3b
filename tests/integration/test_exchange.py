"""Tests for the in-memory concentrated-liquidity exchange."""

from __future__ import annotations

import pytest

from alphix.core.errors import InsufficientBalance, InvalidParams, Unauthorized, ZeroAmount
from alphix.core.fixed_point import Q96
from alphix.core.liquidity_amounts import MIN_SQRT_PRICE, sqrt_price_at_tick
from alphix.integration.exchange import ConcentratedLiquidityPool
from alphix.integration.host import HostLedger
from alphix.state.balances import TokenLedger


def _pool(lp_fee: int = 3_000) -> tuple[HostLedger, TokenLedger, ConcentratedLiquidityPool]:
    host = HostLedger()
    tokens = host.register(TokenLedger())
    pool = ConcentratedLiquidityPool(host, tokens, "A", "B", sqrt_price_x96=Q96, tick_spacing=60, lp_fee=lp_fee)
    for holder in ("lp", "trader"):
        tokens.mint(holder, "A", 10**24)
        tokens.mint(holder, "B", 10**24)
    return host, tokens, pool


# ---------------------------------------------------------------------------
# construction / fee
# ---------------------------------------------------------------------------

def test_unsorted_currencies_rejected() -> None:
    host = HostLedger()
    with pytest.raises(InvalidParams):
        ConcentratedLiquidityPool(host, TokenLedger(), "B", "A", sqrt_price_x96=Q96, tick_spacing=60)


def test_only_fee_controller_sets_fee() -> None:
    _, _, pool = _pool()
    with pytest.raises(Unauthorized):
        pool.update_dynamic_lp_fee("hook", 500)
    pool.set_fee_controller("hook")
    pool.update_dynamic_lp_fee("hook", 500)
    assert pool.lp_fee == 500
    with pytest.raises(InvalidParams):
        pool.set_fee_controller("other-hook")
    with pytest.raises(InvalidParams):
        pool.update_dynamic_lp_fee("hook", 1_000_001)


def test_initial_tick() -> None:
    _, _, pool = _pool()
    assert pool.tick == 0


# ---------------------------------------------------------------------------
# liquidity
# ---------------------------------------------------------------------------

class TestModifyLiquidity:
    def test_add_then_remove_loses_at_most_rounding(self) -> None:
        _, tokens, pool = _pool()
        added = pool.modify_liquidity("lp", -600, 600, 10**20)
        assert added.amount0 > 0 and added.amount1 > 0
        removed = pool.modify_liquidity("lp", -600, 600, -10**20)
        assert 0 <= added.amount0 - removed.amount0 <= 1
        assert 0 <= added.amount1 - removed.amount1 <= 1
        assert pool.position("lp", -600, 600).liquidity == 0
        assert pool.positions() == {}

    def test_misaligned_ticks_rejected(self) -> None:
        _, _, pool = _pool()
        with pytest.raises(InvalidParams):
            pool.modify_liquidity("lp", -610, 600, 10**18)

    def test_zero_delta_rejected(self) -> None:
        _, _, pool = _pool()
        with pytest.raises(ZeroAmount):
            pool.modify_liquidity("lp", -600, 600, 0)

    def test_remove_more_than_owned_rejected(self) -> None:
        _, _, pool = _pool()
        pool.modify_liquidity("lp", -600, 600, 10**18)
        with pytest.raises(InvalidParams):
            pool.modify_liquidity("lp", -600, 600, -(10**18 + 1))

    def test_add_without_funds_rolls_back(self) -> None:
        _, tokens, pool = _pool()
        with pytest.raises(InsufficientBalance):
            pool.modify_liquidity("pauper", -600, 600, 10**18)
        assert pool.positions() == {}

    def test_active_liquidity(self) -> None:
        _, _, pool = _pool()
        pool.modify_liquidity("lp", -600, 600, 10**18)
        pool.modify_liquidity("lp", 600, 1_200, 10**18)
        assert pool.active_liquidity() == 10**18


# ---------------------------------------------------------------------------
# swaps
# ---------------------------------------------------------------------------

class TestSwap:
    def test_zero_for_one_moves_price_down(self) -> None:
        _, tokens, pool = _pool()
        pool.modify_liquidity("lp", -6_000, 6_000, 10**22)
        before_b = tokens.balance_of("trader", "B")
        r = pool.swap("trader", True, 10**18)
        assert r.amount_in == 10**18
        assert r.sqrt_price_x96 < Q96
        assert tokens.balance_of("trader", "B") == before_b + r.amount_out
        assert 0 < r.amount_out < 10**18
        assert r.fee_amount > 0

    def test_fees_credited_to_active_positions(self) -> None:
        _, tokens, pool = _pool()
        pool.modify_liquidity("lp", -6_000, 6_000, 10**22)
        r = pool.swap("trader", False, 10**18)
        pos = pool.position("lp", -6_000, 6_000)
        assert pos.tokens_owed1 == r.fee_amount
        assert pos.tokens_owed0 == 0
        removed = pool.modify_liquidity("lp", -6_000, 6_000, -10**22)
        assert removed.fees1 == r.fee_amount

    def test_fees_split_pro_rata(self) -> None:
        _, tokens, pool = _pool()
        tokens.mint("lp2", "A", 10**24)
        tokens.mint("lp2", "B", 10**24)
        pool.modify_liquidity("lp", -600, 600, 3 * 10**21)
        pool.modify_liquidity("lp2", -600, 600, 10**21)
        pool.swap("trader", True, 10**18)
        owed1 = pool.position("lp", -600, 600).tokens_owed0
        owed2 = pool.position("lp2", -600, 600).tokens_owed0
        assert abs(owed1 - 3 * owed2) <= 3

    def test_swap_crosses_position_boundary(self) -> None:
        _, _, pool = _pool()
        pool.modify_liquidity("lp", -60, 60, 10**18)
        pool.modify_liquidity("lp", -6_000, 6_000, 10**20)
        r = pool.swap("trader", True, 10**19)
        assert r.tick < -60

    def test_price_limit_stops_swap(self) -> None:
        _, _, pool = _pool()
        pool.modify_liquidity("lp", -6_000, 6_000, 10**22)
        limit = sqrt_price_at_tick(-10)
        r = pool.swap("trader", True, 10**23, sqrt_price_limit_x96=limit)
        assert r.sqrt_price_x96 == limit
        assert r.amount_in < 10**23

    def test_bad_limit_rejected(self) -> None:
        _, _, pool = _pool()
        with pytest.raises(InvalidParams):
            pool.swap("trader", True, 1, sqrt_price_limit_x96=Q96 + 1)
        with pytest.raises(InvalidParams):
            pool.swap("trader", True, 1, sqrt_price_limit_x96=MIN_SQRT_PRICE)

    def test_empty_pool_swap_consumes_nothing(self) -> None:
        _, tokens, pool = _pool()
        r = pool.swap("trader", True, 10**18, sqrt_price_limit_x96=sqrt_price_at_tick(-60))
        assert r.amount_in == 0
        assert r.amount_out == 0
        assert tokens.balance_of("trader", "A") == 10**24

    def test_zero_amount_rejected(self) -> None:
        _, _, pool = _pool()
        with pytest.raises(ZeroAmount):
            pool.swap("trader", True, 0)
