"""
Alphix hook: dynamic fee controller + rehypothecation ledger + JIT manager.

One hook instance serves one pool. It owns:
- the pool's `FeeState` and `PoolParams` (fee controller),
- the immutable JIT range and the per-currency yield-source map,
- the rehypothecation share table (claims on the hook's vault positions).

Every public mutating call runs inside `HostLedger.atomic()` and holds the
hook's re-entrancy guard, so an exception anywhere (including inside a vault
wrapper or the exchange) rolls the whole call back.

Swap flow (`swap`)::

    IDLE --inject--> INJECTING --exchange.swap--> INJECTING --reconcile--> IDLE

Injection withdraws from both wrappers and adds a temporary position over the
JIT range; reconcile removes it and re-deposits everything the hook holds.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from ..config import AlphixConfig, HookConfig
from ..core import fee_controller
from ..core import rehypothecation as ledger
from ..core.errors import (
    AlreadyInitialized,
    InsufficientBalance,
    InvalidParams,
    InvariantViolation,
    NotConfigured,
    SlippageExceeded,
    ZeroAmount,
)
from ..core.fee_controller import FeeState, FeeUpdate, PokeParams, PoolParams
from ..core.jit import JitPhase, JitPlan, JitRange, SkipReason, entry_skip_reason, plan_injection, validate_jit_range
from ..state.balances import Address, Amount, TokenLedger
from ..state.shares import ShareTable
from .access import OP_INITIALIZE_POOL, OP_POKE, OP_SET_YIELD_SOURCE, Authorizer, PauseSwitch, ReentrancyGuard, require_authorized
from .exchange import ConcentratedLiquidityPool, SwapResult
from .host import HostLedger
from .vault_wrapper import VaultWrapper


logger = logging.getLogger(__name__)

SLOTS = (0, 1)


class AlphixHook:
    _STATE_FIELDS = ("_initialized", "_config", "_params", "_fee_state", "_jit_range", "_yield_sources")

    def __init__(
        self,
        host: HostLedger,
        tokens: TokenLedger,
        pool: ConcentratedLiquidityPool,
        authorizer: Authorizer,
        pause_switch: PauseSwitch,
        *,
        address: Address = "alphix-hook",
    ) -> None:
        self._host = host
        self._tokens = tokens
        self._pool = pool
        self._authorizer = authorizer
        self._pause = pause_switch
        self._address = address

        self._initialized = False
        self._config: Optional[HookConfig] = None
        self._params: Optional[PoolParams] = None
        self._fee_state: Optional[FeeState] = None
        self._jit_range: Optional[JitRange] = None
        self._yield_sources: Dict[int, Optional[VaultWrapper]] = {0: None, 1: None}

        self._shares = host.register(ShareTable())
        self._guard = ReentrancyGuard(f"AlphixHook({address})")
        self._phase = JitPhase.IDLE
        pool.set_fee_controller(address)
        host.register(self)

    # -- views ---------------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._address

    @property
    def pool(self) -> ConcentratedLiquidityPool:
        return self._pool

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> Optional[HookConfig]:
        return self._config

    @property
    def params(self) -> Optional[PoolParams]:
        return self._params

    @property
    def fee_state(self) -> Optional[FeeState]:
        return self._fee_state

    @property
    def jit_range(self) -> Optional[JitRange]:
        return self._jit_range

    @property
    def phase(self) -> JitPhase:
        return self._phase

    @property
    def total_shares(self) -> Amount:
        return self._shares.total_supply

    def balance_of(self, holder: Address) -> Amount:
        return self._shares.balance_of(holder)

    def yield_source(self, slot: int) -> Optional[VaultWrapper]:
        self._check_slot(slot)
        return self._yield_sources[slot]

    def vault_positions(self) -> Tuple[Amount, Amount]:
        """Assets the hook can currently withdraw from each wrapper."""
        return self._vault_position(0), self._vault_position(1)

    def _vault_position(self, slot: int) -> Amount:
        wrapper = self._yield_sources[slot]
        if wrapper is None:
            return 0
        return wrapper.max_withdraw(self._address)

    # -- fee controller ------------------------------------------------------

    def compute_fee_update(self, current_ratio: int) -> FeeUpdate:
        """Preview the next poke at the host's current time."""
        self._require_initialized()
        return fee_controller.compute_fee_update(self._params, self._fee_state, current_ratio, self._host.now)

    def poke(self, caller: Address, current_ratio: int) -> FeeState:
        """Commit a fee update; it applies from the next swap onwards."""
        with self._host.atomic("AlphixHook.poke"), self._guard.hold():
            self._require_initialized()
            self._pause.require_not_paused()
            poke = PokeParams(
                current_ratio=current_ratio,
                now=self._host.now,
                auth_ok=self._authorizer.authorize(caller, OP_POKE),
            )
            result = fee_controller.step_or_raise(self._params, self._fee_state, poke, caller=caller)
            self._fee_state = result.state
            self._pool.update_dynamic_lp_fee(self._address, result.state.current_fee)
            effect = result.effect
            logger.info(
                "%s poke by %s: fee %d -> %d, target %d -> %d",
                self._address, caller, effect.old_fee, effect.new_fee,
                effect.old_target_ratio, effect.new_target_ratio,
            )
            return result.state

    # -- setup ---------------------------------------------------------------

    def initialize_pool(
        self,
        caller: Address,
        config: HookConfig,
        initial_fee: int,
        initial_target_ratio: int,
        params: PoolParams,
        jit_tick_lower: int,
        jit_tick_upper: int,
    ) -> FeeState:
        """One-time setup of the fee state and the (immutable) JIT range."""
        with self._host.atomic("AlphixHook.initialize_pool"), self._guard.hold():
            require_authorized(self._authorizer, caller, OP_INITIALIZE_POOL)
            self._pause.require_not_paused()
            if self._initialized:
                raise AlreadyInitialized(f"{self._address} already initialized")

            rng = JitRange(jit_tick_lower, jit_tick_upper)
            validate_jit_range(rng, self._pool.tick, self._pool.tick_spacing, config.max_jit_asymmetry_ticks)
            state = fee_controller.initial_state(params, initial_fee, initial_target_ratio, self._host.now)

            self._config = config
            self._params = params
            self._fee_state = state
            self._jit_range = rng
            self._initialized = True
            self._pool.update_dynamic_lp_fee(self._address, initial_fee)
            logger.info(
                "%s initialized: fee=%d target=%d jit=[%d, %d)",
                self._address, initial_fee, initial_target_ratio, jit_tick_lower, jit_tick_upper,
            )
            return state

    def initialize_from_config(
        self, caller: Address, config: AlphixConfig, jit_tick_lower: int, jit_tick_upper: int
    ) -> FeeState:
        return self.initialize_pool(
            caller,
            config.hook,
            config.initial_fee,
            config.initial_target_ratio,
            config.pool_params,
            jit_tick_lower,
            jit_tick_upper,
        )

    def set_yield_source(self, caller: Address, slot: int, wrapper: Optional[VaultWrapper]) -> None:
        """Point a currency slot at a vault wrapper, migrating any funds held in the old one."""
        with self._host.atomic("AlphixHook.set_yield_source"), self._guard.hold():
            require_authorized(self._authorizer, caller, OP_SET_YIELD_SOURCE)
            self._pause.require_not_paused()
            self._check_slot(slot)
            currency = self._pool.currencies[slot]
            if wrapper is not None and wrapper.asset != currency:
                raise InvalidParams(f"wrapper asset {wrapper.asset} does not match slot {slot} currency {currency}")

            old = self._yield_sources[slot]
            if old is wrapper:
                return
            if old is not None:
                held = old.balance_of(self._address)
                if held and wrapper is None:
                    raise InvalidParams(f"slot {slot} still holds {held} wrapper shares; migrate instead of clearing")
                if held and old.preview_redeem(held) > 0:
                    assets = old.redeem(self._address, held, self._address, self._address)
                    logger.info("%s migrating %d %s out of %s", self._address, assets, currency, old.address)

            self._yield_sources[slot] = wrapper
            if wrapper is not None:
                self._sweep(slot)
            logger.info(
                "%s yield source %d: %s -> %s", self._address, slot,
                old.address if old is not None else None,
                wrapper.address if wrapper is not None else None,
            )

    # -- rehypothecation ledger ----------------------------------------------

    def preview_add_rehypothecated_liquidity(self, shares: Amount) -> Tuple[Amount, Amount]:
        self._require_initialized()
        assets0, assets1 = self.vault_positions()
        return ledger.preview_add(
            shares, self._shares.total_supply, assets0, assets1, self._pool.sqrt_price_x96, self._jit_range
        )

    def preview_remove_rehypothecated_liquidity(self, shares: Amount) -> Tuple[Amount, Amount]:
        self._require_initialized()
        assets0, assets1 = self.vault_positions()
        return ledger.preview_remove(shares, self._shares.total_supply, assets0, assets1)

    def add_rehypothecated_liquidity(
        self,
        caller: Address,
        shares: Amount,
        expected_sqrt_price_x96: int = 0,
        max_slippage_bps: int = 0,
    ) -> Tuple[Amount, Amount]:
        """Pull the previewed amounts from `caller` into the vaults and mint `shares` to it.

        `expected_sqrt_price_x96` is the pool price the caller previewed against;
        the call reverts if the price (not its square root) has since moved more
        than `max_slippage_bps`. An expected price of 0 skips the check.
        """
        with self._host.atomic("AlphixHook.add_rehypothecated_liquidity"), self._guard.hold():
            self._require_ledger_ready(shares, expected_sqrt_price_x96, max_slippage_bps)
            amounts = self.preview_add_rehypothecated_liquidity(shares)
            if self._shares.total_supply and not any(amounts):
                raise ZeroAmount("vault positions are empty; shares would be minted for nothing")

            for slot, amount in zip(SLOTS, amounts):
                if amount == 0:
                    continue
                currency = self._pool.currencies[slot]
                self._tokens.transfer(caller, self._address, currency, amount)
                self._yield_sources[slot].deposit(self._address, amount, self._address)

            self._shares.mint(caller, shares)
            logger.info("%s add %d shares for %s: amounts=%s", self._address, shares, caller, amounts)
            return amounts

    def remove_rehypothecated_liquidity(
        self,
        caller: Address,
        shares: Amount,
        expected_sqrt_price_x96: int = 0,
        max_slippage_bps: int = 0,
    ) -> Tuple[Amount, Amount]:
        """Burn `shares` from `caller` and send it the pro-rata vault assets.

        Same price guard as `add_rehypothecated_liquidity`.
        """
        with self._host.atomic("AlphixHook.remove_rehypothecated_liquidity"), self._guard.hold():
            self._require_ledger_ready(shares, expected_sqrt_price_x96, max_slippage_bps)
            owned = self._shares.balance_of(caller)
            if owned < shares:
                raise InsufficientBalance(f"{caller} holds {owned} shares, cannot remove {shares}")
            amounts = self.preview_remove_rehypothecated_liquidity(shares)
            self._shares.burn(caller, shares)

            for slot, amount in zip(SLOTS, amounts):
                if amount == 0:
                    continue
                self._yield_sources[slot].withdraw(self._address, amount, caller, self._address)

            logger.info("%s remove %d shares for %s: amounts=%s", self._address, shares, caller, amounts)
            return amounts

    # -- swap with JIT liquidity ---------------------------------------------

    def swap(
        self,
        caller: Address,
        zero_for_one: bool,
        amount_in: Amount,
        sqrt_price_limit_x96: Optional[int] = None,
    ) -> SwapResult:
        """Route a swap through the exchange, wrapped in JIT injection when possible."""
        with self._host.atomic("AlphixHook.swap"), self._guard.hold():
            try:
                plan = self._inject()
                result = self._pool.swap(caller, zero_for_one, amount_in, sqrt_price_limit_x96)
                if plan is not None:
                    self._reconcile(plan)
            finally:
                self._phase = JitPhase.IDLE

            rng = self._jit_range
            if rng is not None and self._pool.position(self._address, rng.tick_lower, rng.tick_upper).liquidity:
                raise InvariantViolation(["jit_position_outstanding"])
            return result

    def _skip_reason(self) -> Optional[SkipReason]:
        return entry_skip_reason(
            paused=self._pause.paused,
            initialized=self._initialized,
            source0_configured=self._yield_sources[0] is not None,
            source1_configured=self._yield_sources[1] is not None,
            rng=self._jit_range,
            current_tick=self._pool.tick,
        )

    def _inject(self) -> Optional[JitPlan]:
        """IDLE -> INJECTING: withdraw from the wrappers and add the temporary position."""
        reason = self._skip_reason()
        if reason is not None:
            logger.debug("%s JIT skipped: %s", self._address, reason.value)
            return None

        rng = self._jit_range
        available0, available1 = self.vault_positions()
        plan = plan_injection(self._pool.sqrt_price_x96, rng, available0, available1)
        if plan is None:
            logger.debug("%s JIT skipped: %s", self._address, SkipReason.NO_LIQUIDITY.value)
            return None

        self._phase = JitPhase.INJECTING
        for slot, amount in zip(SLOTS, (plan.amount0, plan.amount1)):
            if amount:
                self._yield_sources[slot].withdraw(self._address, amount, self._address, self._address)
        self._pool.modify_liquidity(self._address, rng.tick_lower, rng.tick_upper, plan.liquidity)
        logger.debug(
            "%s JIT injected L=%d (%d, %d)", self._address, plan.liquidity, plan.amount0, plan.amount1
        )
        return plan

    def _reconcile(self, plan: JitPlan) -> None:
        """INJECTING -> IDLE: remove the position and re-deposit every token the hook holds."""
        rng = self._jit_range
        removed = self._pool.modify_liquidity(self._address, rng.tick_lower, rng.tick_upper, -plan.liquidity)
        for slot in SLOTS:
            self._sweep(slot)
        self._phase = JitPhase.IDLE
        logger.debug(
            "%s JIT removed L=%d: amounts=(%d, %d) fees=(%d, %d)",
            self._address, plan.liquidity, removed.amount0, removed.amount1, removed.fees0, removed.fees1,
        )

    def _sweep(self, slot: int) -> Amount:
        """Deposit the hook's idle balance of a slot's currency; amounts worth no shares stay idle."""
        wrapper = self._yield_sources[slot]
        idle = self._tokens.balance_of(self._address, self._pool.currencies[slot])
        if wrapper is None or idle == 0:
            return 0
        if wrapper.preview_deposit(idle) == 0:
            logger.debug("%s leaving %d idle in slot %d", self._address, idle, slot)
            return 0
        return wrapper.deposit(self._address, idle, self._address)

    # -- guards --------------------------------------------------------------

    @staticmethod
    def _check_slot(slot: int) -> None:
        if slot not in SLOTS:
            raise InvalidParams(f"currency slot must be 0 or 1: {slot}")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotConfigured(f"{self._address} is not initialized")

    def _require_ledger_ready(self, shares: Amount, expected_sqrt_price_x96: int, max_slippage_bps: int) -> None:
        self._pause.require_not_paused()
        self._require_initialized()
        if shares <= 0:
            raise ZeroAmount("shares must be positive")
        for slot in SLOTS:
            if self._yield_sources[slot] is None:
                raise NotConfigured(f"no yield source for currency slot {slot}")
        current = self._pool.sqrt_price_x96
        if ledger.slippage_exceeded(current, expected_sqrt_price_x96, max_slippage_bps):
            raise SlippageExceeded(current, expected_sqrt_price_x96, max_slippage_bps)
