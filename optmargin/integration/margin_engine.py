"""
Margin engine orchestrator (imperative shell).

`MarginEngine` sequences batches of account actions over the pure kernel
(`optmargin.core.margin`), moves custody balances, and enforces the one
post-batch health check.

Batch flow (`execute`):
1. non-reentrancy guard over the entry point,
2. access check (owner, or a delegate with executions left),
3. stage the account and snapshot custody,
4. per action: kernel update on the staged account first, then the custody
   movement,
5. one health check with current prices,
6. commit once; on any error custody is restored and the stored account is
   left untouched.

Custody is two `BalanceTable`s: collateral keyed by asset tag, option tokens
keyed by position key. The engine's own custody holder is `ENGINE_HOLDER`.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from loguru import logger

from ..core import position_key
from ..core.margin import ledger
from ..core.margin.engine import step_or_raise
from ..core.margin.errors import (
    AccountIsHealthy,
    AccountNotEmpty,
    AccountUnderwater,
    InvalidTokenId,
    NoAccess,
    NotExpired,
    ReentrantCall,
    UnknownProduct,
)
from ..core.margin.math import get_min_collateral as _min_collateral
from ..core.margin.math import get_net_payout
from ..core.margin.math import get_payout as _holder_payout
from ..core.margin.types import Account, Action, ActionParams, Effect, MarginAccountDetail
from ..core.oracle import PriceOracle, StaticPriceOracle
from ..core.position_key import PositionKind
from ..core.product_config import ProductConfigStore
from ..state.accounts import AccessTable, AccountTable
from ..state.balances import ENGINE_HOLDER, BalanceTable
from ..state.canonical import state_digest as _state_digest
from ..state.nonces import NonceTable
from ..state.products import ProductRegistry
from . import operations as ops
from .operations import ActionArgs
from .signatures import parse_signed_batch, verify_signed_batch

# hook(ledger_name, src, dst, asset, amount); `src`/`dst` is "" for mint/burn.
CustodyHook = Callable[[str, str, str, int, int], None]


@dataclass(frozen=True)
class EngineConfig:
    max_price_staleness: int = 3600
    chain_id: str = "optmargin-local"
    max_actions: int = 64

    def __post_init__(self) -> None:
        if self.max_price_staleness <= 0:
            raise ValueError("max_price_staleness must be positive")
        if not self.chain_id:
            raise ValueError("chain_id must be non-empty")
        if self.max_actions <= 0:
            raise ValueError("max_actions must be positive")


@dataclass(frozen=True)
class _BatchContext:
    account_id: str
    caller: str
    now: int


def _error_code(exc: Exception) -> str:
    return getattr(exc, "code", type(exc).__name__)


class MarginEngine:
    """Owns account state, access, custody and nonces for one deployment."""

    def __init__(
        self,
        *,
        registry: ProductRegistry,
        config_store: ProductConfigStore,
        oracle: Optional[PriceOracle] = None,
        config: Optional[EngineConfig] = None,
        custody_hook: Optional[CustodyHook] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry
        self.config_store = config_store
        self.oracle: PriceOracle = (
            oracle if oracle is not None
            else StaticPriceOracle(max_staleness_seconds=self.config.max_price_staleness)
        )
        self.accounts = AccountTable()
        self.access = AccessTable()
        self.collateral = BalanceTable()
        self.options = BalanceTable()
        self.nonces = NonceTable()
        self.custody_hook = custody_hook
        self._entered = False

        self._handlers: Dict[Action, Callable[[_BatchContext, Account, Any], Account]] = {
            Action.ADD_COLLATERAL: self._handle_add_collateral,
            Action.REMOVE_COLLATERAL: self._handle_remove_collateral,
            Action.MINT_SHORT: self._handle_mint_short,
            Action.BURN_SHORT: self._handle_burn_short,
            Action.MERGE: self._handle_merge,
            Action.SPLIT: self._handle_split,
            Action.SETTLE: self._handle_settle,
        }

    # ------------------------------------------------------------------
    # Guard / custody helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._entered:
            raise ReentrantCall("margin engine entry point re-entered")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    @contextmanager
    def _custody_transaction(self) -> Iterator[None]:
        collateral_snap = self.collateral.snapshot()
        options_snap = self.options.snapshot()
        try:
            yield
        except Exception:
            self.collateral.restore(collateral_snap)
            self.options.restore(options_snap)
            raise

    def _notify(self, ledger_name: str, src: str, dst: str, asset: int, amount: int) -> None:
        if self.custody_hook is not None:
            self.custody_hook(ledger_name, src, dst, asset, amount)

    def _move_collateral(self, src: str, dst: str, asset: int, amount: int) -> None:
        self.collateral.transfer(src, dst, asset, amount)
        self._notify("collateral", src, dst, asset, amount)

    def _mint_tokens(self, recipient: str, key: int, amount: int) -> None:
        self.options.add(recipient, key, amount)
        self._notify("options", "", recipient, key, amount)

    def _burn_tokens(self, holder: str, key: int, amount: int) -> None:
        self.options.subtract(holder, key, amount)
        self._notify("options", holder, "", key, amount)

    def fund(self, holder: str, asset: int, amount: int) -> None:
        """Credit an external collateral balance (deposit bridge / tests)."""
        with self._non_reentrant():
            self.registry.asset(asset)
            self.collateral.add(holder, asset, amount)

    # ------------------------------------------------------------------
    # Pricing / health
    # ------------------------------------------------------------------

    def _spot_prices(self, product_id: int, now: int) -> tuple[int, int]:
        product = position_key.decode_product(product_id)
        spot = self.oracle.get_spot_price(product.underlying, product.strike, now)
        collateral_price = self.oracle.get_spot_price(product.collateral, product.strike, now)
        return spot, collateral_price

    def _required_collateral(self, account: Account, now: int) -> int:
        if not account.has_short:
            return 0
        detail = ledger.get_account_detail(account)
        if now >= detail.expiry:
            # Expired series owe their realized payout; needs the expiry price.
            owed = self._writer_payout(account.short_call_key, account.short_call_amount)
            owed += self._writer_payout(account.short_put_key, account.short_put_amount)
            return max(owed, 0)
        params = self.config_store.get(detail.product_id)
        spot, collateral_price = self._spot_prices(detail.product_id, now)
        return _min_collateral(detail, spot, collateral_price, params, now=now)

    def _assert_healthy(self, account: Account, now: int) -> None:
        required = self._required_collateral(account, now)
        if account.collateral_amount < required:
            raise AccountUnderwater(f"collateral {account.collateral_amount} < required {required}")

    def get_min_collateral(self, account_id: str, *, now: int) -> int:
        return self._required_collateral(self.accounts.get(account_id), now)

    def is_account_healthy(self, account_id: str, *, now: int) -> bool:
        account = self.accounts.get(account_id)
        return account.collateral_amount >= self._required_collateral(account, now)

    def get_account(self, account_id: str) -> Account:
        return self.accounts.get(account_id)

    def get_account_detail(self, account_id: str) -> MarginAccountDetail:
        return ledger.get_account_detail(self.accounts.get(account_id))

    def state_digest(self) -> str:
        return _state_digest(
            self.accounts.to_json_dict(),
            collateral=self.collateral.sorted_items(),
            options=self.options.sorted_items(),
        )

    def _settlement_prices(self, product_id: int, expiry: int) -> tuple[int, int]:
        product = position_key.decode_product(product_id)
        expiry_price = self.oracle.get_price_at_expiry(product.underlying, product.strike, expiry)
        collateral_price = self.oracle.get_price_at_expiry(product.collateral, product.strike, expiry)
        return expiry_price, collateral_price

    def _writer_payout(self, key: int, amount: int) -> int:
        if key == 0:
            return 0
        pk = position_key.decode(key)
        expiry_price, collateral_price = self._settlement_prices(pk.product_id, pk.expiry)
        return get_net_payout(pk, amount, expiry_price, collateral_price)

    def get_payout(self, key: int, amount: int) -> tuple[int, int]:
        """Return `(collateral_asset, payout)` for redeeming `amount` long tokens."""
        pk = position_key.decode(key)
        expiry_price, collateral_price = self._settlement_prices(pk.product_id, pk.expiry)
        payout = _holder_payout(pk, amount, expiry_price, collateral_price)
        return position_key.collateral_of(pk.product_id), payout

    # ------------------------------------------------------------------
    # Action handlers (payload decoded here, kernel first, custody second)
    # ------------------------------------------------------------------

    def _require_self(self, ctx: _BatchContext, holder: str) -> None:
        if holder != ctx.caller:
            raise NoAccess(f"cannot pull assets from {holder!r} as {ctx.caller!r}")

    def _handle_add_collateral(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_add_collateral(payload)
        self._require_self(ctx, args.from_)
        self.registry.asset(args.collateral_id)
        result = step_or_raise(account, ActionParams(
            action=Action.ADD_COLLATERAL, amount=args.amount, collateral_id=args.collateral_id,
        ))
        self._move_collateral(args.from_, ENGINE_HOLDER, args.collateral_id, args.amount)
        return result.state

    def _handle_remove_collateral(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_remove_collateral(payload)
        result = step_or_raise(account, ActionParams(
            action=Action.REMOVE_COLLATERAL, amount=args.amount, collateral_id=args.collateral_id,
        ))
        self._move_collateral(ENGINE_HOLDER, args.recipient, args.collateral_id, args.amount)
        return result.state

    def _handle_mint_short(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_mint_short(payload)
        pk = ledger.decode_or_reject(args.token_id)
        self.registry.resolve(pk.product_id)
        if not self.config_store.has(pk.product_id):
            raise UnknownProduct(f"no margin config for product {pk.product_id:#x}")
        if pk.expiry <= ctx.now:
            raise InvalidTokenId(f"option expired at {pk.expiry}")
        result = step_or_raise(account, ActionParams(
            action=Action.MINT_SHORT, amount=args.amount, key=args.token_id,
        ))
        effect: Effect = result.effect
        self._mint_tokens(args.recipient, effect.mint_key, effect.mint_amount)
        return result.state

    def _handle_burn_short(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_burn_short(payload)
        self._require_self(ctx, args.from_)
        result = step_or_raise(account, ActionParams(
            action=Action.BURN_SHORT, amount=args.amount, key=args.token_id,
        ))
        self._burn_tokens(args.from_, result.effect.burn_key, result.effect.burn_amount)
        return result.state

    def _handle_merge(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_merge(payload)
        self._require_self(ctx, args.from_)
        result = step_or_raise(account, ActionParams(
            action=Action.MERGE, amount=args.amount, key=args.token_id,
        ))
        self._burn_tokens(args.from_, result.effect.burn_key, result.effect.burn_amount)
        return result.state

    def _handle_split(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        args = ops.decode_split(payload)
        result = step_or_raise(account, ActionParams(action=Action.SPLIT, kind=args.kind))
        self._mint_tokens(args.recipient, result.effect.mint_key, result.effect.mint_amount)
        return result.state

    def _handle_settle(self, ctx: _BatchContext, account: Account, payload: Any) -> Account:
        ops.decode_settle(payload)
        detail = ledger.get_account_detail(account)
        if account.has_short and detail.expiry > ctx.now:
            raise NotExpired(f"account series expires at {detail.expiry}, now {ctx.now}")
        call_payout = self._writer_payout(account.short_call_key, account.short_call_amount)
        put_payout = self._writer_payout(account.short_put_key, account.short_put_amount)
        result = step_or_raise(account, ActionParams(
            action=Action.SETTLE, call_payout=call_payout, put_payout=put_payout,
        ))
        logger.info(
            f"settlement applied: account={ctx.account_id} call_payout={call_payout} "
            f"put_payout={put_payout} collateral_after={result.effect.collateral_after}"
        )
        return result.state

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    def execute(self, account_id: str, actions: Sequence[ActionArgs], *, caller: str, now: int) -> Account:
        """Apply `actions` to `account_id` atomically. Returns the committed account."""
        with self._non_reentrant():
            if not self.access.can_execute(account_id, caller):
                raise NoAccess(f"{caller!r} may not operate account {account_id!r}")
            ctx = _BatchContext(account_id=account_id, caller=caller, now=now)
            staged = self.accounts.get(account_id)
            try:
                with self._custody_transaction():
                    for i, args in enumerate(actions):
                        handler = self._handlers[args.action]
                        staged = handler(ctx, staged, args.payload)
                        logger.debug(f"action {i} applied: account={account_id} action={args.action.value}")
                    self._assert_healthy(staged, now)
                    self.access.consume(account_id, caller)
            except Exception as exc:
                logger.warning(
                    f"batch rejected: account={account_id} caller={caller} code={_error_code(exc)} ({exc})"
                )
                raise
            self.accounts.put(account_id, staged)
            logger.info(
                f"batch committed: account={account_id} actions={len(actions)} "
                f"collateral={staged.collateral_amount} call={staged.short_call_amount} "
                f"put={staged.short_put_amount}"
            )
            return staged

    def execute_signed(self, data: Any, *, now: int) -> Account:
        """Verify a signed batch envelope, consume its nonce, and execute it as the signer."""
        batch = parse_signed_batch(data, max_actions=self.config.max_actions)
        signer = verify_signed_batch(batch, chain_id=self.config.chain_id, nonces=self.nonces)
        return self.execute(batch.account_id, batch.actions, caller=signer, now=now)

    # Single-action wrappers -------------------------------------------

    def increase_collateral(
        self, account_id: str, *, caller: str, collateral_id: int, amount: int, now: int,
        from_: Optional[str] = None,
    ) -> Account:
        payload = {"from": from_ or caller, "collateral_id": collateral_id, "amount": amount}
        return self.execute(account_id, [ActionArgs(Action.ADD_COLLATERAL, payload)], caller=caller, now=now)

    def decrease_collateral(
        self, account_id: str, *, caller: str, collateral_id: int, amount: int, now: int,
        recipient: Optional[str] = None,
    ) -> Account:
        payload = {"collateral_id": collateral_id, "amount": amount, "recipient": recipient or caller}
        return self.execute(account_id, [ActionArgs(Action.REMOVE_COLLATERAL, payload)], caller=caller, now=now)

    def increase_debt(
        self, account_id: str, *, caller: str, token_id: int, amount: int, now: int,
        recipient: Optional[str] = None,
    ) -> Account:
        payload = {"token_id": token_id, "amount": amount, "recipient": recipient or caller}
        return self.execute(account_id, [ActionArgs(Action.MINT_SHORT, payload)], caller=caller, now=now)

    def decrease_debt(
        self, account_id: str, *, caller: str, token_id: int, amount: int, now: int,
        from_: Optional[str] = None,
    ) -> Account:
        payload = {"token_id": token_id, "amount": amount, "from": from_ or caller}
        return self.execute(account_id, [ActionArgs(Action.BURN_SHORT, payload)], caller=caller, now=now)

    def merge(
        self, account_id: str, *, caller: str, token_id: int, amount: int, now: int,
        from_: Optional[str] = None,
    ) -> Account:
        payload = {"token_id": token_id, "amount": amount, "from": from_ or caller}
        return self.execute(account_id, [ActionArgs(Action.MERGE, payload)], caller=caller, now=now)

    def split(
        self, account_id: str, *, caller: str, kind: PositionKind, now: int,
        recipient: Optional[str] = None,
    ) -> Account:
        payload = {"kind": kind, "recipient": recipient or caller}
        return self.execute(account_id, [ActionArgs(Action.SPLIT, payload)], caller=caller, now=now)

    def settle_at_expiry(self, account_id: str, *, caller: str, now: int) -> Account:
        return self.execute(account_id, [ActionArgs(Action.SETTLE, {})], caller=caller, now=now)

    # ------------------------------------------------------------------
    # Holder / third-party entry points
    # ------------------------------------------------------------------

    def settle_option(self, holder: str, key: int, amount: int, *, now: int) -> int:
        """Redeem `amount` long tokens after expiry. Returns the collateral paid out."""
        with self._non_reentrant():
            pk = ledger.decode_or_reject(key)
            if pk.expiry > now:
                raise NotExpired(f"option expires at {pk.expiry}, now {now}")
            asset, payout = self.get_payout(key, amount)
            with self._custody_transaction():
                self._burn_tokens(holder, key, amount)
                if payout > 0:
                    self._move_collateral(ENGINE_HOLDER, holder, asset, payout)
            logger.info(f"option settled: holder={holder} key={key:#x} amount={amount} payout={payout}")
            return payout

    def liquidate(
        self, account_id: str, *, liquidator: str, call_amount: int, put_amount: int, now: int,
    ) -> int:
        """Repay shorts of an unhealthy account and take the proportional collateral."""
        with self._non_reentrant():
            account = self.accounts.get(account_id)
            if account.collateral_amount >= self._required_collateral(account, now):
                raise AccountIsHealthy(f"account {account_id!r} is healthy")
            new_account, released = ledger.liquidate(account, call_amount, put_amount)
            asset = account.collateral_id
            with self._custody_transaction():
                if call_amount > 0:
                    self._burn_tokens(liquidator, account.short_call_key, call_amount)
                if put_amount > 0:
                    self._burn_tokens(liquidator, account.short_put_key, put_amount)
                if released > 0:
                    self._move_collateral(ENGINE_HOLDER, liquidator, asset, released)
            self.accounts.put(account_id, new_account)
            logger.info(
                f"account liquidated: account={account_id} liquidator={liquidator} "
                f"call={call_amount} put={put_amount} released={released}"
            )
            return released

    def transfer_account(self, from_id: str, to_id: str, *, caller: str) -> None:
        """Move a whole account to an empty account owned by the same caller."""
        with self._non_reentrant():
            if self.access.owner_of(from_id) != caller:
                raise NoAccess(f"{caller!r} does not own account {from_id!r}")
            target_owner = self.access.owner_of(to_id)
            if target_owner is not None and target_owner != caller:
                raise NoAccess(f"{caller!r} does not own account {to_id!r}")
            if from_id == to_id or not self.accounts.get(to_id).is_empty:
                raise AccountNotEmpty(f"target account {to_id!r} is not empty")
            if target_owner is None:
                self.access.open(to_id, caller)
            self.accounts.put(to_id, self.accounts.get(from_id))
            self.accounts.put(from_id, ledger.remove_all(self.accounts.get(from_id)))
            logger.info(f"account transferred: {from_id} -> {to_id} by {caller}")

    def set_account_access(self, account_id: str, *, caller: str, operator: str, executions: int) -> None:
        with self._non_reentrant():
            self.access.set_access(account_id, caller, operator, executions)
            logger.info(f"account access set: account={account_id} operator={operator} executions={executions}")
