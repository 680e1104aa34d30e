"""
Launchpad Sale Instance

This module implements one whitelisted, time-boxed sale of a fungible asset. A sale is
spawned and funded by the factory, sells units at the decaying demand price to
whitelisted wallets, and then either hands its funds to a liquidity venue (starting the
linear vesting of purchased units) or is terminated so participants can take refunds.

Lifecycle:
1. initialize: the factory stores the configuration (once per instance)
2. buy: whitelisted wallets purchase units while start <= now < end
3. finalize: the owner seeds a pool with the unsold units and raised funds and starts vesting
4. claim: participants withdraw the linearly vested part of their units
5. terminate / withdraw_refund: abort path that returns invested funds after the grace period

Every operation runs atomically: it validates, commits its ledger changes, and only then
calls out to the asset ledgers and the venue. Any failure rolls the whole operation back.
"""
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as SchemaValidationError
from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad import pricing
from mcp_solana_launchpad.assets import FungibleAsset
from mcp_solana_launchpad.config import CHAIN_ID, GRACE_PERIOD_SECONDS
from mcp_solana_launchpad.dex import LiquidityVenue
from mcp_solana_launchpad.errors import (
    AccessDeniedError,
    CapacityExceededError,
    ExternalSanityFailureError,
    StateConflictError,
    TimingViolationError,
    ValidationError,
    WhitelistRejectedError,
)
from mcp_solana_launchpad.schemas import (
    Claim,
    PriceUpdated,
    Purchase,
    SaleConfiguration,
    SaleEvent,
    SaleMetadata,
    SaleState,
    UserRecord,
    VestingStarted,
    WhitelistConfig,
    WhitelistUpdated,
)
from mcp_solana_launchpad.transaction import atomic
from mcp_solana_launchpad.vesting import claimable_amount
from mcp_solana_launchpad.whitelist import WhitelistVerifier

logger = get_logger(__name__)


def _now() -> int:
    return int(time.time())


class SaleInstance:
    """One sale: pricing, purchases, vesting, termination and liquidity finalization."""

    grace_period = GRACE_PERIOD_SECONDS

    def __init__(
        self,
        address: Pubkey,
        factory: Pubkey,
        native: FungibleAsset,
        venue: LiquidityVenue,
        chain_id: int = CHAIN_ID,
        lock=None,
    ):
        self.address = address
        self.factory = factory
        self.native = native
        self.venue = venue
        self.chain_id = chain_id

        self.initialized = False
        self.asset: Optional[FungibleAsset] = None
        self.config: Optional[SaleConfiguration] = None
        self.state = SaleState()
        self.whitelist = WhitelistConfig()
        self.users: Dict[Pubkey, UserRecord] = {}
        self.events: List[SaleEvent] = []
        self.pool: Optional[Pubkey] = None
        # Shared with every sale touching the same settlement ledger and venue
        self._lock = lock if lock is not None else threading.RLock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"

    # --- Journaling ---

    def snapshot(self):
        return (
            self.initialized,
            self.asset,
            self.config.model_copy() if self.config else None,
            self.state.model_copy(),
            self.whitelist.model_copy(),
            {account: record.model_copy() for account, record in self.users.items()},
            len(self.events),
            self.pool,
        )

    def restore(self, snapshot) -> None:
        (self.initialized, self.asset, self.config, self.state,
         self.whitelist, self.users, events, self.pool) = snapshot
        del self.events[events:]

    def commit(self, snapshot) -> None:
        pass

    @contextmanager
    def _operation(self, name: str):
        with self._lock, atomic(self, self.asset, self.native, self.venue,
                                operation=f"{name} on sale {self.address}"):
            yield

    # --- Guards ---

    def _require_initialized(self) -> SaleConfiguration:
        if not self.initialized:
            raise StateConflictError(f"Sale {self.address} is not initialized")
        return self.config

    def _only_owner(self, caller: Pubkey) -> SaleConfiguration:
        config = self._require_initialized()
        if caller != config.owner:
            raise AccessDeniedError(f"{caller} is not the owner of sale {self.address}")
        return config

    def _emit(self, event: SaleEvent) -> None:
        self.events.append(event)
        logger.info(f"Sale {self.address} emitted {type(event).__name__}: {event.model_dump(mode='json')}")

    # --- Initialization ---

    def initialize(
        self,
        caller: Pubkey,
        config: SaleConfiguration,
        whitelist: WhitelistConfig,
        asset: FungibleAsset,
    ) -> None:
        """Stores the sale configuration. Only the spawning factory may call it, only once."""
        with self._operation("initialize"):
            if self.initialized:
                raise StateConflictError(f"Sale {self.address} is already initialized")
            if caller != self.factory:
                raise AccessDeniedError("Only the factory can initialize a sale")
            if config.factory != self.factory:
                raise ValidationError("Configuration names a different factory")
            if config.token != asset.address:
                raise ValidationError("Configuration token does not match the supplied asset")

            self.initialized = True
            self.config = config
            self.whitelist = whitelist
            self.asset = asset
            logger.info(f"Initialized sale {self.address} for {config.token}: hard_cap={config.hard_cap}, "
                        f"window={config.start_time}-{config.end_time}")

    # --- Pricing ---

    def current_price(self, now: Optional[int] = None) -> int:
        config = self._require_initialized()
        return pricing.current_price(
            self.state.total_sold,
            config.hard_cap,
            config.start_price,
            config.decay_rate,
            config.floor_price,
            config.start_time,
            config.end_time,
            _now() if now is None else now,
        )

    def native_to_tokens(self, amount: int) -> int:
        return pricing.native_to_tokens(amount, self.current_price(), self._require_initialized().decimals)

    def tokens_to_native(self, amount: int) -> int:
        return pricing.tokens_to_native(amount, self.current_price(), self._require_initialized().decimals)

    def duration(self) -> int:
        config = self._require_initialized()
        return config.end_time - config.start_time

    # --- Purchases ---

    def buy(self, caller: Pubkey, proof: Sequence[bytes], payment: int) -> int:
        """
        Buys units with ``payment`` settlement base units.

        The protocol fee is taken from the payment and the rest is converted at the current
        price. A purchase that exhausts the hard cap closes the sale immediately.

        Returns:
            The units credited to the caller.
        """
        with self._operation("buy"):
            config = self._require_initialized()
            state = self.state
            now = _now()

            if now < config.start_time:
                raise TimingViolationError("Sale has not started")
            if now >= config.end_time:
                raise TimingViolationError("Sale has ended")
            if not WhitelistVerifier(self.address, self.chain_id, self.whitelist).verify(caller, proof):
                raise WhitelistRejectedError(f"{caller} is not whitelisted for sale {self.address}")
            if payment <= 0:
                raise ValidationError("Payment must be positive")

            fee = pricing.protocol_fee(payment, config.fee_rate)
            net = payment - fee
            price = self.current_price(now)
            units = pricing.native_to_tokens(net, price, config.decimals)

            if units == 0 or units < config.min_buy:
                raise ValidationError(f"Purchase of {units} units is below the minimum of {config.min_buy}")
            if units > config.max_buy:
                raise ValidationError(f"Purchase of {units} units is above the maximum of {config.max_buy}")
            if state.total_sold + units > config.hard_cap:
                raise CapacityExceededError(
                    f"Purchase of {units} units exceeds the remaining {config.hard_cap - state.total_sold}"
                )

            state.total_sold += units
            state.accumulated_fees += fee
            if state.total_sold == config.hard_cap:
                config.end_time = now
                logger.info(f"Sale {self.address} sold out, closed at {now}")

            record = self.users.setdefault(caller, UserRecord())
            record.purchased += units
            record.invested += payment

            self.native.transfer(caller, self.address, payment)
            self._emit(Purchase(timestamp=now, token=config.token, buyer=caller, amount=units))
            logger.info(f"{caller} bought {units} units of {config.token} for {payment} "
                        f"(fee={fee}, price={price})")
            return units

    # --- Vesting ---

    def claimable(self, account: Pubkey, now: Optional[int] = None) -> int:
        self._require_initialized()
        record = self.users.get(account) or UserRecord()
        return claimable_amount(
            record,
            self.state.vesting_start_time,
            self.state.vesting_duration,
            _now() if now is None else now,
        )

    def claim(self, caller: Pubkey) -> int:
        """Transfers the caller's currently vested units out of the sale."""
        with self._operation("claim"):
            config = self._require_initialized()
            now = _now()

            if now < config.end_time:
                raise TimingViolationError("Sale has not ended")
            if self.state.vesting_start_time == 0:
                raise TimingViolationError("Vesting has not started")

            record = self.users.get(caller)
            if record is None:
                raise ValidationError(f"{caller} has no purchases in sale {self.address}")
            amount = self.claimable(caller, now)
            if amount == 0:
                raise ValidationError("Nothing to claim yet")
            if record.claimed + amount > record.purchased:
                raise StateConflictError("Claim would exceed purchased units")

            record.claimed += amount
            self.asset.transfer(self.address, caller, amount)
            self._emit(Claim(timestamp=now, token=config.token, account=caller, amount=amount))
            return amount

    # --- Termination ---

    def terminate(self, caller: Pubkey) -> None:
        with self._operation("terminate"):
            config = self._only_owner(caller)
            now = _now()

            if now < config.end_time:
                raise TimingViolationError("Sale has not ended")
            if self.state.terminated:
                raise StateConflictError("Sale is already terminated")
            # Deployed guard: passes only once vesting has started, despite its message
            if self.state.vesting_start_time == 0:
                raise TimingViolationError("Vesting already started")

            self.state.terminated = True
            logger.info(f"Sale {self.address} terminated at {now}")

    def withdraw_refund(self, caller: Pubkey) -> int:
        """Returns everything the caller invested once a terminated sale's grace period is over."""
        with self._operation("withdraw_refund"):
            config = self._require_initialized()
            now = _now()

            if not self.state.terminated:
                raise StateConflictError("Sale is not terminated")
            if now < config.end_time + self.grace_period:
                raise StateConflictError(
                    f"Refunds open at {config.end_time + self.grace_period}, current time {now}"
                )

            record = self.users.get(caller)
            if record is None or record.invested == 0:
                raise ValidationError(f"Nothing to refund for {caller}")

            amount = record.invested
            record.invested = 0
            self.native.transfer(self.address, caller, amount)
            logger.info(f"Refunded {amount} to {caller} from sale {self.address}")
            return amount

    # --- Liquidity ---

    def finalize(self, caller: Pubkey, vesting_duration: int, deadline: int) -> Pubkey:
        """
        Seeds a liquidity pool with the unsold units and raised funds and starts vesting.

        The pool must not price the asset below the sale's final price.

        Returns:
            The pool identity.
        """
        with self._operation("finalize"):
            config = self._only_owner(caller)
            state = self.state
            now = _now()

            if state.terminated:
                raise StateConflictError("Sale is terminated")
            if now < config.end_time:
                raise TimingViolationError("Sale has not ended")
            if now > config.end_time + self.grace_period:
                raise TimingViolationError("Grace period for finalization has elapsed")
            if state.vesting_duration != 0:
                raise StateConflictError("Vesting already started")
            if vesting_duration <= 0:
                raise ValidationError("Vesting duration must be positive")

            state.vesting_duration = vesting_duration
            state.vesting_start_time = now

            final_price = self.current_price(now)
            token_amount = config.hard_cap - state.total_sold
            native_amount = self.native.balance_of(self.address) - state.accumulated_fees

            self.asset.increase_allowance(self.address, self.venue.address, token_amount)
            self.native.increase_allowance(self.address, self.venue.address, native_amount)
            if self.venue.get_pair(config.token) is None:
                self.venue.create_pair(config.token)
            pool, liquidity = self.venue.add_liquidity(
                self.address, self.asset, token_amount, native_amount, config.owner, deadline, now
            )

            reserve_token, reserve_native = self.venue.get_reserves(pool)
            # Quote for a single base unit, compared per base unit
            pool_unit_price = self.venue.get_amount_out(1, reserve_token, reserve_native)
            sale_unit_price = final_price // 10**config.decimals
            if pool_unit_price < sale_unit_price:
                raise ExternalSanityFailureError(
                    f"Pool price {pool_unit_price} is below the sale price {sale_unit_price}"
                )

            self.pool = pool
            self._emit(VestingStarted(timestamp=now, pool=pool, start_time=now, duration=vesting_duration))
            logger.info(f"Sale {self.address} finalized: pool={pool}, liquidity={liquidity}, "
                        f"tokens={token_amount}, native={native_amount}")
            return pool

    # --- Owner administration ---

    def set_price(self, caller: Pubkey, new_price: int) -> None:
        with self._operation("set_price"):
            config = self._only_owner(caller)
            now = _now()
            if now >= config.start_time:
                raise TimingViolationError("Sale has already started")
            if new_price <= 0:
                raise ValidationError("Price must be positive")

            old_price = config.start_price
            config.start_price = new_price
            self._emit(PriceUpdated(timestamp=now, old_price=old_price, new_price=new_price))

    def set_whitelist_root(self, caller: Pubkey, root: bytes, min_balance: Optional[int] = None) -> None:
        with self._operation("set_whitelist_root"):
            self._only_owner(caller)
            if len(root) != 32:
                raise ValidationError("Whitelist root must be 32 bytes")
            if min_balance is not None and min_balance < 0:
                raise ValidationError("Minimum balance cannot be negative")

            now = _now()
            self.whitelist = WhitelistConfig(
                root=root,
                marker=now,
                min_balance=self.whitelist.min_balance if min_balance is None else min_balance,
            )
            self._emit(WhitelistUpdated(timestamp=now, root=root, marker=now))

    def increase_hard_cap(self, caller: Pubkey, amount: int) -> None:
        """Raises the hard cap, pulling the extra allocation from the owner."""
        with self._operation("increase_hard_cap"):
            config = self._only_owner(caller)
            if amount <= 0:
                raise ValidationError("Hard cap increase must be positive")
            if _now() >= config.end_time:
                raise TimingViolationError("Sale has ended")

            config.hard_cap += amount
            self.asset.transfer_from(self.address, caller, self.address, amount)
            logger.info(f"Sale {self.address} hard cap raised by {amount} to {config.hard_cap}")

    def pull_fees(self, caller: Pubkey) -> int:
        """Sends the accumulated protocol fees to the fee recipient."""
        with self._operation("pull_fees"):
            config = self._only_owner(caller)
            fees = self.state.accumulated_fees
            if fees == 0:
                raise ValidationError("No fees accumulated")

            self.state.accumulated_fees = 0
            self.native.transfer(self.address, config.fee_recipient, fees)
            logger.info(f"Pulled {fees} in fees from sale {self.address} to {config.fee_recipient}")
            return fees

    def set_metadata(self, caller: Pubkey, metadata: Any) -> None:
        with self._operation("set_metadata"):
            config = self._only_owner(caller)
            if not isinstance(metadata, SaleMetadata):
                try:
                    metadata = SaleMetadata.model_validate(metadata)
                except SchemaValidationError as e:
                    raise ValidationError(f"Invalid sale metadata: {e}") from e
            config.metadata = metadata

    # --- Views ---

    def user(self, account: Pubkey) -> UserRecord:
        return (self.users.get(account) or UserRecord()).model_copy()

    def info(self) -> Dict[str, Any]:
        config = self._require_initialized()
        return {
            "address": str(self.address),
            "template": type(self).__name__,
            "config": config.model_dump(mode="json"),
            "state": self.state.model_dump(mode="json"),
            "whitelist": self.whitelist.model_dump(mode="json"),
            "current_price": self.current_price(),
            "duration": self.duration(),
            "participants": len(self.users),
            "pool": str(self.pool) if self.pool else None,
        }
