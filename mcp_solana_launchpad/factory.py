"""
Sale Factory

The factory mass-produces independent sale instances from its current template, funds
each one with its full hard-cap allocation and keeps a registry of every instance it has
created. Swapping the template only affects sales created afterwards.

Creation Process:
1. Validate the protocol fee rate against the configured cap (5% by default)
2. Build the sale configuration from caller parameters and factory defaults
3. Instantiate the current template under a fresh identity and register it
4. Pull the hard-cap allocation from the caller and forward it to the new sale
5. Run the sale's one-time initializer and emit a creation notification

The whole creation is atomic: any failure leaves no registration and no transfer behind.
"""
import threading
import time
from pathlib import Path
from typing import Any, List, Optional, Type, Union

from pydantic import ValidationError as SchemaValidationError
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad import config as launchpad_config
from mcp_solana_launchpad.assets import FungibleAsset, fetch_decimals
from mcp_solana_launchpad.dex import LiquidityVenue
from mcp_solana_launchpad.errors import AccessDeniedError, ValidationError
from mcp_solana_launchpad.registry import SaleRegistry
from mcp_solana_launchpad.sale import SaleInstance
from mcp_solana_launchpad.schemas import (
    SaleConfiguration,
    SaleCreated,
    SaleEvent,
    SaleMetadata,
    TemplateChanged,
    TokenInfo,
    WhitelistConfig,
)
from mcp_solana_launchpad.transaction import atomic

logger = get_logger(__name__)


class TemplateManager:
    """Holds the sale class new instances are created from."""

    def __init__(self, template: Type[SaleInstance] = SaleInstance):
        self.template = self._validate(template)

    @staticmethod
    def _validate(template: Any) -> Type[SaleInstance]:
        if template is None:
            raise ValidationError("Template cannot be empty")
        if not isinstance(template, type) or not issubclass(template, SaleInstance):
            raise ValidationError(f"Template must be a SaleInstance class, got {template!r}")
        return template

    def change(self, template: Type[SaleInstance]) -> Type[SaleInstance]:
        """Replaces the template and returns the previous one."""
        previous = self.template
        self.template = self._validate(template)
        return previous

    def instantiate(self, address: Pubkey, factory: Pubkey, native: FungibleAsset,
                    venue: LiquidityVenue, chain_id: int, lock=None) -> SaleInstance:
        return self.template(address, factory, native, venue, chain_id, lock=lock)


class Factory:
    """Creates, funds and tracks sale instances."""

    def __init__(
        self,
        owner: Pubkey,
        native: FungibleAsset,
        venue: LiquidityVenue,
        template: Type[SaleInstance] = SaleInstance,
        chain_id: int = launchpad_config.CHAIN_ID,
        max_fee_rate: int = launchpad_config.MAX_FEE_RATE,
        decay_rate: int = launchpad_config.DEFAULT_PRICE_DECAY_RATE,
        floor_price: int = launchpad_config.DEFAULT_FLOOR_PRICE,
        config_dir: Optional[Union[str, Path]] = None,
        address: Optional[Pubkey] = None,
    ):
        self.address = address or Keypair().pubkey()
        self.owner = owner
        self.native = native
        self.venue = venue
        self.chain_id = chain_id
        self.max_fee_rate = max_fee_rate
        self.decay_rate = decay_rate
        self.floor_price = floor_price
        self.config_dir = config_dir
        self.templates = TemplateManager(template)
        self.registry = SaleRegistry()
        self.events: List[SaleEvent] = []
        # Guards the shared settlement ledger and venue for this factory and every sale it spawns
        self.lock = threading.RLock()

    def snapshot(self) -> int:
        return len(self.events)

    def restore(self, snapshot: int) -> None:
        del self.events[snapshot:]

    def commit(self, snapshot: int) -> None:
        pass

    def _emit(self, event: SaleEvent) -> None:
        self.events.append(event)
        logger.info(f"Factory {self.address} emitted {type(event).__name__}: {event.model_dump(mode='json')}")

    def create_sale(
        self,
        caller: Pubkey,
        metadata: Union[SaleMetadata, dict],
        whitelist: WhitelistConfig,
        token_info: TokenInfo,
        fee_rate: int,
        fee_recipient: Pubkey,
        start_price: int,
        start_time: int,
        duration: int,
    ) -> Pubkey:
        """
        Creates, funds and initializes a new sale owned by ``caller``.

        The caller must have approved the factory for ``token_info.hard_cap`` units.

        Returns:
            The new sale's identity.

        Raises:
            ValidationError: If the fee rate is above the cap or the configuration is invalid.
            TransactionFailedError: If the allocation cannot be pulled from the caller.
        """
        if fee_rate > self.max_fee_rate:
            raise ValidationError(f"Fee rate {fee_rate} exceeds the maximum of {self.max_fee_rate}")
        if duration <= 0:
            raise ValidationError("Sale duration must be positive")

        asset = token_info.asset
        now = int(time.time())
        try:
            sale_config = SaleConfiguration(
                token=asset.address,
                decimals=fetch_decimals(asset),
                min_buy=token_info.min_buy,
                max_buy=token_info.max_buy,
                hard_cap=token_info.hard_cap,
                start_price=start_price,
                decay_rate=self.decay_rate,
                floor_price=self.floor_price,
                owner=caller,
                factory=self.address,
                start_time=start_time,
                end_time=start_time + duration,
                fee_rate=fee_rate,
                fee_recipient=fee_recipient,
                metadata=metadata,
            )
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid sale configuration: {e}") from e
        whitelist = whitelist.model_copy(update={"marker": now})

        with self.lock, atomic(self, self.registry, asset, operation="create_sale"):
            sale = self.templates.instantiate(Keypair().pubkey(), self.address, self.native,
                                              self.venue, self.chain_id, lock=self.lock)
            self.registry.add(sale)

            asset.transfer_from(self.address, caller, self.address, token_info.hard_cap)
            asset.transfer(self.address, sale.address, token_info.hard_cap)

            sale.initialize(self.address, sale_config, whitelist, asset)
            self._emit(SaleCreated(timestamp=now, sale=sale.address, owner=caller,
                                   token=asset.address, hard_cap=token_info.hard_cap))

        logger.info(f"Created sale {sale.address} ({type(sale).__name__}) for {asset.address}, "
                    f"owner={caller}, registry size={self.registry.count()}")
        if self.config_dir:
            self.registry.save_sale_config(sale, self.config_dir)
        return sale.address

    def change_template(self, caller: Pubkey, template: Type[SaleInstance]) -> None:
        """Switches the template used for future sales. Existing sales are unaffected."""
        if caller != self.owner:
            raise AccessDeniedError(f"{caller} is not the factory owner")
        with self.lock:
            previous = self.templates.change(template)
            self._emit(TemplateChanged(timestamp=int(time.time()), old_template=previous.__name__,
                                       new_template=template.__name__))

    @property
    def template(self) -> Type[SaleInstance]:
        return self.templates.template

    # --- Registry queries ---

    def is_registered(self, sale_id: Pubkey) -> bool:
        return self.registry.is_registered(sale_id)

    def count(self) -> int:
        return self.registry.count()

    def entry_at(self, index: int) -> Pubkey:
        return self.registry.entry_at(index)

    def get_sale(self, sale_id: Pubkey) -> Optional[SaleInstance]:
        return self.registry.get(sale_id)
