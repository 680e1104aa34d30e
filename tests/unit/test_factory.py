import json
from unittest.mock import patch

import pytest
from solders.keypair import Keypair

from mcp_solana_launchpad.assets import InMemoryAsset
from mcp_solana_launchpad.errors import (
    AccessDeniedError,
    StateConflictError,
    TransactionFailedError,
    ValidationError,
)
from mcp_solana_launchpad.factory import Factory, TemplateManager
from mcp_solana_launchpad.sale import SaleInstance
from mcp_solana_launchpad.schemas import SaleCreated, TemplateChanged, TokenInfo, WhitelistConfig

from conftest import DAY, DURATION, METADATA, START, START_PRICE, UNIT

HARD_CAP = 1000 * UNIT
FIVE_PERCENT = 5 * 10**16


class ExtendedGraceSale(SaleInstance):
    grace_period = 14 * DAY


class BrokenDecimalsAsset(InMemoryAsset):
    def decimals(self) -> int:
        raise RuntimeError("decimals() reverted")


def create(factory, owner, asset, fee_rate=0, fee_recipient=None, metadata=METADATA, duration=DURATION):
    with patch("time.time", return_value=START - 3600):
        return factory.create_sale(
            owner,
            metadata,
            WhitelistConfig(),
            TokenInfo(asset=asset, hard_cap=HARD_CAP, min_buy=UNIT, max_buy=500 * UNIT),
            fee_rate,
            fee_recipient or Keypair().pubkey(),
            START_PRICE,
            START,
            duration,
        )


@pytest.fixture
def funded_owner(owner, token, factory):
    token.mint(owner, 3 * HARD_CAP)
    token.approve(owner, factory.address, 3 * HARD_CAP)
    return owner


def test_create_sale_registers_and_funds_instance(factory, funded_owner, token):
    sale_id = create(factory, funded_owner, token, fee_rate=FIVE_PERCENT)

    assert factory.is_registered(sale_id)
    assert factory.count() == 1
    assert factory.entry_at(0) == sale_id
    assert token.balance_of(sale_id) == HARD_CAP
    assert token.balance_of(factory.address) == 0
    assert token.balance_of(funded_owner) == 2 * HARD_CAP

    sale = factory.get_sale(sale_id)
    assert sale.initialized
    assert sale.config.owner == funded_owner
    assert sale.config.factory == factory.address
    assert sale.config.end_time == START + DURATION
    assert sale.config.decimals == 18
    assert sale.whitelist.marker == START - 3600

    event = factory.events[-1]
    assert isinstance(event, SaleCreated)
    assert event.sale == sale_id and event.hard_cap == HARD_CAP


def test_factory_defaults_flow_into_the_sale(factory, funded_owner, token):
    sale = factory.get_sale(create(factory, funded_owner, token))
    assert sale.config.decay_rate == factory.decay_rate
    assert sale.config.floor_price == factory.floor_price
    assert sale.chain_id == factory.chain_id


def test_fee_rate_above_cap_is_rejected_without_side_effects(factory, funded_owner, token):
    with pytest.raises(ValidationError, match="exceeds the maximum"):
        create(factory, funded_owner, token, fee_rate=6 * 10**16)

    assert factory.count() == 0
    assert token.balance_of(funded_owner) == 3 * HARD_CAP
    assert factory.events == []


def test_missing_allowance_rolls_back_registration(factory, owner, token):
    token.mint(owner, HARD_CAP)

    with pytest.raises(TransactionFailedError):
        create(factory, owner, token)

    assert factory.count() == 0
    assert token.balance_of(owner) == HARD_CAP
    assert factory.events == []


@pytest.mark.parametrize("duration", [0, -10])
def test_non_positive_duration_is_rejected(factory, funded_owner, token, duration):
    with pytest.raises(ValidationError):
        create(factory, funded_owner, token, duration=duration)


def test_invalid_metadata_is_rejected(factory, funded_owner, token):
    metadata = {"name": "", "website": "w", "cover": "c", "description": "d"}
    with pytest.raises(ValidationError, match="Invalid sale configuration"):
        create(factory, funded_owner, token, metadata=metadata)
    assert factory.count() == 0


def test_decimals_lookup_failure_defaults_to_18(factory, owner):
    asset = BrokenDecimalsAsset("BROKEN", 6)
    asset.mint(owner, HARD_CAP)
    asset.approve(owner, factory.address, HARD_CAP)

    sale = factory.get_sale(create(factory, owner, asset))

    assert sale.config.decimals == 18


def test_template_change_only_affects_new_sales(factory, factory_owner, funded_owner, token):
    first = create(factory, funded_owner, token)

    with patch("time.time", return_value=START - 1800):
        factory.change_template(factory_owner, ExtendedGraceSale)
    second = create(factory, funded_owner, token)

    assert type(factory.get_sale(first)) is SaleInstance
    assert type(factory.get_sale(second)) is ExtendedGraceSale
    assert factory.get_sale(first).grace_period == 7 * DAY
    assert factory.get_sale(second).grace_period == 14 * DAY
    assert factory.template is ExtendedGraceSale

    event = [e for e in factory.events if isinstance(e, TemplateChanged)][0]
    assert event.old_template == "SaleInstance"
    assert event.new_template == "ExtendedGraceSale"


def test_template_change_requires_owner_and_valid_class(factory, factory_owner, funded_owner):
    with pytest.raises(AccessDeniedError):
        factory.change_template(funded_owner, ExtendedGraceSale)
    with pytest.raises(ValidationError, match="cannot be empty"):
        factory.change_template(factory_owner, None)
    with pytest.raises(ValidationError):
        factory.change_template(factory_owner, dict)
    assert factory.template is SaleInstance


def test_template_manager_instantiates_current_template(native, venue):
    manager = TemplateManager()
    assert manager.change(ExtendedGraceSale) is SaleInstance
    address, factory_id = Keypair().pubkey(), Keypair().pubkey()
    sale = manager.instantiate(address, factory_id, native, venue, 1)
    assert isinstance(sale, ExtendedGraceSale)
    assert sale.address == address and sale.factory == factory_id


def test_registry_enumeration(factory, funded_owner, token):
    ids = [create(factory, funded_owner, token) for _ in range(3)]

    assert [factory.entry_at(i) for i in range(factory.count())] == ids
    assert [sale.address for sale in factory.registry] == ids
    assert len(factory.registry) == 3
    with pytest.raises(ValidationError):
        factory.entry_at(3)
    with pytest.raises(ValidationError):
        factory.entry_at(-1)
    assert not factory.is_registered(Keypair().pubkey())
    assert factory.get_sale(Keypair().pubkey()) is None


def test_registry_rejects_duplicates(factory, funded_owner, token):
    sale = factory.get_sale(create(factory, funded_owner, token))
    with pytest.raises(StateConflictError):
        factory.registry.add(sale)


def test_sale_configuration_is_exported(native, venue, factory_owner, owner, token, tmp_path):
    factory = Factory(owner=factory_owner, native=native, venue=venue, config_dir=tmp_path)
    token.mint(owner, HARD_CAP)
    token.approve(owner, factory.address, HARD_CAP)

    sale_id = create(factory, owner, token)

    with open(tmp_path / f"{sale_id}.json") as f:
        exported = json.load(f)
    assert exported["owner"] == str(owner)
    assert exported["hard_cap"] == HARD_CAP
    assert exported["metadata"]["name"] == METADATA.name
