from unittest.mock import patch

import pytest
from solders.keypair import Keypair

from mcp_solana_launchpad.assets import InMemoryAsset
from mcp_solana_launchpad.dex import ConstantProductVenue
from mcp_solana_launchpad.factory import Factory
from mcp_solana_launchpad.schemas import SaleMetadata, TokenInfo, WhitelistConfig
from mcp_solana_launchpad.whitelist import build_whitelist

START = 1_710_000_000
DURATION = 86_400
UNIT = 10**18
START_PRICE = 10**15  # 0.001 settlement coin per whole unit
DECAY_RATE = 1000
FLOOR_PRICE = 10**6
DAY = 86_400

METADATA = SaleMetadata(
    name="Launch Token",
    website="https://launch.example",
    cover="https://launch.example/cover.png",
    description="Fair launch of LAUNCH",
)


@pytest.fixture
def native():
    return InMemoryAsset("SOL", 18)


@pytest.fixture
def token():
    return InMemoryAsset("LAUNCH", 18)


@pytest.fixture
def venue(native):
    return ConstantProductVenue(native)


@pytest.fixture
def factory_owner():
    return Keypair().pubkey()


@pytest.fixture
def factory(native, venue, factory_owner):
    return Factory(
        owner=factory_owner,
        native=native,
        venue=venue,
        decay_rate=DECAY_RATE,
        floor_price=FLOOR_PRICE,
    )


@pytest.fixture
def owner():
    return Keypair().pubkey()


@pytest.fixture
def fee_recipient():
    return Keypair().pubkey()


@pytest.fixture
def buyers(native):
    wallets = [Keypair().pubkey() for _ in range(3)]
    for wallet in wallets:
        native.mint(wallet, 10 * UNIT)
    return wallets


@pytest.fixture
def make_sale(factory, token, owner, buyers, fee_recipient):
    """Creates a funded sale whose whitelist holds every buyer; returns (sale, proofs)."""

    def _make(
        hard_cap=1000 * UNIT,
        min_buy=UNIT,
        max_buy=500 * UNIT,
        fee_rate=0,
        start_price=START_PRICE,
        start_time=START,
        duration=DURATION,
        asset=None,
    ):
        asset = asset or token
        asset.mint(owner, hard_cap)
        asset.approve(owner, factory.address, hard_cap)
        with patch("time.time", return_value=start_time - 3600):
            sale_id = factory.create_sale(
                owner,
                METADATA,
                WhitelistConfig(),
                TokenInfo(asset=asset, hard_cap=hard_cap, min_buy=min_buy, max_buy=max_buy),
                fee_rate,
                fee_recipient,
                start_price,
                start_time,
                duration,
            )
            sale = factory.get_sale(sale_id)
            root, proofs = build_whitelist(buyers, factory.chain_id, sale_id)
            sale.set_whitelist_root(owner, root)
        return sale, proofs

    return _make
