"""
Liquidity venue collaborators.

At finalization a sale pairs its asset with the settlement currency on a liquidity venue,
deposits the unsold allocation and the raised funds, and reads the reserves back. The
venue is always supplied by the factory, never by a caller.

``ConstantProductVenue`` is an in-memory x*y=k venue with a 0.3% swap fee. Deposits are
pulled from the depositor through asset allowances, like any on-chain venue would.
"""
import math
from typing import Dict, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad.assets import FungibleAsset
from mcp_solana_launchpad.errors import TransactionFailedError
from mcp_solana_launchpad.transaction import WriteJournal

logger = get_logger(__name__)

SWAP_FEE_NUMERATOR = 997
SWAP_FEE_DENOMINATOR = 1000


class LiquidityVenue(Protocol):
    address: Pubkey

    def get_pair(self, token: Pubkey) -> Optional[Pubkey]: ...

    def create_pair(self, token: Pubkey) -> Pubkey: ...

    def add_liquidity(
        self,
        depositor: Pubkey,
        token: FungibleAsset,
        token_amount: int,
        native_amount: int,
        recipient: Pubkey,
        deadline: int,
        now: int,
    ) -> Tuple[Pubkey, int]: ...

    def get_reserves(self, pool: Pubkey) -> Tuple[int, int]: ...

    def get_amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int: ...


class Pool(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    address: Pubkey
    token: Pubkey
    reserve_token: int = 0
    reserve_native: int = 0
    total_liquidity: int = 0


class ConstantProductVenue(WriteJournal):
    """Constant product pools pairing any asset with one settlement currency."""

    def __init__(self, native: FungibleAsset, address: Optional[Pubkey] = None):
        super().__init__()
        self.native = native
        self.address = address or Keypair().pubkey()
        self.pools: Dict[Pubkey, Pool] = {}
        self.pairs: Dict[Pubkey, Pubkey] = {}  # token -> pool
        self.liquidity: Dict[Tuple[Pubkey, Pubkey], int] = {}  # (pool, holder) -> LP units

    def get_pair(self, token: Pubkey) -> Optional[Pubkey]:
        return self.pairs.get(token)

    def create_pair(self, token: Pubkey) -> Pubkey:
        if token == self.native.address:
            raise TransactionFailedError("Cannot pair the settlement currency with itself")
        if token in self.pairs:
            raise TransactionFailedError(f"Pair already exists for {token}")

        pool = Pool(address=Keypair().pubkey(), token=token)
        self._write(self.pools, pool.address, pool)
        self._write(self.pairs, token, pool.address)
        logger.info(f"Created pool {pool.address} for {token}")
        return pool.address

    def add_liquidity(
        self,
        depositor: Pubkey,
        token: FungibleAsset,
        token_amount: int,
        native_amount: int,
        recipient: Pubkey,
        deadline: int,
        now: int,
    ) -> Tuple[Pubkey, int]:
        """Pulls both amounts from ``depositor`` and credits LP units to ``recipient``."""
        if now > deadline:
            raise TransactionFailedError(f"Liquidity deadline {deadline} expired at {now}")

        pool_address = self.pairs.get(token.address)
        if pool_address is None:
            raise TransactionFailedError(f"No pool exists for {token.address}")
        pool = self.pools[pool_address]

        if pool.total_liquidity == 0:
            minted = math.isqrt(token_amount * native_amount)
        else:
            minted = min(
                token_amount * pool.total_liquidity // pool.reserve_token,
                native_amount * pool.total_liquidity // pool.reserve_native,
            )
        if minted <= 0:
            raise TransactionFailedError("Insufficient liquidity minted")

        token.transfer_from(self.address, depositor, pool.address, token_amount)
        self.native.transfer_from(self.address, depositor, pool.address, native_amount)

        # Pools are replaced, never mutated in place
        self._write(self.pools, pool.address, pool.model_copy(update={
            "reserve_token": pool.reserve_token + token_amount,
            "reserve_native": pool.reserve_native + native_amount,
            "total_liquidity": pool.total_liquidity + minted,
        }))
        key = (pool.address, recipient)
        self._write(self.liquidity, key, self.liquidity.get(key, 0) + minted)

        logger.info(f"Added liquidity to {pool.address}: {token_amount} token / {native_amount} native, "
                    f"{minted} LP units to {recipient}")
        return pool.address, minted

    def get_reserves(self, pool: Pubkey) -> Tuple[int, int]:
        """Returns (token reserve, native reserve) of the pool."""
        entry = self.pools.get(pool)
        if entry is None:
            raise TransactionFailedError(f"Unknown pool {pool}")
        return entry.reserve_token, entry.reserve_native

    def get_amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        if amount_in <= 0:
            raise TransactionFailedError("Insufficient input amount")
        if reserve_in <= 0 or reserve_out <= 0:
            raise TransactionFailedError("Insufficient liquidity")
        amount_in_with_fee = amount_in * SWAP_FEE_NUMERATOR
        return amount_in_with_fee * reserve_out // (reserve_in * SWAP_FEE_DENOMINATOR + amount_in_with_fee)
