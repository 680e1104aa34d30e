"""
Fungible asset collaborators.

Sales and the factory only talk to assets through the ``FungibleAsset`` interface:
``transfer`` moves funds the sender owns, ``transfer_from`` moves funds on behalf of an
owner within a previously granted allowance. ``InMemoryAsset`` is a ledger implementation
used for the settlement currency, for simulated mints and in tests; it takes part in
atomic operations by journaling the entries it writes.
"""
from typing import Dict, Optional, Protocol, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad.config import DEFAULT_TOKEN_DECIMALS
from mcp_solana_launchpad.errors import TransactionFailedError, ValidationError
from mcp_solana_launchpad.transaction import WriteJournal

logger = get_logger(__name__)


class FungibleAsset(Protocol):
    address: Pubkey

    def decimals(self) -> int: ...

    def balance_of(self, account: Pubkey) -> int: ...

    def allowance(self, owner: Pubkey, spender: Pubkey) -> int: ...

    def approve(self, owner: Pubkey, spender: Pubkey, amount: int) -> None: ...

    def increase_allowance(self, owner: Pubkey, spender: Pubkey, amount: int) -> None: ...

    def transfer(self, sender: Pubkey, recipient: Pubkey, amount: int) -> None: ...

    def transfer_from(self, spender: Pubkey, owner: Pubkey, recipient: Pubkey, amount: int) -> None: ...


def fetch_decimals(asset: FungibleAsset) -> int:
    """Returns the asset's decimals, falling back to the default (18) if the lookup fails."""
    try:
        return int(asset.decimals())
    except Exception as e:
        logger.warning(f"Decimals lookup failed for {getattr(asset, 'address', asset)}: {e}. "
                       f"Using default of {DEFAULT_TOKEN_DECIMALS}.")
        return DEFAULT_TOKEN_DECIMALS


class InMemoryAsset(WriteJournal):
    """Balance and allowance ledger for one fungible asset."""

    def __init__(self, symbol: str, decimals: int = DEFAULT_TOKEN_DECIMALS, address: Optional[Pubkey] = None):
        super().__init__()
        self.symbol = symbol
        self.address = address or Keypair().pubkey()
        self._decimals = decimals
        self.balances: Dict[Pubkey, int] = {}
        self.allowances: Dict[Tuple[Pubkey, Pubkey], int] = {}

    def __repr__(self) -> str:
        return f"InMemoryAsset({self.symbol}, {self.address})"

    def decimals(self) -> int:
        return self._decimals

    def balance_of(self, account: Pubkey) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: Pubkey, spender: Pubkey) -> int:
        return self.allowances.get((owner, spender), 0)

    def mint(self, account: Pubkey, amount: int) -> None:
        if amount <= 0:
            raise ValidationError("Mint amount must be positive")
        self._write(self.balances, account, self.balance_of(account) + amount)
        logger.debug(f"Minted {amount} {self.symbol} to {account}")

    def approve(self, owner: Pubkey, spender: Pubkey, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Allowance cannot be negative")
        self._write(self.allowances, (owner, spender), amount)

    def increase_allowance(self, owner: Pubkey, spender: Pubkey, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Allowance increase cannot be negative")
        self._write(self.allowances, (owner, spender), self.allowance(owner, spender) + amount)

    def transfer(self, sender: Pubkey, recipient: Pubkey, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Transfer amount cannot be negative")
        balance = self.balance_of(sender)
        if balance < amount:
            raise TransactionFailedError(
                f"Insufficient {self.symbol} balance for {sender}: has {balance}, needs {amount}"
            )
        self._write(self.balances, sender, balance - amount)
        self._write(self.balances, recipient, self.balance_of(recipient) + amount)
        logger.debug(f"Transferred {amount} {self.symbol} from {sender} to {recipient}")

    def transfer_from(self, spender: Pubkey, owner: Pubkey, recipient: Pubkey, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise TransactionFailedError(
                f"Insufficient {self.symbol} allowance from {owner} to {spender}: has {allowed}, needs {amount}"
            )
        self.transfer(owner, recipient, amount)
        self._write(self.allowances, (owner, spender), allowed - amount)
