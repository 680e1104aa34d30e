"""
Whitelist verification for sale participants.

A sale commits to the Merkle root of its access list. Each leaf binds a wallet to the
network and to one sale instance, so a proof issued for one sale cannot be replayed on
another sale or on another network.
"""
import hashlib
from typing import Dict, Iterable, List, Sequence, Tuple

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad import merkle
from mcp_solana_launchpad.schemas import WhitelistConfig

logger = get_logger(__name__)


def leaf_for(caller: Pubkey, chain_id: int, sale: Pubkey) -> bytes:
    """Derives the whitelist leaf of ``caller`` for the given network and sale."""
    return hashlib.sha256(bytes(caller) + chain_id.to_bytes(32, "big") + bytes(sale)).digest()


def build_whitelist(
    wallets: Iterable[Pubkey], chain_id: int, sale: Pubkey
) -> Tuple[bytes, Dict[Pubkey, List[bytes]]]:
    """
    Builds the whitelist commitment for a sale.

    Returns:
        The Merkle root to commit and a proof for every wallet.
    """
    wallets = list(wallets)
    leaves = [leaf_for(wallet, chain_id, sale) for wallet in wallets]
    root = merkle.compute_root(leaves)
    proofs = {wallet: merkle.get_proof(leaves, leaf) for wallet, leaf in zip(wallets, leaves)}
    logger.info(f"Built whitelist for sale {sale} with {len(wallets)} wallet(s)")
    return root, proofs


class WhitelistVerifier:
    """Checks membership proofs against the committed whitelist of one sale."""

    def __init__(self, sale: Pubkey, chain_id: int, whitelist: WhitelistConfig):
        self.sale = sale
        self.chain_id = chain_id
        self.whitelist = whitelist

    def verify(self, caller: Pubkey, proof: Sequence[bytes]) -> bool:
        leaf = leaf_for(caller, self.chain_id, self.sale)
        verified = merkle.verify(proof, self.whitelist.root, leaf)
        logger.debug(f"Whitelist proof for {caller} on sale {self.sale}: {'valid' if verified else 'invalid'}")
        return verified
