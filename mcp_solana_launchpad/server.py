"""
Solana Launchpad Server - MCP Server Implementation

This module exposes the launchpad factory and its sale instances as MCP tools. The server
keeps an in-memory settlement ledger, an in-memory liquidity venue and one factory, so
sales can be created, bought into, finalized and claimed end to end from an MCP client.

Tools:
- register_token / fund_account: seed the in-memory ledgers
- create_sale / list_sales / get_sale_info: factory and registry access
- buy_tokens / get_claimable / claim_tokens / withdraw_refund: participant operations
- finalize_sale / terminate_sale / pull_fees / update_whitelist: owner operations

Every tool returns a human-readable string. Domain failures are reported with their
category name; unexpected failures are logged and reported generically.
"""
import json
import time
from typing import Dict, List

import httpx
from pydantic import Field, ValidationError
from solders.pubkey import Pubkey

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad import config
from mcp_solana_launchpad import solana_utils
from mcp_solana_launchpad.assets import InMemoryAsset
from mcp_solana_launchpad.dex import ConstantProductVenue
from mcp_solana_launchpad.errors import LaunchpadError
from mcp_solana_launchpad.factory import Factory
from mcp_solana_launchpad.sale import SaleInstance
from mcp_solana_launchpad.schemas import CreateSaleRequest, TokenInfo, WhitelistConfig
from mcp_solana_launchpad.whitelist import build_whitelist

logger = get_logger(__name__)

MAX_CONFIG_JSON_LENGTH = 10000

# --- Server Setup ---
mcp = FastMCP(name="Solana Launchpad Server")

native = InMemoryAsset("SOL", config.NATIVE_DECIMALS)
venue = ConstantProductVenue(native)
factory = Factory(
    owner=config.FACTORY_WALLET.pubkey(),
    native=native,
    venue=venue,
    config_dir=config.SALE_CONFIG_DIR or None,
)
tokens: Dict[Pubkey, InMemoryAsset] = {}


def _parse_pubkey(value: str, name: str) -> Pubkey:
    if not value or not isinstance(value, str):
        raise ValueError(f"{name} must be a non-empty string")
    try:
        return Pubkey.from_string(value)
    except Exception as e:
        raise ValueError(f"{name} is not a valid public key: {e}")


def _parse_proof(proof: List[str]) -> List[bytes]:
    try:
        return [bytes.fromhex(node) for node in proof]
    except (TypeError, ValueError) as e:
        raise ValueError(f"Proof nodes must be hex strings: {e}")


def _get_sale(sale_id: str) -> SaleInstance:
    sale = factory.get_sale(_parse_pubkey(sale_id, "Sale ID"))
    if sale is None:
        raise ValueError(f"Sale {sale_id} not found")
    return sale


def format_token_amount(amount: int, decimals: int, symbol: str) -> str:
    """Format token amount with proper decimal places and symbol."""
    whole, fraction = divmod(amount, 10**decimals)
    if decimals == 0:
        return f"{whole} {symbol}"
    return f"{whole}.{fraction:0{decimals}d} {symbol}"


def log_operation_error(operation: str, target: str, error: Exception, duration: float) -> None:
    """Log operation error with structured information."""
    logger.error(f"{operation} failed for '{target}': {type(error).__name__}: {error}, duration: {duration:.3f}s")


def _error_message(operation: str, target: str, error: Exception, start_time: float) -> str:
    log_operation_error(operation, target, error, time.time() - start_time)
    if isinstance(error, LaunchpadError):
        return f"{operation} rejected ({type(error).__name__}): {error}"
    if isinstance(error, (ValueError, ValidationError)):
        return f"Error: Invalid input parameters - {error}"
    logger.exception(f"Unexpected error during {operation}: {error}")
    return "An unexpected server error occurred"


# --- Ledger Tools ---

@mcp.tool()
async def register_token(
    context: Context,
    mint: str = Field(..., description="The SPL mint address of the asset to sell."),
    symbol: str = Field(..., description="Display symbol of the asset."),
    holder: str = Field(..., description="Wallet credited with the initial supply."),
    supply: int = Field(..., description="Initial supply in base units."),
) -> str:
    """Registers an asset in the in-memory ledger, looking its decimals up on-chain."""
    start_time = time.time()
    try:
        mint_key = _parse_pubkey(mint, "Mint")
        holder_key = _parse_pubkey(holder, "Holder")
        if mint_key in tokens:
            return f"Token {mint} is already registered."

        async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0)) as client:
            decimals = await solana_utils.fetch_token_decimals(client, mint_key)

        asset = InMemoryAsset(symbol, decimals, address=mint_key)
        asset.mint(holder_key, supply)
        tokens[mint_key] = asset
        logger.info(f"Registered token {symbol} ({mint}) with {decimals} decimals")
        return (f"Registered {symbol} ({mint}) with {decimals} decimals. "
                f"Minted {format_token_amount(supply, decimals, symbol)} to {holder}.")
    except Exception as e:
        return _error_message("Token registration", mint, e, start_time)


@mcp.tool()
async def fund_account(
    context: Context,
    account: str = Field(..., description="Wallet to credit."),
    amount: int = Field(..., description="Settlement currency amount in base units."),
) -> str:
    """Credits settlement currency to a wallet in the in-memory ledger."""
    start_time = time.time()
    try:
        native.mint(_parse_pubkey(account, "Account"), amount)
        return f"Credited {format_token_amount(amount, config.NATIVE_DECIMALS, native.symbol)} to {account}."
    except Exception as e:
        return _error_message("Funding", account, e, start_time)


# --- Factory Tools ---

@mcp.tool()
async def create_sale(
    context: Context,
    owner: str = Field(..., description="Wallet creating and owning the sale."),
    config_json: str = Field(..., description="The sale configuration as a JSON string."),
) -> str:
    """Creates a new sale from a JSON configuration, funding it from the owner's balance."""
    start_time = time.time()
    try:
        if not config_json or not isinstance(config_json, str):
            raise ValueError("Configuration JSON must be a non-empty string")
        if len(config_json) > MAX_CONFIG_JSON_LENGTH:
            raise ValueError("Configuration JSON is too large (max 10KB)")

        owner_key = _parse_pubkey(owner, "Owner")
        request = CreateSaleRequest.model_validate(json.loads(config_json))
        mint_key = _parse_pubkey(request.token, "Token")
        asset = tokens.get(mint_key)
        if asset is None:
            raise ValueError(f"Token {request.token} is not registered")

        if request.fee_recipient:
            fee_recipient = _parse_pubkey(request.fee_recipient, "Fee recipient")
        else:
            fee_recipient = config.DEFAULT_FEE_RECIPIENT or factory.owner

        asset.approve(owner_key, factory.address, request.hard_cap)
        sale_id = factory.create_sale(
            caller=owner_key,
            metadata=request.metadata,
            whitelist=WhitelistConfig(root=bytes.fromhex(request.whitelist_root), min_balance=request.min_balance),
            token_info=TokenInfo(asset=asset, hard_cap=request.hard_cap,
                                 min_buy=request.min_buy, max_buy=request.max_buy),
            fee_rate=request.fee_rate,
            fee_recipient=fee_recipient,
            start_price=request.start_price,
            start_time=request.start_time,
            duration=request.duration,
        )
        return f"Sale '{sale_id}' created successfully."
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON for create_sale request: {e}")
        return "Error: Invalid JSON format provided. Please check your JSON syntax."
    except Exception as e:
        return _error_message("Sale creation", owner, e, start_time)


@mcp.tool()
async def list_sales(context: Context) -> str:
    """Lists every sale created by the factory, in creation order."""
    return json.dumps([str(factory.entry_at(i)) for i in range(factory.count())], indent=2)


@mcp.tool()
async def get_sale_info(context: Context, sale_id: str = Field(..., description="The sale ID.")) -> str:
    """Get configuration, state and current price of a sale."""
    start_time = time.time()
    try:
        return json.dumps(_get_sale(sale_id).info(), indent=2)
    except Exception as e:
        return _error_message("Sale lookup", sale_id, e, start_time)


# --- Participant Tools ---

@mcp.tool()
async def buy_tokens(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    buyer: str = Field(..., description="The buying wallet."),
    payment: int = Field(..., description="Settlement currency paid, in base units."),
    proof: List[str] = Field(..., description="Hex encoded whitelist proof nodes."),
) -> str:
    """Buys units of a sale at the current price."""
    start_time = time.time()
    try:
        sale = _get_sale(sale_id)
        buyer_key = _parse_pubkey(buyer, "Buyer")
        units = sale.buy(buyer_key, _parse_proof(proof), payment)

        asset = tokens.get(sale.config.token)
        symbol = asset.symbol if asset else "units"
        token_display = format_token_amount(units, sale.config.decimals, symbol)
        logger.info(f"Purchase completed for sale '{sale_id}': amount={token_display}, "
                    f"payment={payment}, duration={time.time() - start_time:.3f}s")
        return f"Successfully purchased {token_display} for {payment} base units of {native.symbol}."
    except Exception as e:
        return _error_message("Token purchase", sale_id, e, start_time)


@mcp.tool()
async def get_claimable(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    account: str = Field(..., description="The participant wallet."),
) -> str:
    """Gets the vested units a participant can claim right now."""
    start_time = time.time()
    try:
        sale = _get_sale(sale_id)
        return f"Claimable: {sale.claimable(_parse_pubkey(account, 'Account'))}"
    except Exception as e:
        return _error_message("Claimable lookup", sale_id, e, start_time)


@mcp.tool()
async def claim_tokens(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    account: str = Field(..., description="The participant wallet."),
) -> str:
    """Claims the participant's vested units."""
    start_time = time.time()
    try:
        amount = _get_sale(sale_id).claim(_parse_pubkey(account, "Account"))
        return f"Claimed {amount} units."
    except Exception as e:
        return _error_message("Claim", sale_id, e, start_time)


@mcp.tool()
async def withdraw_refund(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    account: str = Field(..., description="The participant wallet."),
) -> str:
    """Withdraws the participant's investment from a terminated sale."""
    start_time = time.time()
    try:
        amount = _get_sale(sale_id).withdraw_refund(_parse_pubkey(account, "Account"))
        return f"Refunded {amount} base units of {native.symbol}."
    except Exception as e:
        return _error_message("Refund", sale_id, e, start_time)


# --- Owner Tools ---

@mcp.tool()
async def finalize_sale(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    owner: str = Field(..., description="The sale owner."),
    vesting_duration: int = Field(..., description="Vesting duration in seconds."),
    deadline: int = Field(..., description="Latest Unix time the liquidity deposit may happen."),
) -> str:
    """Seeds the liquidity pool with the sale's funds and starts vesting."""
    start_time = time.time()
    try:
        pool = _get_sale(sale_id).finalize(_parse_pubkey(owner, "Owner"), vesting_duration, deadline)
        return f"Sale finalized. Liquidity pool: {pool}. Vesting over {vesting_duration}s."
    except Exception as e:
        return _error_message("Finalization", sale_id, e, start_time)


@mcp.tool()
async def terminate_sale(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    owner: str = Field(..., description="The sale owner."),
) -> str:
    """Terminates a sale so participants can withdraw refunds after the grace period."""
    start_time = time.time()
    try:
        _get_sale(sale_id).terminate(_parse_pubkey(owner, "Owner"))
        return f"Sale '{sale_id}' terminated."
    except Exception as e:
        return _error_message("Termination", sale_id, e, start_time)


@mcp.tool()
async def update_whitelist(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    owner: str = Field(..., description="The sale owner."),
    wallets: List[str] = Field(..., description="Wallets allowed to buy."),
) -> str:
    """Commits a whitelist for the given wallets and returns the root and each wallet's proof."""
    start_time = time.time()
    try:
        sale = _get_sale(sale_id)
        owner_key = _parse_pubkey(owner, "Owner")
        if not wallets:
            raise ValueError("At least one wallet is required")
        wallet_keys = [_parse_pubkey(wallet, "Wallet") for wallet in wallets]

        root, proofs = build_whitelist(wallet_keys, sale.chain_id, sale.address)
        sale.set_whitelist_root(owner_key, root)
        return json.dumps({
            "root": root.hex(),
            "proofs": {str(wallet): [node.hex() for node in proof] for wallet, proof in proofs.items()},
        }, indent=2)
    except Exception as e:
        return _error_message("Whitelist update", sale_id, e, start_time)


@mcp.tool()
async def pull_fees(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    owner: str = Field(..., description="The sale owner."),
) -> str:
    """Sends the accumulated protocol fees to the fee recipient."""
    start_time = time.time()
    try:
        fees = _get_sale(sale_id).pull_fees(_parse_pubkey(owner, "Owner"))
        return f"Pulled {fees} base units of {native.symbol} in fees."
    except Exception as e:
        return _error_message("Fee withdrawal", sale_id, e, start_time)


# --- Main Execution ---
if __name__ == "__main__":
    logger.info("Starting Solana Launchpad MCP Server...")
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
