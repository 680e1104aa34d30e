import httpx
from solders.pubkey import Pubkey

from mcp_solana_launchpad.config import DEFAULT_TOKEN_DECIMALS, RPC_ENDPOINT
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


async def fetch_token_decimals(client: httpx.AsyncClient, mint: Pubkey) -> int:
    """
    Looks up the decimals of an SPL mint through the RPC endpoint.

    Any failure (HTTP error, RPC error, malformed response) falls back to the default of
    18 decimals so a sale can still be created for a mint the node cannot describe.
    """
    try:
        resp = await client.post(
            RPC_ENDPOINT,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "getTokenSupply",
                "params": [str(mint), {"commitment": "confirmed"}],
            },
        )
        resp.raise_for_status()
        result = resp.json()

        if result.get("error"):
            raise ValueError(f"RPC error: {result['error']}")

        decimals = int(result["result"]["value"]["decimals"])
        logger.debug(f"Mint {mint} has {decimals} decimals")
        return decimals

    except httpx.HTTPStatusError as e:
        logger.warning(f"HTTP error fetching decimals for {mint}: {e.response.status_code}. "
                       f"Using default of {DEFAULT_TOKEN_DECIMALS}.")
    except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Could not fetch decimals for {mint}: {e}. Using default of {DEFAULT_TOKEN_DECIMALS}.")
    return DEFAULT_TOKEN_DECIMALS
