import os
import logging
from typing import Optional
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from dotenv import load_dotenv

from mcp_solana_launchpad.errors import ConfigurationError

"""
Configuration Management for the Solana Launchpad

This module loads every tunable of the launchpad from environment variables, with
defaults matching the reference sale configuration. Values are validated on import so a
misconfigured deployment fails fast with a ConfigurationError.

Environment Variables:
    RPC_ENDPOINT: Solana RPC endpoint used for mint decimals lookups
    CHAIN_ID: Network identifier mixed into whitelist leaves
    NATIVE_DECIMALS: Precision of the settlement currency
    DEFAULT_TOKEN_DECIMALS: Decimals assumed when a mint lookup fails
    MAX_FEE_RATE: Upper bound for protocol fee rates (scaled by FEE_SCALE)
    GRACE_PERIOD_SECONDS: Window after sale end for finalization or refunds
    DEFAULT_PRICE_DECAY_RATE: Per-second price decay supplied by the factory
    DEFAULT_FLOOR_PRICE: Price floor supplied by the factory
    FACTORY_WALLET_SEED: Comma-separated seed bytes for the factory owner wallet
    SALE_CONFIG_DIR: Directory for exported sale configurations (empty disables export)
"""

logger = logging.getLogger(__name__)

load_dotenv()


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _get_env_pubkey(key: str, default: str) -> Optional[Pubkey]:
    """Get environment variable as Pubkey with validation. Empty values map to None."""
    value = os.getenv(key, default)
    if not value:
        return None
    try:
        return Pubkey.from_string(value)
    except Exception as e:
        raise ConfigurationError(f"Environment variable {key} must be a valid public key: {e}")


def _load_factory_wallet() -> Keypair:
    """Load the factory owner wallet from environment with validation."""
    seed_str = os.getenv("FACTORY_WALLET_SEED", ",".join(["1"] * 32))

    try:
        seed_parts = [x.strip() for x in seed_str.split(",")]
        if len(seed_parts) != 32:
            raise ValueError(f"FACTORY_WALLET_SEED must contain exactly 32 comma-separated integers, got {len(seed_parts)}")

        wallet = Keypair.from_seed(bytes([int(x) for x in seed_parts]))
        logger.info(f"Loaded factory wallet: {wallet.pubkey()}")
        return wallet

    except (ValueError, TypeError) as e:
        logger.warning(f"Error loading FACTORY_WALLET_SEED: {e}. Using a default insecure seed for development.")
        return Keypair.from_seed(bytes([1] * 32))


# Fee rates are fixed point numbers scaled by 1e18
FEE_SCALE = 10**18

try:
    # --- Network ---
    RPC_ENDPOINT = _get_env_str("RPC_ENDPOINT", "http://localhost:8899", required=True)
    CHAIN_ID = _get_env_int("CHAIN_ID", 1, min_val=0, max_val=2**64 - 1)

    # --- Units ---
    NATIVE_DECIMALS = _get_env_int("NATIVE_DECIMALS", 18, min_val=0, max_val=18)
    DEFAULT_TOKEN_DECIMALS = _get_env_int("DEFAULT_TOKEN_DECIMALS", 18, min_val=0, max_val=18)

    # --- Protocol fee ---
    MAX_FEE_RATE = _get_env_int("MAX_FEE_RATE", 5 * 10**16, min_val=0, max_val=FEE_SCALE)
    DEFAULT_FEE_RECIPIENT = _get_env_pubkey("DEFAULT_FEE_RECIPIENT", "")

    # --- Sale lifecycle ---
    GRACE_PERIOD_SECONDS = _get_env_int("GRACE_PERIOD_SECONDS", 7 * 24 * 60 * 60, min_val=0)

    # --- Factory supplied curve defaults ---
    DEFAULT_PRICE_DECAY_RATE = _get_env_int("DEFAULT_PRICE_DECAY_RATE", 1000, min_val=0)
    DEFAULT_FLOOR_PRICE = _get_env_int("DEFAULT_FLOOR_PRICE", 10**6, min_val=1)

    # --- Factory wallet ---
    FACTORY_WALLET = _load_factory_wallet()

    # --- Directories ---
    SALE_CONFIG_DIR = _get_env_str("SALE_CONFIG_DIR", "")

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
except Exception as e:
    logger.error(f"Unexpected error loading configuration: {e}")
    raise ConfigurationError(f"Failed to load configuration: {e}")
