"""
Token Pricing Engine with a Decaying Demand Curve

This module implements the price model of a launchpad sale. The unit price starts at the
configured start price, rises with demand as the hard cap fills and decays linearly over
the sale window, never dropping below the configured floor.

Price Calculation Process:
1. Demand multiplier = (hard_cap + total_sold) / hard_cap
2. Base price = start_price * demand multiplier
3. Elapsed = min(now, end_time) - start_time (clamped at zero before the start)
4. Discount = decay_rate * elapsed
5. Price = max(base price - discount, floor_price)

All arithmetic is integer fixed point with multiplication performed before division, so
results are deterministic. Prices are expressed in settlement-currency base units per whole
asset unit (10**decimals base units). Fee rates are scaled by FEE_SCALE (1e18).
"""
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad.config import FEE_SCALE
from mcp_solana_launchpad.errors import ArithmeticFailureError

logger = get_logger(__name__)


def current_price(
    total_sold: int,
    hard_cap: int,
    start_price: int,
    decay_rate: int,
    floor_price: int,
    start_time: int,
    end_time: int,
    now: int,
) -> int:
    """
    Calculates the unit price for the given sale state and time.

    Args:
        total_sold: Units sold so far (base units).
        hard_cap: Maximum units sellable (base units).
        start_price: Price at the sale start with nothing sold.
        decay_rate: Linear price reduction per elapsed second.
        floor_price: Minimum price the curve may reach.
        start_time: Sale start (Unix timestamp).
        end_time: Sale end (Unix timestamp).
        now: Current time (Unix timestamp).

    Returns:
        The price of one whole asset unit in settlement base units.

    Raises:
        ArithmeticFailureError: If the hard cap is zero.
    """
    if hard_cap == 0:
        raise ArithmeticFailureError("Hard cap is zero, cannot compute demand multiplier")

    base_price = start_price * (hard_cap + total_sold) // hard_cap
    elapsed = max(min(now, end_time) - start_time, 0)
    discount = decay_rate * elapsed
    price = max(base_price - discount, floor_price)

    logger.debug(f"Price at t={now}: base={base_price}, elapsed={elapsed}s, discount={discount}, price={price}")
    return price


def protocol_fee(amount: int, fee_rate: int) -> int:
    """Returns the protocol fee taken from a payment (fee_rate scaled by 1e18)."""
    return amount * fee_rate // FEE_SCALE


def native_to_tokens(amount: int, price: int, decimals: int) -> int:
    """Converts a settlement amount to asset base units at the given unit price."""
    if price == 0:
        raise ArithmeticFailureError("Unit price is zero, cannot convert to tokens")
    return amount * 10**decimals // price


def tokens_to_native(amount: int, price: int, decimals: int) -> int:
    """Converts asset base units to the settlement amount at the given unit price."""
    return amount * price // 10**decimals
