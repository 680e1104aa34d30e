"""
Linear vesting of purchased units.

Once the owner hands the raised funds to the liquidity venue the vesting clock starts.
The claimable amount is the unclaimed balance scaled by the elapsed fraction of the
vesting duration, so everything left is claimable once the duration has passed.
"""
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad.errors import ArithmeticFailureError
from mcp_solana_launchpad.schemas import UserRecord

logger = get_logger(__name__)


def claimable_amount(record: UserRecord, vesting_start_time: int, vesting_duration: int, now: int) -> int:
    """
    Computes the units a participant can claim at ``now``.

    Args:
        record: The participant's purchase record.
        vesting_start_time: Vesting start (0 while vesting has not started).
        vesting_duration: Vesting duration in seconds.
        now: Current time (Unix timestamp).

    Returns:
        The claimable units, 0 before vesting has started.

    Raises:
        ArithmeticFailureError: If vesting started with a zero duration.
    """
    if vesting_start_time == 0:
        return 0
    if vesting_duration == 0:
        raise ArithmeticFailureError("Vesting duration is zero")

    elapsed = min(max(now - vesting_start_time, 0), vesting_duration)
    unclaimed = record.purchased - record.claimed
    claimable = unclaimed * elapsed // vesting_duration

    logger.debug(f"Vesting elapsed={elapsed}/{vesting_duration}s, unclaimed={unclaimed}, claimable={claimable}")
    return claimable
