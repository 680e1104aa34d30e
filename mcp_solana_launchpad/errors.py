"""
Custom Exception Classes for the Solana Launchpad

This module defines the exception classes raised by sale instances, the factory and the
in-memory collaborators. Every failed operation is rolled back before one of these
exceptions reaches the caller, so the category alone tells the caller what went wrong
and that nothing was changed.

Exception Categories:
- Access Errors: non-owner calling an owner-only operation
- Timing Errors: operation invoked in the wrong sale phase
- Whitelist Errors: membership proof rejected
- Validation Errors: zero or out-of-range amounts, empty metadata, null template
- Capacity Errors: purchase would exceed the hard cap
- State Errors: re-finalizing, re-terminating, early refunds, duplicate registration
- Sanity Errors: post-liquidity price check failed
- Arithmetic Errors: division by a zero hard cap, price or vesting duration
- Configuration Errors: invalid environment configuration
- Transaction Errors: an external collaborator refused a transfer or deposit

Usage:
    Catch ``LaunchpadError`` to handle every domain failure, or a specific subclass
    to react to one category. The MCP server converts them to user-facing messages.
"""


class LaunchpadError(Exception):
    """Base class for every launchpad failure."""


class AccessDeniedError(LaunchpadError):
    """Raised when a non-owner calls an owner-only operation."""


class TimingViolationError(LaunchpadError):
    """Raised when an operation is invoked in the wrong phase (not started, ended, ...)."""


class WhitelistRejectedError(LaunchpadError):
    """Raised when a whitelist proof does not verify against the committed root."""


class ValidationError(LaunchpadError):
    """Raised when input validation fails."""


class CapacityExceededError(LaunchpadError):
    """Raised when a purchase would push total sold units above the hard cap."""


class StateConflictError(LaunchpadError):
    """Raised when an operation conflicts with the current sale or registry state."""


class ExternalSanityFailureError(LaunchpadError):
    """Raised when the liquidity pool price is below the final sale price."""


class ArithmeticFailureError(LaunchpadError):
    """Raised instead of dividing by a zero hard cap, price or vesting duration."""


class ConfigurationError(LaunchpadError):
    """Raised when there are configuration-related errors."""


class TransactionFailedError(LaunchpadError):
    """Raised when an asset transfer or liquidity deposit is refused."""
