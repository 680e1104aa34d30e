import pytest

from mcp_solana_launchpad import config
from mcp_solana_launchpad.errors import ConfigurationError


def test_env_int_reports_range_violations_with_the_bound(monkeypatch):
    monkeypatch.setenv("GRACE_PERIOD_SECONDS", "-1")
    with pytest.raises(ConfigurationError, match="must be >= 0"):
        config._get_env_int("GRACE_PERIOD_SECONDS", 604800, min_val=0)

    monkeypatch.setenv("NATIVE_DECIMALS", "19")
    with pytest.raises(ConfigurationError, match="must be <= 18"):
        config._get_env_int("NATIVE_DECIMALS", 18, min_val=0, max_val=18)


def test_env_int_rejects_non_integers(monkeypatch):
    monkeypatch.setenv("CHAIN_ID", "mainnet")
    with pytest.raises(ConfigurationError, match="must be a valid integer"):
        config._get_env_int("CHAIN_ID", 1)


def test_env_int_uses_default_when_unset(monkeypatch):
    monkeypatch.delenv("DEFAULT_FLOOR_PRICE", raising=False)
    assert config._get_env_int("DEFAULT_FLOOR_PRICE", 10**6, min_val=1) == 10**6


def test_empty_fee_recipient_maps_to_none(monkeypatch):
    monkeypatch.setenv("DEFAULT_FEE_RECIPIENT", "")
    assert config._get_env_pubkey("DEFAULT_FEE_RECIPIENT", "") is None
