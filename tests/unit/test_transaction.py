import threading
from unittest.mock import patch

import pytest
from solders.keypair import Keypair

from mcp_solana_launchpad.assets import InMemoryAsset
from mcp_solana_launchpad.errors import TransactionFailedError
from mcp_solana_launchpad.transaction import atomic

from conftest import START, UNIT

PAYMENT = 10**17


class GatedAsset(InMemoryAsset):
    """Settlement ledger whose transfers out of ``gated`` park until released, then fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gated = None
        self.entered = threading.Event()
        self.release = threading.Event()

    def transfer(self, sender, recipient, amount):
        if sender == self.gated:
            self.entered.set()
            self.release.wait(5)
            raise TransactionFailedError(f"Transfer from {sender} rejected")
        super().transfer(sender, recipient, amount)


@pytest.fixture
def native():
    return GatedAsset("SOL", 18)


def test_failed_purchase_does_not_undo_concurrent_purchase_on_another_sale(make_sale, buyers, native):
    sale_a, proofs_a = make_sale()
    sale_b, proofs_b = make_sale()
    native.gated = buyers[0]
    failures = []

    def buy(sale, proofs, buyer):
        try:
            sale.buy(buyer, proofs[buyer], PAYMENT)
        except TransactionFailedError as e:
            failures.append(e)

    with patch("time.time", return_value=START):
        first = threading.Thread(target=buy, args=(sale_a, proofs_a, buyers[0]))
        first.start()
        assert native.entered.wait(5)

        second = threading.Thread(target=buy, args=(sale_b, proofs_b, buyers[1]))
        second.start()
        second.join(timeout=0.2)
        # Sales of one factory share the ledger lock
        assert second.is_alive()

        native.release.set()
        first.join(5)
        second.join(5)

    assert not first.is_alive() and not second.is_alive()
    assert len(failures) == 1
    assert sale_a.state.total_sold == 0
    assert native.balance_of(sale_a.address) == 0
    assert native.balance_of(buyers[0]) == 10 * UNIT
    assert sale_b.state.total_sold == 100 * UNIT
    assert native.balance_of(sale_b.address) == PAYMENT
    assert native.balance_of(buyers[1]) == 10 * UNIT - PAYMENT


def test_sales_share_the_factory_lock(make_sale, factory):
    sale_a, _ = make_sale()
    sale_b, _ = make_sale()
    assert sale_a._lock is factory.lock
    assert sale_b._lock is factory.lock


def test_rollback_restores_only_written_entries():
    asset = InMemoryAsset("SOL", 18)
    alice, bob, carol = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    asset.mint(alice, 100)
    asset.mint(carol, 7)

    with pytest.raises(TransactionFailedError):
        with atomic(asset):
            asset.approve(alice, bob, 50)
            asset.transfer(alice, bob, 40)
            asset.transfer(alice, bob, 100)

    assert asset.balance_of(alice) == 100
    assert bob not in asset.balances
    assert asset.allowance(alice, bob) == 0
    assert asset.balance_of(carol) == 7
    assert asset._journal == []


def test_commit_keeps_writes_and_clears_the_journal():
    asset = InMemoryAsset("SOL", 18)
    alice, bob = Keypair().pubkey(), Keypair().pubkey()
    asset.mint(alice, 100)
    assert asset._journal == []

    with atomic(asset):
        asset.transfer(alice, bob, 30)
        assert len(asset._journal) == 2

    assert asset.balance_of(bob) == 30
    assert asset._journal == []


def test_outer_failure_undoes_committed_inner_operation():
    asset = InMemoryAsset("SOL", 18)
    alice, bob = Keypair().pubkey(), Keypair().pubkey()
    asset.mint(alice, 100)

    with pytest.raises(RuntimeError):
        with atomic(asset, operation="outer"):
            with atomic(asset, operation="inner"):
                asset.transfer(alice, bob, 60)
            assert asset.balance_of(bob) == 60
            raise RuntimeError("outer step failed")

    assert asset.balance_of(alice) == 100
    assert asset.balance_of(bob) == 0
    assert asset._journal == []
