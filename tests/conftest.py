"""
FeedCrank Test Configuration
============================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def quiet_logger():
    """Keep console output out of test runs."""
    from feedcrank.shared.system.logging import Logger

    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def payer():
    """Fresh fee payer keypair."""
    from solders.keypair import Keypair
    return Keypair()


@pytest.fixture
def feeds():
    """Three distinct feed ids (scenario: SOL, LST, JITOSOL)."""
    from solders.pubkey import Pubkey
    return [Pubkey.new_unique() for _ in range(3)]


@pytest.fixture
def oracle_program():
    """Program id standing in for the on-demand oracle program."""
    from solders.pubkey import Pubkey
    return Pubkey.new_unique()


@pytest.fixture
def make_update_ix(oracle_program):
    """Build an update instruction touching the feed plus optional extra accounts."""
    from solders.instruction import AccountMeta, Instruction

    def _make(feed, extra_accounts=(), data=b"\x01update"):
        accounts = [AccountMeta(feed, False, True)]
        accounts.extend(AccountMeta(a, False, False) for a in extra_accounts)
        return Instruction(oracle_program, data, accounts)

    return _make


@pytest.fixture
def make_lookup_table():
    """Build an AddressLookupTableAccount holding the given addresses."""
    from solders.address_lookup_table_account import AddressLookupTableAccount
    from solders.pubkey import Pubkey

    def _make(addresses, key=None):
        return AddressLookupTableAccount(
            key=key or Pubkey.new_unique(),
            addresses=list(addresses),
        )

    return _make
