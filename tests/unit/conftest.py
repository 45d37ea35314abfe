"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- File system (except tmp_path)
"""

import pytest


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable real HTTP for unit tests.
    Clients built on httpx.MockTransport keep working.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Inject an httpx.MockTransport or a mock RPC client instead."
        )

    monkeypatch.setattr("httpx.AsyncHTTPTransport.handle_async_request", block_network)
    monkeypatch.setattr("httpx.HTTPTransport.handle_request", block_network)


@pytest.fixture(autouse=True)
def silence_console(quiet_logger):
    yield


# ============================================================================
# PIPELINE FIXTURES
# ============================================================================


@pytest.fixture
def mock_rpc():
    """Ledger RPC stand-in recording every call."""
    from tests.mocks.mock_rpc import MockRpcClient
    return MockRpcClient()


@pytest.fixture
def mock_relay(make_update_ix):
    """Relay stand-in producing one update ix per feed."""
    from tests.mocks.mock_relay import MockRelay
    return MockRelay(make_update_ix)
