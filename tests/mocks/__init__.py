"""
Test Mocks
==========
Fake collaborators for testing without network calls.
"""

from tests.mocks.mock_rpc import MockRpcClient
from tests.mocks.mock_relay import MockRelay

__all__ = ["MockRpcClient", "MockRelay"]
