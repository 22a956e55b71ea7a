"""CipherBridge Testing Support.

This module provides in-memory fakes for the gateway, both ledger clients
and the bridge relay, so the engine can be exercised without a network.
"""

from .fixtures import (
    XOR_MASK,
    FakeEvmClient,
    FakeGateway,
    FakeRelay,
    FakeSolanaClient,
    mask_decrypt,
    mask_encrypt,
)

__all__ = [
    # Gateway
    "FakeGateway",
    "XOR_MASK",
    "mask_encrypt",
    "mask_decrypt",
    # Ledgers
    "FakeSolanaClient",
    "FakeEvmClient",
    # Relay
    "FakeRelay",
]
