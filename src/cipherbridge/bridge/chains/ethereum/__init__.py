"""
Ethereum Ledger Module

This module provides the EVM side of the confidential operation engine:
- Contract call descriptors with selectors and ABI-encoded arguments
- Web3 client for submission, receipts and read-only calls
- The EVM ledger adapter for wrap, unwrap, approve, transfer and swap
"""

from .adapter import (
    NATIVE_DECIMALS,
    PRICE_FEED_DECIMALS,
    STABLE_DECIMALS,
    EvmAdapter,
    require_address,
)
from .client import EthereumConfig, EvmClient, LocalAccountSigner
from .contracts import (
    MAX_APPROVAL,
    ContractCall,
    EvmContractsConfig,
    function_selector,
)

__all__ = [
    # Adapter
    "EvmAdapter",
    "NATIVE_DECIMALS",
    "PRICE_FEED_DECIMALS",
    "STABLE_DECIMALS",
    "require_address",
    # Client
    "EthereumConfig",
    "EvmClient",
    "LocalAccountSigner",
    # Contracts
    "MAX_APPROVAL",
    "ContractCall",
    "EvmContractsConfig",
    "function_selector",
]
