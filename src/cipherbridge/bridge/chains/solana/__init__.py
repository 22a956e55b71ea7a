"""
Solana Ledger Module

This module provides the SVM side of the confidential operation engine:
- Program-derived address derivation
- Anchor-style instruction builders for the confidential token program
- JSON-RPC client with confirmation polling
- The SVM ledger adapter with lazy account bootstrap
"""

from .adapter import FAUCET_AMOUNT, SolanaAdapter, SolanaProgramConfig
from .client import (
    KeypairSigner,
    SolanaAccount,
    SolanaClient,
    SolanaConfig,
    SolanaRpcError,
)
from .pda import (
    DerivedAddress,
    associated_token_address,
    derive_address,
    pool_address,
    position_address,
    sol_vault_address,
    swap_result_address,
    to_pubkey,
    token_vault_address,
    usdc_vault_address,
    user_balance_address,
)

__all__ = [
    # Adapter
    "FAUCET_AMOUNT",
    "SolanaAdapter",
    "SolanaProgramConfig",
    # Client
    "KeypairSigner",
    "SolanaAccount",
    "SolanaClient",
    "SolanaConfig",
    "SolanaRpcError",
    # Addresses
    "DerivedAddress",
    "associated_token_address",
    "derive_address",
    "pool_address",
    "position_address",
    "sol_vault_address",
    "swap_result_address",
    "to_pubkey",
    "token_vault_address",
    "usdc_vault_address",
    "user_balance_address",
]
