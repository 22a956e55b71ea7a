"""
Cross-Ledger Confidential Operation Engine for CipherBridge.

This module provides confidential value movement between an EVM ledger and
an SVM ledger including:
- Exact-layout binary encoding and program address derivation
- Ledger adapters building wrap, unwrap, transfer, faucet and swap calls
- A narrow confidentiality gateway interface for encrypt and decrypt
- A local shadow balance cache for unreadable confidential balances
- Swap and bridge quotes
- Bridge orchestration with a monotonic lifecycle
"""

from .codec import (
    concat_frames,
    decode_uint,
    encode_u8,
    encode_u32,
    encode_u64,
    encode_u128,
    encode_uint,
    frame_ciphertext,
    handle_bytes,
    hex_to_bytes,
    unframe_ciphertext,
)
from .bridge_types import (
    ActionFamily,
    BridgeOperation,
    BridgeQuote,
    BridgeResult,
    BridgeStatus,
    ChainKind,
    EncryptedAmount,
    EncryptionContext,
    LedgerTransaction,
    RelayStatus,
    SessionState,
    SwapDirection,
    TokenConfig,
    TokenKind,
    TokenSymbol,
    TransactionReceipt,
    from_base_units,
    parse_amount,
    to_base_units,
)
from .bridge_manager import (
    BRIDGE_TOKENS,
    BridgeOrchestrator,
    BridgeRelay,
    BridgeToken,
    HttpRelay,
)
from .chains.base import LedgerAdapter
from .chains.ethereum import ContractCall, EvmAdapter, EvmClient, EvmContractsConfig
from .chains.solana import SolanaAdapter, SolanaClient, SolanaProgramConfig
from .config import EngineConfig, default_tokens
from .gateway import ConfidentialityGateway, GatewayConfig, HttpGateway
from .operations import BalancePoller, ConfidentialOperations
from .quotes import (
    chainlink_price,
    format_swap_quote,
    quote_bridge,
    quote_swap,
    swap_leg_amount,
)
from .shadow_balances import ShadowBalanceLedger, balance_key

__all__ = [
    # Codec
    "encode_uint",
    "decode_uint",
    "encode_u8",
    "encode_u32",
    "encode_u64",
    "encode_u128",
    "concat_frames",
    "frame_ciphertext",
    "unframe_ciphertext",
    "handle_bytes",
    "hex_to_bytes",
    # Types
    "ActionFamily",
    "BridgeOperation",
    "BridgeQuote",
    "BridgeResult",
    "BridgeStatus",
    "ChainKind",
    "EncryptedAmount",
    "EncryptionContext",
    "LedgerTransaction",
    "RelayStatus",
    "SessionState",
    "SwapDirection",
    "TokenConfig",
    "TokenKind",
    "TokenSymbol",
    "TransactionReceipt",
    "parse_amount",
    "to_base_units",
    "from_base_units",
    # Ledgers
    "LedgerAdapter",
    "ContractCall",
    "EvmAdapter",
    "EvmClient",
    "EvmContractsConfig",
    "SolanaAdapter",
    "SolanaClient",
    "SolanaProgramConfig",
    # Gateway
    "ConfidentialityGateway",
    "GatewayConfig",
    "HttpGateway",
    # Balances and quotes
    "ShadowBalanceLedger",
    "balance_key",
    "quote_swap",
    "format_swap_quote",
    "chainlink_price",
    "quote_bridge",
    "swap_leg_amount",
    # Orchestration
    "BRIDGE_TOKENS",
    "BridgeOrchestrator",
    "BridgeRelay",
    "BridgeToken",
    "HttpRelay",
    "ConfidentialOperations",
    "BalancePoller",
    # Configuration
    "EngineConfig",
    "default_tokens",
]
