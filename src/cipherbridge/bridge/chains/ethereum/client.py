"""
Ethereum (Base Sepolia) client for the EVM adapter.

This module provides:
- Web3 client management
- Transaction building, signing and submission for contract calls
- Receipt waiting with timeout mapping
- Read-only contract calls decoded with eth_abi
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from eth_abi import decode
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from ....errors import SubmissionFailed, create_timeout_error, create_transport_error
from ....logging import get_logger
from .contracts import ContractCall

logger = get_logger(__name__)

CHAIN = "base-sepolia"


@dataclass
class EthereumConfig:
    """Ethereum client configuration."""

    rpc_url: str = "https://sepolia.base.org"
    chain_id: int = 84532
    timeout: int = 30
    receipt_timeout: float = 120.0
    receipt_poll_interval: float = 2.0
    gas_price_multiplier: float = 1.1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "timeout": self.timeout,
            "receipt_timeout": self.receipt_timeout,
            "receipt_poll_interval": self.receipt_poll_interval,
            "gas_price_multiplier": self.gas_price_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EthereumConfig":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            rpc_url=data.get("rpc_url", defaults.rpc_url),
            chain_id=int(data.get("chain_id", defaults.chain_id)),
            timeout=int(data.get("timeout", defaults.timeout)),
            receipt_timeout=float(data.get("receipt_timeout", defaults.receipt_timeout)),
            receipt_poll_interval=float(
                data.get("receipt_poll_interval", defaults.receipt_poll_interval)
            ),
            gas_price_multiplier=float(
                data.get("gas_price_multiplier", defaults.gas_price_multiplier)
            ),
        )


class LocalAccountSigner:
    """Signs transactions with a local private key."""

    def __init__(self, private_key: str):
        self.account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self.account.address

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        signed = self.account.sign_transaction(transaction)
        return bytes(signed.raw_transaction)


class EvmClient:
    """Ethereum blockchain client."""

    def __init__(self, config: Optional[EthereumConfig] = None):
        """Initialize Ethereum client."""
        self.config = config or EthereumConfig()
        self.w3 = Web3(
            Web3.HTTPProvider(
                self.config.rpc_url, request_kwargs={"timeout": self.config.timeout}
            )
        )

    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self.w3.is_connected()

    async def _rpc(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking web3 call in a worker thread.

        Connection and provider failures surface as ``SubmissionFailed``,
        timeouts as ``ConfirmationTimeout``.
        """
        try:
            return await asyncio.to_thread(func, *args)
        except (Web3Exception, OSError, ValueError) as e:
            raise create_transport_error(operation, e, chain=CHAIN) from e

    async def get_balance(self, address: str) -> int:
        """Get native balance (wei) for address."""
        return await self._rpc(
            "eth_getBalance", self.w3.eth.get_balance, Web3.to_checksum_address(address)
        )

    async def _gas_price(self) -> int:
        price = await self._rpc("eth_gasPrice", lambda: self.w3.eth.gas_price)
        return int(price * self.config.gas_price_multiplier)

    async def build_transaction(self, call: ContractCall, sender: str) -> Dict[str, Any]:
        """Transaction dict for ``call`` sent from ``sender``."""
        sender = Web3.to_checksum_address(sender)
        nonce = await self._rpc(
            "eth_getTransactionCount", self.w3.eth.get_transaction_count, sender
        )
        return {
            "chainId": self.config.chain_id,
            "from": sender,
            "to": Web3.to_checksum_address(call.address),
            "data": Web3.to_hex(call.calldata),
            "value": call.value,
            "gas": call.gas,
            "gasPrice": await self._gas_price(),
            "nonce": nonce,
        }

    async def send_call(self, call: ContractCall, signer: Any) -> str:
        """Sign and broadcast ``call``; returns the ``0x`` transaction hash."""
        transaction = await self.build_transaction(call, signer.address)
        raw = signer.sign_transaction(transaction)
        try:
            tx_hash = await asyncio.to_thread(self.w3.eth.send_raw_transaction, raw)
        except (Web3Exception, OSError, ValueError) as e:
            raise SubmissionFailed(
                f"{call.signature} rejected: {e}",
                chain=CHAIN,
                cause=e,
            ) from e
        tx_id = Web3.to_hex(tx_hash)
        logger.info(f"Sent {call.signature} to {call.address}: {tx_id}")
        return tx_id

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Wait for the receipt; reverted transactions raise ``SubmissionFailed``."""
        try:
            receipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                tx_hash,
                self.config.receipt_timeout,
                self.config.receipt_poll_interval,
            )
        except TimeExhausted as e:
            raise create_timeout_error(
                "wait_for_receipt",
                self.config.receipt_timeout,
                transaction_id=tx_hash,
                chain=CHAIN,
            ) from e
        except (Web3Exception, OSError, ValueError) as e:
            raise create_transport_error(
                "wait_for_receipt", e, chain=CHAIN, transaction_id=tx_hash
            ) from e
        if receipt["status"] != 1:
            raise SubmissionFailed(
                f"Transaction {tx_hash} reverted",
                chain=CHAIN,
                transaction_id=tx_hash,
            )
        return dict(receipt)

    async def call(
        self, call: ContractCall, output_types: Sequence[str], sender: Optional[str] = None
    ) -> List[Any]:
        """Execute a read-only call and decode its return values."""
        request = {
            "to": Web3.to_checksum_address(call.address),
            "data": Web3.to_hex(call.calldata),
        }
        if sender:
            request["from"] = Web3.to_checksum_address(sender)
        raw = await self._rpc("eth_call", self.w3.eth.call, request)
        return list(decode(list(output_types), bytes(raw)))
