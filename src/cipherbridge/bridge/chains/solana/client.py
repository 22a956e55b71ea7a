"""
Solana JSON-RPC client for the SVM adapter.

This module provides:
- Account probing (existence, lamports, raw data)
- SPL token amount reads for balance polling
- Transaction submission and confirmation polling
- A keypair-backed signer for scripts and tests
"""

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ....errors import (
    CipherBridgeError,
    ConfigurationError,
    SubmissionFailed,
    create_timeout_error,
    create_transport_error,
)
from ....logging import get_logger
from ...codec import decode_uint

logger = get_logger(__name__)

SPL_TOKEN_AMOUNT_OFFSET = 64
LAMPORTS_PER_SOL = 1_000_000_000
CHAIN = "solana-devnet"


@dataclass
class SolanaConfig:
    """Configuration for the Solana RPC client."""

    rpc_url: str = "https://api.devnet.solana.com"
    commitment: str = "confirmed"  # "processed", "confirmed", "finalized"
    timeout: float = 30.0
    confirmation_timeout: float = 60.0
    confirmation_poll_interval: float = 1.0
    skip_preflight: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "rpc_url": self.rpc_url,
            "commitment": self.commitment,
            "timeout": self.timeout,
            "confirmation_timeout": self.confirmation_timeout,
            "confirmation_poll_interval": self.confirmation_poll_interval,
            "skip_preflight": self.skip_preflight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolanaConfig":
        """Create from dictionary."""
        defaults = cls()
        commitment = data.get("commitment", defaults.commitment)
        if commitment not in ("processed", "confirmed", "finalized"):
            raise ConfigurationError(
                f"Unknown commitment level: {commitment}",
                config_key="solana.commitment",
                config_value=commitment,
            )
        return cls(
            rpc_url=data.get("rpc_url", defaults.rpc_url),
            commitment=commitment,
            timeout=float(data.get("timeout", defaults.timeout)),
            confirmation_timeout=float(
                data.get("confirmation_timeout", defaults.confirmation_timeout)
            ),
            confirmation_poll_interval=float(
                data.get(
                    "confirmation_poll_interval", defaults.confirmation_poll_interval
                )
            ),
            skip_preflight=bool(data.get("skip_preflight", defaults.skip_preflight)),
        )


@dataclass
class SolanaAccount:
    """Solana account snapshot."""

    address: str
    lamports: int
    owner: str
    data: bytes = b""
    executable: bool = False

    @classmethod
    def from_rpc(cls, address: str, value: Dict[str, Any]) -> "SolanaAccount":
        raw = value.get("data") or ["", "base64"]
        payload = base64.b64decode(raw[0]) if isinstance(raw, list) else b""
        return cls(
            address=address,
            lamports=int(value.get("lamports", 0)),
            owner=value.get("owner", ""),
            data=payload,
            executable=bool(value.get("executable", False)),
        )


class SolanaRpcError(SubmissionFailed):
    """JSON-RPC level error returned by the node."""

    def __init__(self, method: str, error: Dict[str, Any]):
        self.method = method
        self.code = error.get("code")
        self.rpc_message = error.get("message", "")
        data = error.get("data") or {}
        logs = list(data.get("logs") or []) if isinstance(data, dict) else []
        super().__init__(
            f"{method}: {self.rpc_message} (code {self.code})",
            chain=CHAIN,
            logs=logs,
            error_code="RPC_ERROR",
        )


class KeypairSigner:
    """Signs transactions with a local keypair."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign(self, message: Message, recent_blockhash: Hash) -> Transaction:
        return Transaction([self.keypair], message, recent_blockhash)


class SolanaClient:
    """Async Solana JSON-RPC client."""

    def __init__(self, config: Optional[SolanaConfig] = None):
        """Initialize Solana RPC client."""
        self.config = config or SolanaConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, params: Optional[list] = None) -> Any:
        """Make an RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            session = self._get_session()
            async with session.post(self.config.rpc_url, json=payload) as response:
                response.raise_for_status()
                result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise create_transport_error(method, e, chain=CHAIN) from e
        if not isinstance(result, dict):
            raise SubmissionFailed(f"Malformed {method} response: {result!r}", chain=CHAIN)
        if "error" in result:
            raise SolanaRpcError(method, result["error"])
        return result.get("result")

    async def get_account_info(self, address: Union[str, Pubkey]) -> Optional[SolanaAccount]:
        """Get account information, or None if the account does not exist."""
        address = str(address)
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.config.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            return None
        return SolanaAccount.from_rpc(address, value)

    async def account_exists(self, address: Union[str, Pubkey]) -> bool:
        return await self.get_account_info(address) is not None

    async def get_balance(self, address: Union[str, Pubkey]) -> int:
        """Get account balance in lamports."""
        result = await self._call(
            "getBalance", [str(address), {"commitment": self.config.commitment}]
        )
        return int((result or {}).get("value", 0))

    async def get_token_amount(self, token_account: Union[str, Pubkey]) -> int:
        """Raw SPL token amount (u64 at offset 64), 0 if the account is missing."""
        account = await self.get_account_info(token_account)
        if account is None or len(account.data) < SPL_TOKEN_AMOUNT_OFFSET + 8:
            return 0
        return decode_uint(
            account.data[SPL_TOKEN_AMOUNT_OFFSET : SPL_TOKEN_AMOUNT_OFFSET + 8], 8
        )

    async def get_latest_blockhash(self) -> Hash:
        """Get latest blockhash."""
        result = await self._call(
            "getLatestBlockhash", [{"commitment": self.config.commitment}]
        )
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as e:
            raise SubmissionFailed(
                f"Malformed getLatestBlockhash response: {result!r}", chain=CHAIN, cause=e
            ) from e

    async def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction and return its signature."""
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")
        options = {
            "encoding": "base64",
            "skipPreflight": self.config.skip_preflight,
            "preflightCommitment": self.config.commitment,
        }
        try:
            return await self._call("sendTransaction", [encoded, options])
        except SolanaRpcError as e:
            raise SubmissionFailed(
                f"Transaction rejected: {e.rpc_message}",
                chain=CHAIN,
                logs=e.logs,
                cause=e,
            ) from e

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = (result or {}).get("value") or [None]
        return statuses[0]

    async def get_transaction_logs(self, signature: str) -> List[str]:
        """Program log lines recorded for a landed transaction."""
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        meta = (result or {}).get("meta") or {}
        return list(meta.get("logMessages") or [])

    async def _failure_logs(self, signature: str) -> List[str]:
        try:
            return await self.get_transaction_logs(signature)
        except CipherBridgeError as e:
            logger.warning(f"Could not fetch logs for {signature}: {e.message}")
            return []

    async def confirm_transaction(self, signature: str) -> Dict[str, Any]:
        """Poll until the signature reaches the configured commitment.

        Raises:
            SubmissionFailed: the transaction landed with an error.
            ConfirmationTimeout: not confirmed within ``confirmation_timeout``.
        """
        wanted = ("confirmed", "finalized") if self.config.commitment != "finalized" else ("finalized",)
        if self.config.commitment == "processed":
            wanted = ("processed", "confirmed", "finalized")

        deadline = time.monotonic() + self.config.confirmation_timeout
        while True:
            status = await self.get_signature_status(signature)
            if status is not None:
                if status.get("err") is not None:
                    raise SubmissionFailed(
                        f"Transaction {signature} failed: {status['err']}",
                        chain=CHAIN,
                        transaction_id=signature,
                        logs=await self._failure_logs(signature),
                    )
                if status.get("confirmationStatus") in wanted:
                    logger.debug(f"Confirmed {signature} at slot {status.get('slot')}")
                    return status
            if time.monotonic() >= deadline:
                raise create_timeout_error(
                    "confirm_transaction",
                    self.config.confirmation_timeout,
                    transaction_id=signature,
                    chain=CHAIN,
                )
            await asyncio.sleep(self.config.confirmation_poll_interval)

    async def sign_and_send(
        self, instructions: Sequence[Instruction], signer: Any
    ) -> str:
        """Compile, sign, submit and confirm; returns the signature."""
        blockhash = await self.get_latest_blockhash()
        message = Message.new_with_blockhash(list(instructions), signer.pubkey, blockhash)
        transaction = await signer.sign(message, blockhash)
        signature = await self.send_transaction(transaction)
        logger.info(f"Submitted {len(instructions)} instruction(s): {signature}")
        await self.confirm_transaction(signature)
        return signature
