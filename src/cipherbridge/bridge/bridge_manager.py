"""
Bridge orchestration for CipherBridge.

This module drives a cross-ledger transfer through its lifecycle:
- Quote the transfer
- Encrypt the amount when the transfer is private
- Optional pre-bridge wrap and post-bridge unwrap steps
- Hand the transfer to a relay and track it to the destination ledger

The relay transport is injected through the ``BridgeRelay`` interface. Flow
failures never raise; they end the operation in the ``failed`` state.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from ..errors import (
    CipherBridgeError,
    SubmissionFailed,
    create_timeout_error,
    create_transport_error,
)
from ..logging import LogContext, get_logger
from .bridge_types import (
    ActionFamily,
    AmountLike,
    BridgeOperation,
    BridgeQuote,
    BridgeResult,
    BridgeStatus,
    ChainKind,
    EncryptedAmount,
    EncryptionContext,
    RelayStatus,
    SessionState,
    TokenSymbol,
    parse_amount,
    to_base_units,
)
from .gateway import ConfidentialityGateway
from .quotes import quote_bridge

logger = get_logger(__name__)

DEFAULT_RELAY_URL = "https://api.testnet.relay.link"
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_TRACK_TIMEOUT = 600.0

COMPLETED_STATUSES = frozenset({"completed", "success"})
FAILED_STATUSES = frozenset({"failed", "failure", "refund", "refunded"})

BridgeStep = Callable[[BridgeOperation], Awaitable[Any]]


@dataclass(frozen=True)
class BridgeToken:
    """One side of a bridgeable token pair."""

    chain: ChainKind
    symbol: str
    decimals: int
    address: str


BRIDGE_TOKENS: Dict[TokenSymbol, Dict[ChainKind, BridgeToken]] = {
    TokenSymbol.USDC: {
        ChainKind.EVM: BridgeToken(
            ChainKind.EVM, "cUSDC", 6, "0x789d6e7f86641829636605d8f64483d735165d70"
        ),
        ChainKind.SVM: BridgeToken(
            ChainKind.SVM, "cUSDC-SOL", 6, "11111111111111111111111111111111"
        ),
    },
    TokenSymbol.ETH: {
        ChainKind.EVM: BridgeToken(
            ChainKind.EVM, "cETH", 18, "0x525c34cb249826f74352D086d494957920B2F2E4"
        ),
        ChainKind.SVM: BridgeToken(
            ChainKind.SVM, "wETH-SOL", 9, "11111111111111111111111111111111"
        ),
    },
}


class BridgeRelay(ABC):
    """Transport that carries a transfer between ledgers."""

    @abstractmethod
    async def submit(
        self,
        operation: BridgeOperation,
        quote: BridgeQuote,
        encrypted: Optional[EncryptedAmount] = None,
    ) -> Optional[str]:
        """Submit the source-side transfer; return its transaction id."""

    @abstractmethod
    async def track(self, source_tx: str) -> RelayStatus:
        """Wait for the destination side and report the outcome."""


class HttpRelay(BridgeRelay):
    """Relay API client.

    ``POST /execute`` answers ``{"txHash"}``; ``GET /status/<tx>`` answers
    ``{"status", "destTxHash", "confirmations", "error"}``. Status is polled
    every ``poll_interval`` seconds until it settles or ``track_timeout``
    passes.
    """

    def __init__(
        self,
        relay_url: str = DEFAULT_RELAY_URL,
        timeout: float = 30.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        track_timeout: float = DEFAULT_TRACK_TIMEOUT,
    ):
        self.relay_url = relay_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.track_timeout = track_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: Any) -> "HttpRelay":
        """Relay client for an ``EngineConfig``."""
        return cls(
            config.relay_url,
            poll_interval=config.relay_poll_interval,
            track_timeout=config.relay_track_timeout,
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def submit(
        self,
        operation: BridgeOperation,
        quote: BridgeQuote,
        encrypted: Optional[EncryptedAmount] = None,
    ) -> Optional[str]:
        payload = {
            "quote": quote.to_dict(),
            "recipient": operation.recipient,
            "encryptedAmount": encrypted.hex() if encrypted is not None else None,
        }
        try:
            async with self._get_session().post(
                f"{self.relay_url}/execute", json=payload
            ) as response:
                response.raise_for_status()
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SubmissionFailed(
                f"Relay rejected transfer: {e}",
                chain=operation.source_chain.value,
                cause=e,
            ) from e
        if not isinstance(body, dict):
            raise SubmissionFailed(
                f"Malformed relay response: {body!r}", chain=operation.source_chain.value
            )
        return body.get("txHash")

    async def _status(self, source_tx: str) -> Dict[str, Any]:
        try:
            async with self._get_session().get(
                f"{self.relay_url}/status/{source_tx}"
            ) as response:
                response.raise_for_status()
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SubmissionFailed(
                f"Relay status unavailable: {e}", transaction_id=source_tx, cause=e
            ) from e
        if not isinstance(body, dict):
            raise SubmissionFailed(
                f"Malformed relay status: {body!r}", transaction_id=source_tx
            )
        return body

    async def track(self, source_tx: str) -> RelayStatus:
        """Poll the relay until the transfer completes or fails.

        Raises:
            SubmissionFailed: the status endpoint is unreachable or malformed.
            ConfirmationTimeout: still in progress after ``track_timeout``.
        """
        deadline = time.monotonic() + self.track_timeout
        while True:
            body = await self._status(source_tx)
            state = str(body.get("status") or "").lower()
            if state in COMPLETED_STATUSES or state in FAILED_STATUSES:
                return RelayStatus(
                    completed=state in COMPLETED_STATUSES,
                    source_tx=source_tx,
                    destination_tx=body.get("destTxHash"),
                    confirmations=_confirmations(body.get("confirmations")),
                    error=body.get("error"),
                )
            if time.monotonic() >= deadline:
                raise create_timeout_error(
                    "bridge transfer", self.track_timeout, transaction_id=source_tx
                )
            logger.debug(f"Relay status for {source_tx}: {state or 'unknown'}")
            await asyncio.sleep(self.poll_interval)


def _confirmations(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class BridgeOrchestrator:
    """Runs bridge operations for one session."""

    def __init__(
        self,
        session: SessionState,
        gateway: ConfidentialityGateway,
        relay: BridgeRelay,
        tokens: Optional[Dict[TokenSymbol, Dict[ChainKind, BridgeToken]]] = None,
        wrap_step: Optional[BridgeStep] = None,
        unwrap_step: Optional[BridgeStep] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.relay = relay
        self.tokens = tokens or BRIDGE_TOKENS
        self.wrap_step = wrap_step
        self.unwrap_step = unwrap_step
        self.operations: Dict[str, BridgeOperation] = {}

    def get_operation(self, operation_id: str) -> Optional[BridgeOperation]:
        return self.operations.get(operation_id)

    def list_operations(self) -> List[BridgeOperation]:
        return list(self.operations.values())

    def _fail(self, operation: BridgeOperation, error: str) -> BridgeResult:
        operation.transition_to(BridgeStatus.FAILED, error=error)
        logger.error(
            f"Bridge {operation.operation_id} failed: {error}",
            context=LogContext(
                chain=operation.source_chain.value,
                component="bridge",
                operation=operation.operation_id,
                session_id=self.session.session_id,
                transaction_id=operation.source_tx,
            ),
        )
        return BridgeResult.from_operation(operation)

    async def execute(
        self,
        source: ChainKind,
        destination: ChainKind,
        token: Union[TokenSymbol, str],
        amount: AmountLike,
        private: bool = False,
        recipient: Optional[str] = None,
        wrap_first: bool = False,
        unwrap_after: bool = False,
    ) -> BridgeResult:
        """Move ``amount`` of ``token`` from ``source`` to ``destination``.

        Input and session problems raise before the operation starts;
        everything after that ends in ``completed`` or ``failed``.
        """
        token = token if isinstance(token, TokenSymbol) else TokenSymbol(token)
        parse_amount(amount)
        owner = self.session.identity(source)

        with self.session.in_flight(ActionFamily.BRIDGE):
            operation = BridgeOperation(
                source_chain=source,
                destination_chain=destination,
                token=token,
                amount=str(amount),
                private=private,
                recipient=recipient or self.session.identities.get(destination),
            )
            self.operations[operation.operation_id] = operation
            logger.info(
                f"Bridge {operation.operation_id}: {amount} {token.value} "
                f"{source.value} -> {destination.value} (private={private})"
            )
            try:
                return await self._run(operation, owner, wrap_first, unwrap_after)
            except CipherBridgeError as e:
                if operation.status.is_terminal:
                    raise
                return self._fail(operation, e.message)
            except Exception as e:
                if operation.status.is_terminal:
                    raise
                logger.exception(f"Bridge {operation.operation_id} step raised {type(e).__name__}")
                return self._fail(operation, _as_bridge_error(e, operation).message)

    async def _run(
        self,
        operation: BridgeOperation,
        owner: str,
        wrap_first: bool,
        unwrap_after: bool,
    ) -> BridgeResult:
        try:
            quote = quote_bridge(
                operation.source_chain,
                operation.destination_chain,
                operation.token,
                operation.amount,
                operation.private,
            )
        except CipherBridgeError as e:
            logger.warning(f"Bridge quote failed: {e.message}")
            return self._fail(operation, "Failed to get bridge quote")

        encrypted = None
        if operation.private:
            operation.transition_to(BridgeStatus.ENCRYPTING)
            source_token = self.tokens[operation.token][operation.source_chain]
            try:
                encrypted = await self.gateway.encrypt(
                    to_base_units(operation.amount, source_token.decimals),
                    EncryptionContext(owner=owner, program=source_token.address),
                    decimals=source_token.decimals,
                )
            except CipherBridgeError as e:
                return self._fail(operation, e.message)
            logger.debug(f"Encrypted bridge amount {encrypted.preview()}")

        if wrap_first and self.wrap_step is not None:
            operation.transition_to(BridgeStatus.WRAPPING)
            try:
                await self.wrap_step(operation)
            except CipherBridgeError as e:
                return self._fail(operation, e.message)

        operation.transition_to(BridgeStatus.BRIDGING)
        try:
            source_tx = await self.relay.submit(operation, quote, encrypted)
        except CipherBridgeError as e:
            return self._fail(operation, e.message)
        if not source_tx:
            return self._fail(operation, "Bridge execution failed")
        operation.source_tx = source_tx
        logger.info(f"Bridge {operation.operation_id} submitted: {source_tx}")

        try:
            status = await self.relay.track(source_tx)
        except CipherBridgeError as e:
            return self._fail(operation, e.message)
        if not status.completed:
            return self._fail(operation, status.error or "Bridge transfer did not complete")
        operation.destination_tx = status.destination_tx

        if unwrap_after and self.unwrap_step is not None:
            operation.transition_to(BridgeStatus.UNWRAPPING)
            try:
                await self.unwrap_step(operation)
            except CipherBridgeError as e:
                return self._fail(operation, e.message)

        operation.transition_to(BridgeStatus.COMPLETED)
        logger.info(
            f"Bridge {operation.operation_id} completed: {status.destination_tx} "
            f"({status.confirmations} confirmations)"
        )
        return BridgeResult.from_operation(operation)


def _as_bridge_error(error: Exception, operation: BridgeOperation) -> CipherBridgeError:
    """Map an unexpected step failure onto the error hierarchy."""
    if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        return create_transport_error(
            "bridge", error, chain=operation.source_chain.value, transaction_id=operation.source_tx
        )
    return CipherBridgeError(
        f"Bridge step failed: {type(error).__name__}: {error}",
        error_code="BRIDGE_STEP_FAILED",
        cause=error,
    )
