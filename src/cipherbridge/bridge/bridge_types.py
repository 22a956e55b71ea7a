"""
Cross-ledger bridge types and data structures for CipherBridge.

This module defines the core types shared by the ledger adapters, the
confidentiality gateway, the shadow balance ledger and the orchestrator.
"""

import contextlib
import math
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Union

from ..errors import (
    InvalidAmount,
    InvalidStateTransition,
    NotConnected,
    OperationInProgress,
    ValidationError,
)
from .codec import handle_bytes

AmountLike = Union[str, int, float, Decimal]


class ChainKind(Enum):
    """Ledgers the engine can operate on."""

    EVM = "base-sepolia"
    SVM = "solana-devnet"


class TokenKind(Enum):
    """Token families.

    NATIVE is the native-asset equivalent (ETH / SOL), STABLE is the
    stable-asset equivalent (USDC).
    """

    NATIVE = "native"
    STABLE = "stable"


class TokenSymbol(Enum):
    """Bridgeable token symbols."""

    ETH = "ETH"
    USDC = "USDC"


class SwapDirection(Enum):
    """Swap directions between the stable and base assets."""

    STABLE_TO_BASE = "stable_to_base"
    BASE_TO_STABLE = "base_to_stable"


class ActionFamily(Enum):
    """User-triggered action families, each guarded by an in-flight flag."""

    WRAP = "wrap"
    UNWRAP = "unwrap"
    TRANSFER = "transfer"
    SWAP = "swap"
    APPROVE = "approve"
    ADD_LIQUIDITY = "add_liquidity"
    FAUCET = "faucet"
    BRIDGE = "bridge"
    DECRYPT = "decrypt"


class BridgeStatus(Enum):
    """Bridge operation states, ordered by rank."""

    IDLE = "idle"
    ENCRYPTING = "encrypting"
    WRAPPING = "wrapping"
    BRIDGING = "bridging"
    UNWRAPPING = "unwrapping"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (BridgeStatus.COMPLETED, BridgeStatus.FAILED)


_STATUS_RANK = {
    BridgeStatus.IDLE: 0,
    BridgeStatus.ENCRYPTING: 1,
    BridgeStatus.WRAPPING: 2,
    BridgeStatus.BRIDGING: 3,
    BridgeStatus.UNWRAPPING: 4,
    BridgeStatus.COMPLETED: 5,
    BridgeStatus.FAILED: 5,
}


@dataclass(frozen=True)
class TokenConfig:
    """A confidential token on one ledger."""

    chain: ChainKind
    kind: TokenKind
    symbol: str
    decimals: int
    address: str
    underlying: Optional[str] = None

    @property
    def display_precision(self) -> int:
        """Decimal places kept in the shadow balance cache."""
        return 4 if self.kind == TokenKind.NATIVE else 2

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "chain": self.chain.value,
            "kind": self.kind.value,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "address": self.address,
            "underlying": self.underlying,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenConfig":
        """Create from dictionary."""
        return cls(
            chain=ChainKind(data["chain"]),
            kind=TokenKind(data["kind"]),
            symbol=data["symbol"],
            decimals=int(data["decimals"]),
            address=data["address"],
            underlying=data.get("underlying"),
        )


@dataclass(frozen=True)
class EncryptionContext:
    """Identity context a ciphertext is bound to."""

    owner: str
    program: str
    value_kind: str = "euint256"


@dataclass(frozen=True)
class EncryptedAmount:
    """Opaque ciphertext handle. Never decoded client-side."""

    ciphertext: bytes
    decimals: int
    owner: str
    program: str
    value_kind: str = "euint256"

    def __post_init__(self):
        if not isinstance(self.ciphertext, (bytes, bytearray)) or not self.ciphertext:
            raise ValidationError(
                "Encrypted amount requires non-empty ciphertext bytes",
                field="ciphertext",
            )

    def handle_bytes(self) -> bytes:
        """16-byte LE handle field used by fixed-size instruction arguments."""
        return handle_bytes(self.ciphertext)

    def hex(self) -> str:
        """``0x``-prefixed hex, the form EVM ``bytes`` arguments take."""
        return "0x" + bytes(self.ciphertext).hex()

    def preview(self, length: int = 10) -> str:
        """Short prefix safe to log."""
        return self.hex()[: 2 + length] + "..."

    def __repr__(self) -> str:
        return (
            f"EncryptedAmount({self.preview()}, decimals={self.decimals}, "
            f"owner={self.owner}, program={self.program})"
        )


@dataclass
class LedgerTransaction:
    """Ordered, non-empty list of steps submitted atomically to one ledger.

    For the SVM adapter the steps are instructions; for the EVM adapter a
    transaction holds exactly one contract call.
    """

    chain: ChainKind
    steps: List[Any]
    action: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.steps:
            raise ValidationError(
                "A transaction needs at least one instruction", field="steps"
            )
        if self.chain == ChainKind.EVM and len(self.steps) != 1:
            raise ValidationError(
                "EVM transactions carry exactly one contract call",
                field="steps",
                value=len(self.steps),
                expected=1,
            )

    def __len__(self) -> int:
        return len(self.steps)


@dataclass
class TransactionReceipt:
    """Outcome of a submitted and confirmed transaction."""

    chain: ChainKind
    transaction_id: str
    success: bool = True
    logs: List[str] = field(default_factory=list)
    confirmed_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "chain": self.chain.value,
            "transaction_id": self.transaction_id,
            "success": self.success,
            "logs": self.logs,
            "confirmed_at": self.confirmed_at,
        }


@dataclass
class BridgeQuote:
    """Quote for moving a token between ledgers."""

    source_chain: ChainKind
    destination_chain: ChainKind
    token: TokenSymbol
    amount: str
    estimated_fee: str
    estimated_time: str
    private: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_chain": self.source_chain.value,
            "destination_chain": self.destination_chain.value,
            "token": self.token.value,
            "amount": self.amount,
            "estimated_fee": self.estimated_fee,
            "estimated_time": self.estimated_time,
            "private": self.private,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeQuote":
        """Create from dictionary."""
        return cls(
            source_chain=ChainKind(data["source_chain"]),
            destination_chain=ChainKind(data["destination_chain"]),
            token=TokenSymbol(data["token"]),
            amount=data["amount"],
            estimated_fee=data["estimated_fee"],
            estimated_time=data["estimated_time"],
            private=data["private"],
        )


@dataclass
class RelayStatus:
    """Status report from the relay tracking a bridge transfer."""

    completed: bool
    source_tx: str
    destination_tx: Optional[str] = None
    confirmations: int = 0
    error: Optional[str] = None


@dataclass
class BridgeOperation:
    """A single cross-ledger transfer and its monotonic lifecycle."""

    source_chain: ChainKind
    destination_chain: ChainKind
    token: TokenSymbol
    amount: str
    private: bool
    recipient: Optional[str] = None
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: BridgeStatus = BridgeStatus.IDLE
    source_tx: Optional[str] = None
    destination_tx: Optional[str] = None
    error: Optional[str] = None
    history: List[BridgeStatus] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.source_chain == self.destination_chain:
            raise ValidationError(
                "Source and destination chains must differ",
                field="destination_chain",
                value=self.destination_chain.value,
            )
        if not self.history:
            self.history.append(self.status)

    def transition_to(self, status: BridgeStatus, error: Optional[str] = None) -> None:
        """Advance the lifecycle. States never move backwards."""
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Operation {self.operation_id} already {self.status.value}",
                current=self.status.value,
                requested=status.value,
            )
        if status.rank <= self.status.rank:
            raise InvalidStateTransition(
                f"Cannot move from {self.status.value} to {status.value}",
                current=self.status.value,
                requested=status.value,
            )
        self.status = status
        self.history.append(status)
        self.updated_at = time.time()
        if error is not None:
            self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "operation_id": self.operation_id,
            "source_chain": self.source_chain.value,
            "destination_chain": self.destination_chain.value,
            "token": self.token.value,
            "amount": self.amount,
            "private": self.private,
            "recipient": self.recipient,
            "status": self.status.value,
            "source_tx": self.source_tx,
            "destination_tx": self.destination_tx,
            "error": self.error,
            "history": [status.value for status in self.history],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class BridgeResult:
    """Terminal outcome of a bridge invocation."""

    status: BridgeStatus
    source_tx: Optional[str] = None
    destination_tx: Optional[str] = None
    error: Optional[str] = None
    operation_id: Optional[str] = None
    history: List[BridgeStatus] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == BridgeStatus.COMPLETED

    @classmethod
    def from_operation(cls, operation: BridgeOperation) -> "BridgeResult":
        return cls(
            status=operation.status,
            source_tx=operation.source_tx,
            destination_tx=operation.destination_tx,
            error=operation.error,
            operation_id=operation.operation_id,
            history=list(operation.history),
        )


@dataclass
class SessionState:
    """Per-session mutable state: connected identities and in-flight actions.

    Passed by reference to adapters, the operation engine and the
    orchestrator. There is no module-level session.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    identities: Dict[ChainKind, str] = field(default_factory=dict)
    in_flight_actions: Set[ActionFamily] = field(default_factory=set)

    def connect(self, chain: ChainKind, identity: str) -> None:
        if not identity:
            raise ValidationError("Identity must not be empty", field="identity")
        self.identities[chain] = identity

    def disconnect(self, chain: ChainKind) -> None:
        self.identities.pop(chain, None)

    def is_connected(self, chain: ChainKind) -> bool:
        return chain in self.identities

    def identity(self, chain: ChainKind) -> str:
        """Connected signing identity for ``chain``."""
        try:
            return self.identities[chain]
        except KeyError:
            raise NotConnected(
                f"No wallet connected for {chain.value}", chain=chain.value
            ) from None

    def is_in_flight(self, action: ActionFamily) -> bool:
        return action in self.in_flight_actions

    @contextlib.contextmanager
    def in_flight(self, action: ActionFamily) -> Iterator[None]:
        """Hold the in-flight flag for ``action``; a second holder is rejected."""
        if action in self.in_flight_actions:
            raise OperationInProgress(
                f"A {action.value} is already in progress", action=action.value
            )
        self.in_flight_actions.add(action)
        try:
            yield
        finally:
            self.in_flight_actions.discard(action)


def parse_amount(value: AmountLike, field_name: str = "amount") -> Decimal:
    """Parse a user amount into a positive finite Decimal.

    Raises:
        InvalidAmount: for NaN, infinities, non-positive or unparseable input.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid {field_name}: {value!r}", value=value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidAmount(f"Invalid {field_name}: {value!r}", value=value)
        value = repr(value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"Invalid {field_name}: {value!r}", value=value) from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Invalid {field_name}: {value!r}", value=value)
    return amount


def to_base_units(amount: AmountLike, decimals: int) -> int:
    """Scale a human amount to integer base units, flooring any remainder."""
    value = parse_amount(amount)
    scaled = (value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    units = int(scaled)
    if units <= 0:
        raise InvalidAmount(
            f"Amount {amount} is below the smallest unit at {decimals} decimals",
            value=amount,
        )
    return units


def from_base_units(units: int, decimals: int) -> Decimal:
    """Inverse of :func:`to_base_units` for display."""
    return Decimal(units) / (Decimal(10) ** decimals)
