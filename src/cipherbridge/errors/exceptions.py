"""Exception hierarchy for CipherBridge.

This module defines the structured error taxonomy used across the
confidential operation engine. Every failure is scoped to a single
operation and reported to the caller; nothing here is fatal to the process.
"""

import asyncio
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    CRYPTOGRAPHIC = "cryptographic"
    NETWORK = "network"
    STORAGE = "storage"
    ACCOUNT = "account"
    BALANCE = "balance"
    GATEWAY = "gateway"
    LEDGER = "ledger"
    SESSION = "session"
    BRIDGE = "bridge"
    CONFIGURATION = "configuration"
    TIMEOUT = "timeout"
    SYSTEM = "system"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    chain: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    wallet: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "chain": self.chain,
            "component": self.component,
            "operation": self.operation,
            "wallet": self.wallet,
            "session_id": self.session_id,
            "metadata": self.metadata,
        }


class CipherBridgeError(Exception):
    """Base exception for all CipherBridge errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.retryable = retryable
        self.metadata = metadata or {}
        self.timestamp = time.time()
        self.traceback = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        if self.category != ErrorCategory.SYSTEM:
            parts.append(f"Category: {self.category.value}")

        if self.retryable:
            parts.append("Retryable: Yes")

        return " | ".join(parts)


class ValidationError(CipherBridgeError):
    """Validation error."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "VALIDATION_FAILED")
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        self.field = field
        self.value = value
        self.expected = expected

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
                "expected": str(self.expected) if self.expected is not None else None,
            }
        )
        return data


class RangeError(ValidationError, ValueError):
    """Integer does not fit the requested fixed width."""

    def __init__(self, message: str, width: Optional[int] = None, **kwargs):
        kwargs.setdefault("error_code", "OUT_OF_RANGE")
        super().__init__(message, **kwargs)
        self.width = width


class InvalidAmount(ValidationError):
    """Amount is non-positive, non-finite or unparseable."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("field", "amount")
        kwargs.setdefault("expected", "positive finite number")
        kwargs.setdefault("error_code", "INVALID_AMOUNT")
        super().__init__(message, **kwargs)


class CryptographicError(CipherBridgeError):
    """Cryptographic error."""

    def __init__(
        self,
        message: str,
        algorithm: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CRYPTOGRAPHIC,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.algorithm = algorithm

    def to_dict(self) -> Dict[str, Any]:
        """Convert cryptographic error to dictionary."""
        data = super().to_dict()
        data.update({"algorithm": self.algorithm})
        return data


class AddressDerivationExhausted(CryptographicError):
    """No bump in the ledger's counter range produced an off-curve address."""

    def __init__(self, message: str, program_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "PDA_EXHAUSTED")
        super().__init__(message, algorithm="sha256-pda", **kwargs)
        self.program_id = program_id


class NotConnected(CipherBridgeError):
    """No signing identity is available for the requested chain."""

    def __init__(self, message: str, chain: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "NOT_CONNECTED")
        super().__init__(message, category=ErrorCategory.SESSION, **kwargs)
        self.chain = chain


class AccountError(CipherBridgeError):
    """Account state on the ledger is missing or unusable."""

    def __init__(
        self,
        message: str,
        account: Optional[str] = None,
        owner: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.ACCOUNT, **kwargs)
        self.account = account
        self.owner = owner

    def to_dict(self) -> Dict[str, Any]:
        """Convert account error to dictionary."""
        data = super().to_dict()
        data.update({"account": self.account, "owner": self.owner})
        return data


class AccountNotInitialized(AccountError):
    """The caller's own balance account has not been created yet."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "ACCOUNT_NOT_INITIALIZED")
        super().__init__(message, **kwargs)


class RecipientNotOnboarded(AccountError):
    """The recipient has no balance account and the sender may not create one."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "RECIPIENT_NOT_ONBOARDED")
        super().__init__(message, **kwargs)


class InsufficientShadowBalance(CipherBridgeError):
    """Local cached balance is lower than the requested amount."""

    def __init__(
        self,
        message: str,
        available: Optional[Any] = None,
        requested: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "INSUFFICIENT_SHADOW_BALANCE")
        super().__init__(message, category=ErrorCategory.BALANCE, **kwargs)
        self.available = available
        self.requested = requested

    def to_dict(self) -> Dict[str, Any]:
        """Convert balance error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "available": str(self.available) if self.available is not None else None,
                "requested": str(self.requested) if self.requested is not None else None,
            }
        )
        return data


class VaultUnderfunded(CipherBridgeError):
    """The program vault holds less than the amount being withdrawn."""

    def __init__(
        self,
        message: str,
        vault: Optional[str] = None,
        available: Optional[int] = None,
        requested: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "VAULT_UNDERFUNDED")
        super().__init__(message, category=ErrorCategory.BALANCE, **kwargs)
        self.vault = vault
        self.available = available
        self.requested = requested


class GatewayError(CipherBridgeError):
    """Confidentiality gateway failure. Never retried automatically."""

    def __init__(self, message: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(
            message, category=ErrorCategory.GATEWAY, retryable=False, **kwargs
        )
        self.endpoint = endpoint


class EncryptionUnavailable(GatewayError):
    """The gateway could not produce a ciphertext."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "ENCRYPTION_UNAVAILABLE")
        super().__init__(message, **kwargs)


class DecryptionDenied(GatewayError):
    """The gateway refused or failed to reveal a plaintext."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "DECRYPTION_DENIED")
        super().__init__(message, **kwargs)


class LedgerError(CipherBridgeError):
    """Ledger-level submission or confirmation failure."""

    LOG_TAIL = 3

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        transaction_id: Optional[str] = None,
        logs: Optional[List[str]] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.LEDGER, **kwargs)
        self.chain = chain
        self.transaction_id = transaction_id
        self.logs = list(logs or [])

    @property
    def log_tail(self) -> List[str]:
        """Last few program log lines, the useful part of a failed simulation."""
        return self.logs[-self.LOG_TAIL :]

    def __str__(self) -> str:
        text = super().__str__()
        if self.logs:
            text += " | Logs: " + "\n".join(self.log_tail)
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert ledger error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "chain": self.chain,
                "transaction_id": self.transaction_id,
                "logs": self.log_tail,
            }
        )
        return data


class SubmissionFailed(LedgerError):
    """The ledger rejected the transaction."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "SUBMISSION_FAILED")
        super().__init__(message, **kwargs)


class ConfirmationTimeout(LedgerError):
    """The transaction was not confirmed within the allotted time."""

    def __init__(
        self, message: str, timeout_duration: Optional[float] = None, **kwargs
    ):
        kwargs.setdefault("error_code", "CONFIRMATION_TIMEOUT")
        super().__init__(message, **kwargs)
        self.timeout_duration = timeout_duration


class OperationInProgress(CipherBridgeError):
    """An action of the same family is already outstanding in this session."""

    def __init__(self, message: str, action: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "OPERATION_IN_PROGRESS")
        super().__init__(message, category=ErrorCategory.SESSION, **kwargs)
        self.action = action


class InvalidStateTransition(CipherBridgeError):
    """A bridge operation attempted to move backwards or leave a terminal state."""

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "INVALID_STATE_TRANSITION")
        super().__init__(message, category=ErrorCategory.BRIDGE, **kwargs)
        self.current = current
        self.requested = requested


class StorageError(CipherBridgeError):
    """Storage error."""

    def __init__(
        self,
        message: str,
        storage_type: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.STORAGE, **kwargs)
        self.storage_type = storage_type
        self.operation = operation


class ConfigurationError(CipherBridgeError):
    """Configuration error."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "config_key": self.config_key,
                "config_value": str(self.config_value)
                if self.config_value is not None
                else None,
            }
        )
        return data


# Convenience functions for common error patterns
def create_validation_error(
    field: str, value: Any, expected: Any, message: Optional[str] = None
) -> ValidationError:
    """Create a validation error."""
    if message is None:
        message = f"Invalid value for field '{field}': expected {expected}, got {value}"

    return ValidationError(message=message, field=field, value=value, expected=expected)


def create_timeout_error(
    operation: str,
    timeout_duration: float,
    transaction_id: Optional[str] = None,
    chain: Optional[str] = None,
) -> ConfirmationTimeout:
    """Create a confirmation timeout error."""
    message = f"Operation '{operation}' not confirmed after {timeout_duration} seconds"
    return ConfirmationTimeout(
        message,
        timeout_duration=timeout_duration,
        transaction_id=transaction_id,
        chain=chain,
    )


def create_transport_error(
    operation: str,
    error: BaseException,
    chain: Optional[str] = None,
    transaction_id: Optional[str] = None,
) -> LedgerError:
    """Map a transport failure (connection, HTTP, timeout) onto the ledger errors."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ConfirmationTimeout(
            f"Operation '{operation}' timed out: {error}",
            chain=chain,
            transaction_id=transaction_id,
            cause=error,
            retryable=True,
        )
    return SubmissionFailed(
        f"Operation '{operation}' failed: {error}",
        chain=chain,
        transaction_id=transaction_id,
        cause=error,
        retryable=True,
    )
