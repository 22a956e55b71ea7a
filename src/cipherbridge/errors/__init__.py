"""CipherBridge Error Handling System.

This module provides the exception hierarchy for the confidential
operation engine: validation, account, balance, gateway, ledger and
session failures, each carrying structured context.
"""

from .exceptions import (
    AccountError,
    AccountNotInitialized,
    AddressDerivationExhausted,
    CipherBridgeError,
    ConfigurationError,
    ConfirmationTimeout,
    CryptographicError,
    DecryptionDenied,
    EncryptionUnavailable,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    GatewayError,
    InsufficientShadowBalance,
    InvalidAmount,
    InvalidStateTransition,
    LedgerError,
    NotConnected,
    OperationInProgress,
    RangeError,
    RecipientNotOnboarded,
    StorageError,
    SubmissionFailed,
    ValidationError,
    VaultUnderfunded,
    create_timeout_error,
    create_transport_error,
    create_validation_error,
)

__all__ = [
    # Base
    "CipherBridgeError",
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    # Validation
    "ValidationError",
    "RangeError",
    "InvalidAmount",
    # Accounts and balances
    "AccountError",
    "AccountNotInitialized",
    "RecipientNotOnboarded",
    "InsufficientShadowBalance",
    "VaultUnderfunded",
    # Crypto
    "CryptographicError",
    "AddressDerivationExhausted",
    # Gateway
    "GatewayError",
    "EncryptionUnavailable",
    "DecryptionDenied",
    # Ledger
    "LedgerError",
    "SubmissionFailed",
    "ConfirmationTimeout",
    # Session
    "NotConnected",
    "OperationInProgress",
    "InvalidStateTransition",
    # Misc
    "StorageError",
    "ConfigurationError",
    "create_validation_error",
    "create_timeout_error",
    "create_transport_error",
]
