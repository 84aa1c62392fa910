"""
Multisig Transaction Error Model

This module provides the error handling framework for multisig_tx. Every
failure the assembly pipeline can surface maps to one class here, and each
class says whether the attempt can be retried, must be rebuilt, or is merely
inconclusive.
"""

from __future__ import annotations
from typing import Optional, Dict, Any
from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes grouped by the layer that raises them."""

    # Success
    OK = 0

    # General errors (1-99)
    UNKNOWN = 1
    INTERNAL = 2
    INVALID_STATE = 3
    CONFIGURATION = 4

    # Encoding errors (100-199)
    MALFORMED_ENVELOPE = 100
    SCHEMA_VERSION = 101
    NETWORK_MISMATCH = 102

    # Network errors (200-299)
    TRANSPORT_ERROR = 200
    TIMEOUT = 201
    TRY_AGAIN_LATER = 202

    # Authorization errors (300-399)
    AUTHORIZATION_REJECTED = 300
    INVALID_SIGNATURE = 301
    BODY_MISMATCH = 302

    # Transaction errors (400-499)
    SIMULATION_FAILED = 400
    TRANSACTION_REJECTED = 401
    SEQUENCE_CONFLICT = 402
    FINALIZATION_TIMEOUT = 403


class MultisigTxError(Exception):
    """
    Base class for all multisig_tx errors.

    Carries a machine-readable code and free-form details next to the
    human-readable message.
    """

    default_code = ErrorCode.UNKNOWN

    def __init__(self, message: str, code: Optional[ErrorCode] = None,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        """
        Initialize an error.

        Args:
            message: Error message
            code: Error code (defaults to the class default)
            details: Additional error details
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.code.name}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class MalformedEnvelope(MultisigTxError):
    """Corrupt or incompatible transfer data. The envelope must be discarded."""

    default_code = ErrorCode.MALFORMED_ENVELOPE


class SimulationError(MultisigTxError):
    """The dry run reports the operation cannot succeed as constructed."""

    default_code = ErrorCode.SIMULATION_FAILED


class AuthorizationRejected(MultisigTxError):
    """Second-phase simulation or signature mismatch. Rebuild from scratch."""

    default_code = ErrorCode.AUTHORIZATION_REJECTED


class InvalidSignatureError(AuthorizationRejected):
    """A signature does not verify against the current body hash."""

    default_code = ErrorCode.INVALID_SIGNATURE


class TransportError(MultisigTxError):
    """Transient network or service failure. Retryable at the caller's discretion."""

    default_code = ErrorCode.TRANSPORT_ERROR


class FinalizationTimeout(MultisigTxError):
    """
    Polling gave up before the ledger reported a terminal status.

    This is inconclusive: the transaction may still finalize later and the
    caller must query its status again before treating it as failed.
    """

    default_code = ErrorCode.FINALIZATION_TIMEOUT

    def __init__(self, message: str, tx_hash: Optional[str] = None, attempts: int = 0,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        details = dict(details or {})
        if tx_hash:
            details.setdefault("txHash", tx_hash)
        details.setdefault("attempts", attempts)
        super().__init__(message, None, details, cause)
        self.tx_hash = tx_hash
        self.attempts = attempts


class SequenceConflict(MultisigTxError):
    """Stale sequence number. Refetch the account and rebuild."""

    default_code = ErrorCode.SEQUENCE_CONFLICT


class TransactionRejected(MultisigTxError):
    """The ledger rejected the transaction with a terminal reason."""

    default_code = ErrorCode.TRANSACTION_REJECTED

    def __init__(self, message: str, reason: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        details = dict(details or {})
        if reason:
            details.setdefault("reason", reason)
        super().__init__(message, None, details, cause)
        self.reason = reason


class PipelineStateError(MultisigTxError):
    """An operation was requested in a state that does not allow it."""

    default_code = ErrorCode.INVALID_STATE


class ConfigurationError(MultisigTxError):
    """Raised when configuration loading or validation fails."""

    default_code = ErrorCode.CONFIGURATION


class ErrorHandler:
    """
    Utility class for handling and categorizing errors.
    """

    @staticmethod
    def is_retryable(error: Exception) -> bool:
        """
        Check if an error is retryable.

        Only transport failures qualify. Simulation, authorization and
        encoding failures are fatal to the body; sequence conflicts need a
        rebuild; finalization timeouts need a status query, not a resubmit.

        Args:
            error: Exception to check

        Returns:
            True if the error should be retried
        """
        return isinstance(error, TransportError)

    @staticmethod
    def requires_rebuild(error: Exception) -> bool:
        """
        Check if an error requires starting a fresh attempt from BUILDING.

        Args:
            error: Exception to check

        Returns:
            True if the body must be rebuilt with a fresh sequence number
        """
        return isinstance(error, (SimulationError, AuthorizationRejected, SequenceConflict))

    @staticmethod
    def extract_tx_hash(error: Exception) -> Optional[str]:
        """
        Extract transaction hash from error details if available.

        Args:
            error: Exception to examine

        Returns:
            Transaction hash if found
        """
        if isinstance(error, MultisigTxError) and error.details:
            return error.details.get("txHash")
        return None


__all__ = [
    "ErrorCode",
    "MultisigTxError",
    "MalformedEnvelope",
    "SimulationError",
    "AuthorizationRejected",
    "InvalidSignatureError",
    "TransportError",
    "FinalizationTimeout",
    "SequenceConflict",
    "TransactionRejected",
    "PipelineStateError",
    "ConfigurationError",
    "ErrorHandler",
]
