"""
Vesting-specific exception hierarchy for tokenvest.

Provides typed exceptions for stream operations so callers can handle each
failure kind precisely. Every failure is terminal for the operation that
raised it: no state is changed before the exception propagates.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting engine errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether resubmitting the same operation later can succeed
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for CLI/JSON output."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# ==================== Authorization Errors ====================


class NotAuthorizedError(VestingError):
    """Raised when the caller lacks the admin, creator or ownership role."""
    pass


# ==================== Validation Errors ====================


class InvalidParametersError(VestingError):
    """Raised when stream parameters fail validation.

    Examples: zero amount, cliff above amount, non-future start time,
    zero duration without the full-cliff exception.
    """
    pass


# ==================== Stream State Errors ====================


class StreamAlreadyExistsError(VestingError):
    """Raised when a beneficiary already holds a live stream (keyed admission)."""
    pass


class StreamNotFoundError(VestingError):
    """Raised when no live stream exists for the given beneficiary or handle."""
    pass


class NothingToClaimError(VestingError):
    """Raised when the unlocked-minus-claimed amount is zero at this instant."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        # Claims become possible again once time advances
        super().__init__(message, details=details, recoverable=True)


# ==================== Custody Errors ====================


class CustodyError(VestingError):
    """Raised when the custody ledger rejects a balance movement."""
    pass


class InsufficientBalanceError(CustodyError):
    """Raised when an account lacks sufficient balance for a transfer."""
    pass


class RecipientNotProvisionedError(CustodyError):
    """Raised when a transfer targets an account that cannot hold the asset yet."""
    pass


# ==================== Storage Errors ====================


class StorageError(VestingError):
    """Raised when registry snapshot storage fails."""
    pass


class CorruptedDataError(StorageError):
    """Raised when a stored snapshot is corrupted or fails checksum verification."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when required configuration is missing or invalid."""
    pass


__all__ = [
    "VestingError",
    "NotAuthorizedError",
    "InvalidParametersError",
    "StreamAlreadyExistsError",
    "StreamNotFoundError",
    "NothingToClaimError",
    "CustodyError",
    "InsufficientBalanceError",
    "RecipientNotProvisionedError",
    "StorageError",
    "CorruptedDataError",
    "ConfigurationError",
]
