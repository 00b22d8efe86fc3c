"""
Error taxonomy for the tip sync core.

  ValidationError   -- bad amount / phone / plan cap; rejected at the edge
  StorageError      -- local queue read/write failure; surfaced to the caller
  GatewayError      -- push-payment submission rejected or timed out; queued
  CallbackMismatch  -- settlement callback for an unknown transaction; ignored
  RecordStoreError  -- server-of-record write failure
"""

from __future__ import annotations


class TipError(Exception):
    """Base class for all tip sync errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TipError):
    """Raised when a tip request fails edge validation.

    Attributes:
        field: Name of the offending input field, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StorageError(TipError):
    """Raised when the local durable queue cannot be read or written."""


class GatewayError(TipError):
    """Raised when the payment gateway does not accept a submission.

    Attributes:
        retryable: False when the gateway answered with an explicit
            rejection (non-zero response code, 4xx), True for timeouts,
            connection errors and 5xx responses.
        response_code: The gateway's response / error code, if any.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        response_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.response_code = response_code

    def __repr__(self) -> str:
        return (
            f"GatewayError(message={self.message!r}, "
            f"retryable={self.retryable!r}, code={self.response_code!r})"
        )


class CallbackMismatch(TipError):
    """Raised when a settlement callback references no pending tip."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"No pending tip for transaction {transaction_id}")
        self.transaction_id = transaction_id


class RecordStoreError(TipError):
    """Raised when the server-of-record rejects a tip write."""
