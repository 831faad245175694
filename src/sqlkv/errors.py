"""Structured error types for sqlkv."""

from __future__ import annotations


class SqlkvError(Exception):
    """Base error for all sqlkv errors."""


class BackendError(SqlkvError):
    """Raised when an operation against the backing database fails."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Backend error during {operation}: {detail}")


class DecodeError(SqlkvError):
    """Raised when a stored value cannot be decoded into the requested shape."""

    def __init__(self, detail: str, payload: str | None = None) -> None:
        self.detail = detail
        self.payload = payload
        super().__init__(f"Cannot decode stored value: {detail}")


class TransactionConflictError(SqlkvError):
    """Raised when a transaction is started while another one is active.

    Only one transaction may be active per store. This signals a programming
    error in the caller and is never caught by the library.
    """

    def __init__(self) -> None:
        super().__init__("A transaction is already active on this store; nesting is not supported")
