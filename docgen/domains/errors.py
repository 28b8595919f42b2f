"""
Error taxonomy for the sync layer.

RemoteFailure is raised by the collection client and caught by the stores.
ParseFailure never leaves the aggregators or the read-state storage.
ReconciliationFailure is raised inside a replace-all and reported through the
store's error slot.
"""

from __future__ import annotations


class RemoteFailure(RuntimeError):
    """Raised when a remote collection operation fails (network, validation, not-found)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        collection: str,
        status_code: int | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.collection = collection
        self.status_code = status_code
        self.original = original

    @property
    def kind(self) -> str:
        if self.status_code is None:
            return "network"
        if self.status_code == 404:
            return "not_found"
        if self.status_code == 400:
            return "validation"
        return "server"


class ParseFailure(ValueError):
    """Raised when a date or stored payload cannot be decoded."""


class ReconciliationFailure(RuntimeError):
    """Raised when a destructive replace-all fails partway."""

    def __init__(self, message: str, failures: list[Exception] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or []
