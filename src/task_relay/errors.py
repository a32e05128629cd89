"""Error taxonomy for task relay operations.

Per-item errors (validation, routing, conversion, filesystem) are caught at
the batch loop boundary and counted.  Registry and ledger errors raised at
startup abort the whole invocation.
"""

from __future__ import annotations


class TaskRelayError(Exception):
    """Base class for task relay failures."""


class ValidationError(TaskRelayError):
    """Malformed task filename or task document.

    Recoverable by manual correction; the file is parked, never deleted.
    """


class RoutingError(TaskRelayError):
    """Task target cannot be mapped to a destination inbox."""


class NotFoundError(RoutingError):
    """Repository id is not present in the registry."""

    def __init__(self, repository: str) -> None:
        super().__init__(f"Repository not registered: {repository!r}")
        self.repository = repository


class RegistryError(TaskRelayError):
    """Registry document is unreadable or structurally invalid."""


class RegistryConflictError(RegistryError):
    """Repository is already registered under a different path."""


class ConversionError(TaskRelayError):
    """Issue tracker call failed; the task stays in the inbox for retry."""

    def __init__(self, message: str, *, reason_code: str, transient: bool) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.transient = transient


class LedgerError(TaskRelayError):
    """Audit ledger or its state marker cannot be read or written."""
