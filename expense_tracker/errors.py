"""
Error taxonomy shared by the server store, the sync engine and the local store.

Routers never build HTTP errors for these by hand: ``main.py`` registers one
handler per class that renders ``{"error": message}`` with the mapped status.
"""
from __future__ import annotations


class ExpenseTrackerError(Exception):
    """Base class; ``status_code`` is used when surfaced over HTTP."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExpenseTrackerError):
    """User input is malformed (missing field, wrong type, bad version)."""

    status_code = 400


class PermissionDenied(ExpenseTrackerError):
    """Caller is not allowed to do this, e.g. community sharing is off."""

    status_code = 403


class NotFoundError(ExpenseTrackerError):
    status_code = 404


class ConflictError(ExpenseTrackerError):
    """Natural-key uniqueness violation on direct creation."""

    status_code = 409


class TransportError(ExpenseTrackerError):
    """The server could not be reached or failed; retry the whole operation."""

    status_code = 503


class StoreClosedError(ExpenseTrackerError):
    pass
