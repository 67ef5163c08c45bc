"""Exception hierarchy shared by the engine, the store clients and the API."""

from typing import Any


class CommissionError(Exception):
    """Base exception for commission ledger errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(CommissionError):
    """Missing or malformed input, rejected before any write."""

    status_code = 400


class AuthenticationError(CommissionError):
    """No authenticated caller."""

    status_code = 401


class PermissionDeniedError(CommissionError):
    """Caller lacks the required role."""

    status_code = 403


class NotFoundError(CommissionError):
    """Referenced entity does not exist."""

    status_code = 404


class ConflictError(CommissionError):
    """Mutation refused because of the current state (e.g. a closed entry)."""

    status_code = 409


class StoreError(CommissionError):
    """Entity store transport or HTTP failure."""

    status_code = 502
