"""Error taxonomy shared by the service, repository and HTTP layers."""

from __future__ import annotations


class UserError(Exception):
    """Base class for every failure the user workflows report."""


class ValidationError(UserError):
    """Raised for malformed input detected before any store access."""


class InvalidIdentifierError(ValidationError):
    """Raised when a user identifier is malformed or empty."""


class ConflictError(UserError):
    """Raised when a write would violate a uniqueness constraint."""


class EmailAlreadyExistsError(ConflictError):
    def __init__(self, message: str = "email already exists") -> None:
        super().__init__(message)


class AddressAlreadyExistsError(ConflictError):
    def __init__(self, message: str = "address of this type already exists") -> None:
        super().__init__(message)


class NotFoundError(UserError):
    """Raised when the targeted row is absent or soft-deleted."""


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


class AddressNotFoundError(NotFoundError):
    def __init__(self, message: str = "address not found") -> None:
        super().__init__(message)


class InternalError(UserError):
    """Raised for store or infrastructure failures outside the taxonomy."""
