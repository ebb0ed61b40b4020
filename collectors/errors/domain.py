"""Typed domain exceptions for API error mapping.

Services raise these; the API layer maps each type to an HTTP status code
in one place (see collectors.api.main).

Usage:
    # In service layer
    raise NotFoundError("Chat session", session_id)
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AuthenticationError(DomainError):
    """Missing or invalid credentials. Maps to HTTP 401."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class PermissionDeniedError(DomainError):
    """Caller lacks the role for this action. Maps to HTTP 403."""

    def __init__(self, message: str) -> None:
        super().__init__(message)

