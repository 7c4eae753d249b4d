"""Domain errors shared by services, mapped to HTTP responses in main.py."""

from typing import Any


class DomainError(Exception):
    """Base exception for phone-asset domain errors."""

    code = "domain_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        """Extra fields included in the error response body."""
        return {}


class ValidationError(DomainError, ValueError):
    """Input failed a business rule (bad format, missing field, illegal creation state)."""

    code = "validation_error"


class TransitionRejected(DomainError):
    """Requested phone status change is not in the transition table."""

    code = "transition_rejected"

    def __init__(self, from_status: str, to_status: str, message: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot change status from {from_status} to {to_status}"
        )

    def context(self) -> dict[str, Any]:
        return {"currentStatus": self.from_status, "requestedStatus": self.to_status}


class TokenExpired(DomainError):
    """Verification token is past its expiry."""

    code = "token_expired"

    def __init__(self, message: str = "Verification link has expired"):
        super().__init__(message)


class TokenAlreadyConsumed(DomainError):
    """Verification token was already used for a submission."""

    code = "token_already_consumed"

    def __init__(self, message: str = "Verification has already been submitted"):
        super().__init__(message)


class NotFound(DomainError):
    """Referenced entity does not exist."""

    code = "not_found"


class DispatchFailure(DomainError):
    """A single notification could not be delivered."""

    code = "dispatch_failure"


class PersistenceConflict(DomainError):
    """Optimistic-lock or uniqueness collision while saving."""

    code = "persistence_conflict"
