class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidTransition(ValidationError):
    """Raised when an action is not allowed from the current clock state."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class NotAuthenticated(AuthenticationError):
    """Raised when an action needs a signed-in user and there is none."""


class NoCompanyContext(DomainError):
    """Raised when the signed-in user has no active company membership."""


class NoActiveSession(DomainError):
    """Raised when clocking out but the remote log has no open clock-in."""


class RemoteStoreError(DomainError):
    """Base for failures talking to the remote record store."""


class RemoteWriteError(RemoteStoreError):
    """Raised when appending an event to the remote record store fails."""


class RemoteReadError(RemoteStoreError):
    """Raised when querying the remote record store fails."""


class ReconciliationError(DomainError):
    """Logged, never raised out of the reconciliation engine."""
