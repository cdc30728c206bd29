"""Error taxonomy for judicial-core.

Every domain error carries an HTTP status code and a stable error code so the
API layer can map it without inspecting messages. Messages are safe to return
to callers; anything sensitive belongs in structured log fields instead.
"""

from typing import Any


class JudicialCoreError(Exception):
    """Base class for all judicial-core domain errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class AuthenticationError(JudicialCoreError):
    """The request carries no valid caller identity."""

    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotFoundError(JudicialCoreError):
    """The requested resource does not exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} not found", resource=resource, resource_id=resource_id)
        self.resource = resource
        self.resource_id = resource_id


class ForbiddenError(JudicialCoreError):
    """Ownership or role mismatch."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "You are not authorized to access this resource",
        resource: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(message, resource=resource, resource_id=resource_id)
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateError(JudicialCoreError):
    """The operation is not allowed in the resource's current lifecycle state."""

    status_code = 409
    error_code = "invalid_state"

    def __init__(self, message: str, current_state: str | None = None) -> None:
        super().__init__(message, current_state=current_state)
        self.current_state = current_state


class ValidationFailedError(JudicialCoreError):
    """Missing or insufficient input."""

    status_code = 422
    error_code = "validation_failed"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, field=field)
        self.field = field


class CredentialError(JudicialCoreError):
    """The signing collaborator rejected the request.

    The message is always generic; provider details are logged, never returned.
    """

    status_code = 422
    error_code = "credential_error"

    def __init__(self, message: str = "No valid signing credential is available for the signer") -> None:
        super().__init__(message)


class IntegrityMismatchError(JudicialCoreError):
    """A stored artifact no longer matches its recorded hash."""

    status_code = 409
    error_code = "integrity_mismatch"

    def __init__(self, message: str, stored_hash: str | None = None, actual_hash: str | None = None) -> None:
        super().__init__(message, stored_hash=stored_hash, actual_hash=actual_hash)
        self.stored_hash = stored_hash
        self.actual_hash = actual_hash


class PseudonymExhaustedError(JudicialCoreError):
    """No unique pseudonym could be generated within the retry bound.

    Fatal to the current issuance; callers should retry with backoff.
    """

    status_code = 503
    error_code = "pseudonym_exhausted"

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique pseudonym after {attempts} attempts",
            attempts=attempts,
        )
        self.attempts = attempts
