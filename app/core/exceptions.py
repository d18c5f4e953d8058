"""
Domain error taxonomy.

Services raise these; the API layer turns them into JSON responses with the
matching HTTP status (see app.main).
"""
from typing import Optional


class DomainError(Exception):
    """Base class for all expected failures of the earnings engine."""
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class Unauthenticated(DomainError):
    """No verified identity."""
    status_code = 401
    code = "unauthenticated"


class Forbidden(DomainError):
    """Authenticated but insufficient role or ownership."""
    status_code = 403
    code = "forbidden"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class ValidationError(DomainError):
    """Malformed input, out-of-range rate, sub-minimum payout."""
    status_code = 400
    code = "validation_error"


class ConflictError(DomainError):
    """Duplicate grant, last-owner removal, transfer to self, payout in flight."""
    status_code = 409
    code = "conflict"


class ExternalServiceError(DomainError):
    """Payment rail or order source failure."""
    status_code = 502
    code = "external_service_error"


class ExternalServiceTimeout(ExternalServiceError):
    """Provider did not answer in time; the outcome of the call is unknown."""
    status_code = 504
    code = "external_service_timeout"


class InternalError(DomainError):
    status_code = 500
    code = "internal_error"
