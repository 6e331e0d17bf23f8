"""
Domain errors raised by the service layer.

Every error carries a machine-readable ``kind``, a human message and optional
details (for example ``days_remaining``). The API layer renders them through a
single exception handler; nothing in the services retries them.
"""

from typing import Any, Dict


class DomainError(Exception):
    kind: str = "error"
    status_code: int = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {"success": False, "error": self.kind, "message": self.message}
        payload.update(self.details)
        return payload


class ValidationError(DomainError):
    """Missing or malformed input."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(DomainError):
    """Unknown unit, donation, donor, bank, reservation or request id."""

    kind = "not_found"
    status_code = 404


class ConflictError(DomainError):
    """Duplicate unit number, finalised donation, answered or foreign request."""

    kind = "conflict"
    status_code = 409


class IneligibleError(DomainError):
    """Donor inside the donation gap, bank over its daily limit, cooldown, opt-out."""

    kind = "ineligible"
    status_code = 422


class ExpiredResourceError(DomainError):
    """Status change on an expired unit or a response to an expired request."""

    kind = "expired"
    status_code = 410
