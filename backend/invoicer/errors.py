"""
Service-level error taxonomy.

Every failure a service wants the caller to see is one of these. The app
factory turns them into JSON responses with the class' status code; anything
else becomes a generic 500 and is logged.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for errors that map to an HTTP status."""

    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(ServiceError):
    """Row does not exist or belongs to another tenant (indistinguishable on purpose)."""

    message = "Resource not found"
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violation that survived the allowed retry, or an illegal state change."""

    message = "Resource conflict"
    status_code = 409


class LifecycleError(ConflictError):
    """Requested status change is not a natural transition."""

    message = "Invalid status transition"


class ValidationError(ServiceError):
    """Input failed validation before any write."""

    message = "Validation failed"
    status_code = 400


class TenantAccessError(ServiceError):
    """Tenant exists but may not be used (deactivated)."""

    message = "Tenant is not active"
    status_code = 403


class RemoteUnavailableError(ServiceError):
    """A remote collaborator (store, identity, export, email) failed or timed out."""

    message = "Remote service unavailable"
    status_code = 503
