"""
Platform-wide exception hierarchy.

Services raise these types; the journey map blueprint registers handlers
against them once and gets consistent HTTP status codes everywhere.

The editing engine (``app.services.journey``) never raises for data shape
problems: unknown ids are no-ops and out-of-range indices are clamped.
Only malformed input at the boundary (``ValidationError``), lookups of
persisted records (``NotFoundError``) and storage I/O (``PersistenceError``)
surface to callers.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="JourneyMap", resource_id=42)
    raise ValidationError("stages must be a list", details={"stages": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested persisted record does not exist in the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a 404 never confirms that another tenant's map exists.

    Args:
        resource: Human-readable entity name (e.g. "JourneyMap", "Version").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation at the service boundary.

    Covers malformed documents handed over by templates/generators that
    cannot be repaired, unknown section types and bad request payloads.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PersistenceError(Exception):
    """Raised when a save, load or version fetch fails at the storage layer.

    Never retried automatically. The autosave controller turns it into the
    ``failed`` state; the blueprint maps it to HTTP 503.

    Args:
        operation: What was attempted ("save", "load", "version_fetch", ...).
        message: Underlying error text.
    """

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        msg = f"{operation} failed"
        if message:
            msg += f": {message}"
        super().__init__(msg)
