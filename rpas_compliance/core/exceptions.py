"""
Platform-wide exception hierarchy.

Services raise these types; the app-level error handlers in
``rpas_compliance.utils.errors`` translate them into consistent HTTP
responses, so blueprints never need per-route try/except blocks for
business-rule failures.

Usage:
    from rpas_compliance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="SFOCApplication", resource_id=app_id)
    raise ValidationError("name is required", details={"name": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-organization access
    attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "SFOCApplication").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        organization_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a business rule (out-of-range likelihood,
    unknown trigger, missing template).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InvalidTransitionError(Exception):
    """Raised when a requested status change is not in the registry allow-list.

    Maps to HTTP 409. The record is left untouched.
    """

    def __init__(
        self,
        resource: str,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Cannot move {resource} from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConcurrentUpdateError(Exception):
    """Raised when an optimistic read-modify-write keeps losing the race.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, resource_id: str | None = None, attempts: int = 0) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.attempts = attempts
        super().__init__(
            f"{resource} id={resource_id} was modified concurrently "
            f"(gave up after {attempts} attempt(s))"
        )


class ConfigurationError(Exception):
    """Raised when a static table (status registry, catalog) is inconsistent
    or a stored record carries a status its registry does not know.

    Maps to HTTP 500; this is a defect, not a user error.
    """
